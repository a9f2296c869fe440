"""Workflow definition types.

Definitions are authored elsewhere; the engine only reads them.

    ┌──────────┐   pay    ┌──────────┐   ship   ┌──────────┐
    │   new    │─────────►│   paid   │─────────►│ shipped  │
    └──────────┘          └──────────┘          └──────────┘
      initial             intermediate              final
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class StateKind(str, Enum):
    """Position of a state within its machine."""

    INITIAL = "initial"
    INTERMEDIATE = "intermediate"
    FINAL = "final"


@dataclass(frozen=True)
class Machine:
    """A named workflow definition."""

    id: int
    slug: str
    initial_state_id: int
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.slug


@dataclass(frozen=True)
class State:
    """A node within exactly one machine."""

    id: int
    machine_id: int
    slug: str
    kind: StateKind = StateKind.INTERMEDIATE
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.slug

    @property
    def is_final(self) -> bool:
        return self.kind == StateKind.FINAL


@dataclass(frozen=True)
class Transition:
    """A directed, optionally guarded edge between two states of one machine."""

    id: int
    machine_id: int
    from_state_id: int
    to_state_id: int
    guard_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    label: Optional[str] = None
    sort_order: int = 0

    @property
    def ordering_key(self) -> tuple[int, int]:
        """Stable listing order: definition sort order, then id."""
        return (self.sort_order, self.id)

    @property
    def is_guarded(self) -> bool:
        return bool(self.guard_id)
