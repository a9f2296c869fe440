"""Caller-supplied identity and entity references.

The engine never resolves who is acting or what an entity is; both arrive
explicitly with every call.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional


@dataclass(frozen=True)
class Principal:
    """The acting identity for one engine call."""

    id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    name: Optional[str] = None

    @classmethod
    def of(
        cls,
        id: str,
        roles: Iterable[str] = (),
        capabilities: Iterable[str] = (),
        name: Optional[str] = None,
    ) -> "Principal":
        """Build a principal from any iterables of roles and capabilities."""
        return cls(
            id=str(id),
            roles=frozenset(roles),
            capabilities=frozenset(capabilities),
            name=name,
        )

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class EntityRef:
    """Opaque reference to the business object under governance.

    ``owner_id`` is only consulted by ownership guards; the engine does not
    look ownership up itself.
    """

    entity_type: str
    entity_id: str
    owner_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "entity_id", str(self.entity_id))
        if self.owner_id is not None:
            object.__setattr__(self, "owner_id", str(self.owner_id))

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"
