"""Guard interface.

A guard answers one question for one transition: may this principal move
this entity? Guards are configured entirely from the transition's metadata
and hold no state between evaluations.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, NamedTuple

from stateflow.core.identity import EntityRef, Principal


class GuardResult(NamedTuple):
    """Verdict of a guard evaluation."""
    allowed: bool
    message: str

    @classmethod
    def allow(cls, message: str = "Check passed") -> "GuardResult":
        return cls(True, message)

    @classmethod
    def deny(cls, message: str) -> "GuardResult":
        return cls(False, message)


class Guard(ABC):
    """Abstract base class for authorization checks on a transition."""

    #: Registry key the guard is stored under on transitions.
    key: str = ""

    @abstractmethod
    def evaluate(
        self,
        entity: EntityRef,
        principal: Principal,
        metadata: Mapping[str, Any],
    ) -> GuardResult:
        """Evaluate the guard.

        Args:
            entity: The entity being transitioned
            principal: The acting identity
            metadata: The transition's metadata bag

        Returns:
            GuardResult with the verdict and a human-readable message
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} key={self.key!r}>"
