"""Engine-owned notification bus.

Each engine instance owns its own listener lists; there is no process-wide
event registry. Listeners run synchronously, in registration order, in the
caller's thread.

Before-listeners may veto a transition by raising. After-listeners cannot
change an outcome that has already been committed; their exceptions are
logged and dropped.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from stateflow.core.identity import EntityRef, Principal

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Notification points around ``apply_transition``."""
    BEFORE = "before-transition"
    AFTER_SUCCESS = "after-transition-success"
    AFTER_FAILURE = "after-transition-failure"


@dataclass(frozen=True)
class TransitionEvent:
    """Payload delivered to listeners."""

    kind: EventKind
    machine_id: int
    entity_ref: EntityRef
    from_state_id: Optional[int]
    to_state_id: int
    transition_id: int
    principal: Principal
    comment: Optional[str] = None
    tenant: Optional[str] = None
    entry: Optional[Any] = None  # AuditLogEntry, after success
    error: Optional[BaseException] = None  # after failure

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.kind.value,
            "machine_id": self.machine_id,
            "entity_type": self.entity_ref.entity_type,
            "entity_id": self.entity_ref.entity_id,
            "from_state_id": self.from_state_id,
            "to_state_id": self.to_state_id,
            "transition_id": self.transition_id,
            "principal_id": self.principal.id,
            "comment": self.comment,
            "tenant": self.tenant,
            "log_id": self.entry.id if self.entry is not None else None,
            "error": str(self.error) if self.error is not None else None,
            "error_code": getattr(self.error, "code", None) if self.error is not None else None,
        }


Listener = Callable[[TransitionEvent], None]


class NotificationBus:
    """Observer lists keyed by event kind."""

    def __init__(self):
        self._listeners: Dict[EventKind, List[Listener]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, listener: Listener) -> None:
        self._listeners[EventKind(kind)].append(listener)

    def unsubscribe(self, kind: EventKind, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners[EventKind(kind)]
        if listener in listeners:
            listeners.remove(listener)

    def listeners(self, kind: EventKind) -> List[Listener]:
        return list(self._listeners[EventKind(kind)])

    def publish(self, event: TransitionEvent) -> None:
        """Deliver ``event`` to its listeners in registration order.

        Raises:
            Exception: Whatever a before-listener raises, unchanged
        """
        for listener in self.listeners(event.kind):
            if event.kind == EventKind.BEFORE:
                listener(event)
                continue
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"{event.kind.value} listener {getattr(listener, '__name__', listener)!r} "
                    f"failed for {event.entity_ref}: {e}",
                    exc_info=True,
                )
