"""Transition engine and its notification bus."""

from .events import EventKind, Listener, NotificationBus, TransitionEvent
from .engine import TransitionEngine, TransitionResult

__all__ = [
    "EventKind",
    "Listener",
    "NotificationBus",
    "TransitionEvent",
    "TransitionEngine",
    "TransitionResult",
]
