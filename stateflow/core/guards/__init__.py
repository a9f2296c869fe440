"""Pluggable authorization checks evaluated before a transition is applied."""

from .base import Guard, GuardResult
from .builtin import CallbackGuard, CapabilityGuard, OwnerGuard, RoleGuard
from .registry import GuardCallback, GuardFactory, GuardRegistry, create_default_registry

__all__ = [
    "Guard",
    "GuardResult",
    "RoleGuard",
    "CapabilityGuard",
    "OwnerGuard",
    "CallbackGuard",
    "GuardCallback",
    "GuardFactory",
    "GuardRegistry",
    "create_default_registry",
]
