"""API routers for stateflow."""

from . import audit
from . import health
from . import transitions

__all__ = [
    "audit",
    "health",
    "transitions",
]
