"""Workflow definitions: machines, states and transitions (read-only)."""

from .models import Machine, State, StateKind, Transition
from .store import DefinitionStore, InMemoryDefinitionStore, SqlDefinitionStore
from .loader import DefinitionFormatError, load_definitions, parse_definitions

__all__ = [
    "Machine",
    "State",
    "StateKind",
    "Transition",
    "DefinitionStore",
    "InMemoryDefinitionStore",
    "SqlDefinitionStore",
    "DefinitionFormatError",
    "load_definitions",
    "parse_definitions",
]
