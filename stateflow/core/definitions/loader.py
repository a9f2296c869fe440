"""Load workflow definitions from YAML documents.

Document shape::

    machines:
      - slug: order
        name: Order
        initial_state: new
        states:
          - {slug: new, kind: initial}
          - {slug: paid}
          - {slug: shipped, kind: final}
        transitions:
          - {label: pay, from: new, to: paid}
          - label: ship
            from: paid
            to: shipped
            guard: role
            metadata: {required_roles: [admin]}

Ids may be given explicitly; missing ids are assigned in document order.
States are referenced by slug within their machine.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .models import Machine, State, StateKind, Transition
from .store import InMemoryDefinitionStore


class DefinitionFormatError(ValueError):
    """Raised when a definition document cannot be interpreted."""


class _IdAllocator:
    """Hands out ids that do not collide with explicitly given ones."""

    def __init__(self):
        self._used: set[int] = set()
        self._next = 1

    def take(self, explicit: Optional[int]) -> int:
        if explicit is not None:
            value = int(explicit)
            if value in self._used:
                raise DefinitionFormatError(f"Duplicate id: {value}")
            self._used.add(value)
            return value
        while self._next in self._used:
            self._next += 1
        self._used.add(self._next)
        return self._next


def parse_definitions(document: Dict[str, Any]) -> InMemoryDefinitionStore:
    """Build an in-memory store from a parsed definition document.

    Args:
        document: Mapping with a ``machines`` list

    Returns:
        InMemoryDefinitionStore holding every machine, state and transition

    Raises:
        DefinitionFormatError: If references cannot be resolved
    """
    machine_ids, state_ids, transition_ids = _IdAllocator(), _IdAllocator(), _IdAllocator()
    machines: List[Machine] = []
    states: List[State] = []
    transitions: List[Transition] = []

    for machine_doc in document.get("machines", []):
        slug = machine_doc.get("slug")
        if not slug:
            raise DefinitionFormatError("Every machine needs a slug")
        machine_id = machine_ids.take(machine_doc.get("id"))

        by_slug: Dict[str, State] = {}
        for state_doc in machine_doc.get("states", []):
            state = State(
                id=state_ids.take(state_doc.get("id")),
                machine_id=machine_id,
                slug=state_doc["slug"],
                kind=StateKind(state_doc.get("kind", StateKind.INTERMEDIATE.value)),
                name=state_doc.get("name"),
            )
            by_slug[state.slug] = state
            states.append(state)

        initial = _resolve_initial(slug, machine_doc.get("initial_state"), by_slug)
        machines.append(
            Machine(
                id=machine_id,
                slug=slug,
                initial_state_id=initial.id,
                name=machine_doc.get("name"),
            )
        )

        for position, transition_doc in enumerate(machine_doc.get("transitions", [])):
            from_state = _lookup(slug, by_slug, transition_doc.get("from"))
            to_state = _lookup(slug, by_slug, transition_doc.get("to"))
            transitions.append(
                Transition(
                    id=transition_ids.take(transition_doc.get("id")),
                    machine_id=machine_id,
                    from_state_id=from_state.id,
                    to_state_id=to_state.id,
                    guard_id=transition_doc.get("guard"),
                    metadata=dict(transition_doc.get("metadata") or {}),
                    label=transition_doc.get("label"),
                    sort_order=int(transition_doc.get("sort_order", position)),
                )
            )

    return InMemoryDefinitionStore(machines, states, transitions)


def load_definitions(path: Union[str, Path]) -> InMemoryDefinitionStore:
    """Load a YAML definition file into an in-memory store.

    Environment variables in string values are expanded.

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If the file is invalid YAML
        DefinitionFormatError: If the document is malformed
    """
    definition_file = Path(path)
    if not definition_file.exists():
        raise FileNotFoundError(f"Definition file not found: {path}")

    with definition_file.open("r") as f:
        document = yaml.safe_load(f)

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise DefinitionFormatError(
            f"Definition root must be a mapping, got {type(document).__name__}"
        )

    return parse_definitions(_expand_env_vars(document))


def _resolve_initial(machine_slug: str, initial_slug: Optional[str], by_slug: Dict[str, State]) -> State:
    if initial_slug:
        return _lookup(machine_slug, by_slug, initial_slug)
    for state in by_slug.values():
        if state.kind == StateKind.INITIAL:
            return state
    raise DefinitionFormatError(f"Machine '{machine_slug}' has no initial state")


def _lookup(machine_slug: str, by_slug: Dict[str, State], state_slug: Optional[str]) -> State:
    state = by_slug.get(state_slug) if state_slug else None
    if state is None:
        raise DefinitionFormatError(
            f"Machine '{machine_slug}' references unknown state '{state_slug}'"
        )
    return state


def _expand_env_vars(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
