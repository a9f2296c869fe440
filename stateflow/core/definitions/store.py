"""Read-only definition stores.

The engine depends only on the ``DefinitionStore`` protocol. Two
implementations are provided: an in-memory store (tests, YAML-loaded
definitions) and a SQL store over the ``machines``/``states``/``transitions``
tables.
"""

import threading
from typing import Any, Callable, Dict, Hashable, Iterable, List, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from stateflow.core.errors import NotFoundError
from .models import Machine, State, StateKind, Transition


class DefinitionStore(Protocol):
    """Lookup contract the engine reads definitions through."""

    def get_machine(self, machine_id: int) -> Machine: ...

    def get_state(self, state_id: int) -> State: ...

    def get_transition(self, transition_id: int) -> Transition: ...

    def transitions_from(self, machine_id: int, state_id: int) -> List[Transition]: ...


class InMemoryDefinitionStore:
    """Definition store backed by dictionaries.

    Safe to share between threads once built; nothing mutates it after
    construction.
    """

    def __init__(
        self,
        machines: Iterable[Machine] = (),
        states: Iterable[State] = (),
        transitions: Iterable[Transition] = (),
    ):
        self._machines: Dict[int, Machine] = {m.id: m for m in machines}
        self._states: Dict[int, State] = {s.id: s for s in states}
        self._transitions: Dict[int, Transition] = {t.id: t for t in transitions}

    def get_machine(self, machine_id: int) -> Machine:
        machine = self._machines.get(machine_id)
        if machine is None:
            raise NotFoundError("machine", machine_id)
        return machine

    def get_machine_by_slug(self, slug: str) -> Machine:
        for machine in self._machines.values():
            if machine.slug == slug:
                return machine
        raise NotFoundError("machine", slug)

    def get_state(self, state_id: int) -> State:
        state = self._states.get(state_id)
        if state is None:
            raise NotFoundError("state", state_id)
        return state

    def get_state_by_slug(self, machine_id: int, slug: str) -> State:
        for state in self._states.values():
            if state.machine_id == machine_id and state.slug == slug:
                return state
        raise NotFoundError("state", f"{machine_id}/{slug}")

    def get_transition(self, transition_id: int) -> Transition:
        transition = self._transitions.get(transition_id)
        if transition is None:
            raise NotFoundError("transition", transition_id)
        return transition

    def transitions_from(self, machine_id: int, state_id: int) -> List[Transition]:
        matches = [
            t for t in self._transitions.values()
            if t.machine_id == machine_id and t.from_state_id == state_id
        ]
        return sorted(matches, key=lambda t: t.ordering_key)

    def list_machines(self) -> List[Machine]:
        return sorted(self._machines.values(), key=lambda m: m.id)


class SqlDefinitionStore:
    """Definition store reading the definition tables.

    Lookups open a short-lived session and return detached frozen
    dataclasses. Found definitions are cached for the life of the store;
    call ``clear_cache`` after changing the tables. Misses are not cached.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._cache: Dict[Hashable, Any] = {}
        self._cache_lock = threading.Lock()

    def _cached(self, key: Hashable, load: Callable[[], Any]) -> Any:
        with self._cache_lock:
            if key in self._cache:
                return self._cache[key]
        value = load()
        with self._cache_lock:
            self._cache[key] = value
        return value

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def get_machine(self, machine_id: int) -> Machine:
        return self._cached(("machine", machine_id), lambda: self._load_machine(machine_id))

    def get_state(self, state_id: int) -> State:
        return self._cached(("state", state_id), lambda: self._load_state(state_id))

    def get_transition(self, transition_id: int) -> Transition:
        return self._cached(("transition", transition_id), lambda: self._load_transition(transition_id))

    def transitions_from(self, machine_id: int, state_id: int) -> List[Transition]:
        found = self._cached(
            ("transitions_from", machine_id, state_id),
            lambda: tuple(self._load_transitions_from(machine_id, state_id)),
        )
        return list(found)

    def _load_machine(self, machine_id: int) -> Machine:
        from stateflow.db.models import MachineRecord

        with self._session_factory() as session:
            record = session.get(MachineRecord, machine_id)
            if record is None:
                raise NotFoundError("machine", machine_id)
            return _machine_from_record(record)

    def _load_state(self, state_id: int) -> State:
        from stateflow.db.models import StateRecord

        with self._session_factory() as session:
            record = session.get(StateRecord, state_id)
            if record is None:
                raise NotFoundError("state", state_id)
            return _state_from_record(record)

    def _load_transition(self, transition_id: int) -> Transition:
        from stateflow.db.models import TransitionRecord

        with self._session_factory() as session:
            record = session.get(TransitionRecord, transition_id)
            if record is None:
                raise NotFoundError("transition", transition_id)
            return _transition_from_record(record)

    def _load_transitions_from(self, machine_id: int, state_id: int) -> List[Transition]:
        from stateflow.db.models import TransitionRecord

        stmt = (
            select(TransitionRecord)
            .where(
                TransitionRecord.machine_id == machine_id,
                TransitionRecord.from_state_id == state_id,
            )
            .order_by(TransitionRecord.sort_order, TransitionRecord.id)
        )
        with self._session_factory() as session:
            return [_transition_from_record(r) for r in session.scalars(stmt)]


def _machine_from_record(record) -> Machine:
    return Machine(
        id=record.id,
        slug=record.slug,
        initial_state_id=record.initial_state_id,
        name=record.name,
    )


def _state_from_record(record) -> State:
    return State(
        id=record.id,
        machine_id=record.machine_id,
        slug=record.slug,
        kind=StateKind(record.kind),
        name=record.name,
    )


def _transition_from_record(record) -> Transition:
    return Transition(
        id=record.id,
        machine_id=record.machine_id,
        from_state_id=record.from_state_id,
        to_state_id=record.to_state_id,
        guard_id=record.guard_id,
        metadata=dict(record.extra_data or {}),
        label=record.label,
        sort_order=record.sort_order or 0,
    )

