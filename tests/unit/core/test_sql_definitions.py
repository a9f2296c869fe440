"""Tests for SqlDefinitionStore."""

import pytest

from stateflow.core.definitions import SqlDefinitionStore, StateKind
from stateflow.core.engine import TransitionEngine
from stateflow.core.errors import NotFoundError
from stateflow.db.models import MachineRecord, StateRecord, TransitionRecord
from stateflow.db.session import create_session_factory

from tests.factories import (
    CANCEL,
    NEW,
    ORDER_MACHINE,
    PAID,
    PAY,
    SHIP,
    make_definitions,
    make_entity,
)


def seed(session_factory):
    """Copy the factory definitions into the definition tables."""
    source = make_definitions()
    with session_factory() as session:
        for machine in source.list_machines():
            session.add(MachineRecord(
                id=machine.id, slug=machine.slug, name=machine.name,
                initial_state_id=machine.initial_state_id,
            ))
        session.flush()
        for state_id in range(1, 8):
            state = source.get_state(state_id)
            session.add(StateRecord(
                id=state.id, machine_id=state.machine_id, slug=state.slug,
                name=state.name, kind=state.kind.value,
            ))
        session.flush()
        for transition_id in range(1, 8):
            t = source.get_transition(transition_id)
            session.add(TransitionRecord(
                id=t.id, machine_id=t.machine_id, from_state_id=t.from_state_id,
                to_state_id=t.to_state_id, label=t.label, sort_order=t.sort_order,
                guard_id=t.guard_id, extra_data=t.metadata,
            ))
        session.commit()


@pytest.fixture
def sql_definitions(db_engine):
    session_factory = create_session_factory(db_engine)
    seed(session_factory)
    return SqlDefinitionStore(session_factory)


class TestSqlDefinitionStore:
    """Test lookups against the definition tables."""

    def test_get_machine(self, sql_definitions):
        """Test machine rows become Machine values."""
        machine = sql_definitions.get_machine(ORDER_MACHINE)
        assert machine.slug == "order"
        assert machine.initial_state_id == NEW

    def test_get_state(self, sql_definitions):
        """Test state kinds are parsed."""
        assert sql_definitions.get_state(NEW).kind == StateKind.INITIAL
        assert sql_definitions.get_state(PAID).display_name == "Paid"

    def test_transition_metadata(self, sql_definitions):
        """Test guard configuration is read from extra_data."""
        ship = sql_definitions.get_transition(SHIP)
        assert ship.guard_id == "role"
        assert ship.metadata == {"required_roles": ["admin"]}

    def test_transitions_from_ordered(self, sql_definitions):
        """Test transitions are ordered by sort order."""
        assert [t.id for t in sql_definitions.transitions_from(ORDER_MACHINE, NEW)] == [PAY, CANCEL]

    def test_missing_rows(self, sql_definitions):
        """Test unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            sql_definitions.get_machine(99)
        with pytest.raises(NotFoundError):
            sql_definitions.get_state(99)
        with pytest.raises(NotFoundError):
            sql_definitions.get_transition(99)

    def test_engine_over_sql_definitions(self, sql_definitions, audit_store, guard_registry, clerk):
        """Test the engine runs unchanged over database definitions."""
        engine = TransitionEngine(sql_definitions, audit_store, guards=guard_registry)
        result = engine.apply_transition(PAY, make_entity(), clerk)
        assert result.message == "Successfully transitioned from New to Paid"
        assert engine.get_current_state(ORDER_MACHINE, make_entity()) == PAID


class CountingSessions:
    """Session factory wrapper counting opened sessions."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.opened = 0

    def __call__(self):
        self.opened += 1
        return self.session_factory()


class TestDefinitionCache:
    """Test lookups are served from the cache after the first read."""

    @pytest.fixture
    def sessions(self, db_engine):
        session_factory = create_session_factory(db_engine)
        seed(session_factory)
        return CountingSessions(session_factory)

    def test_repeat_lookups_use_cache(self, sessions):
        """Test each definition is read from the database once."""
        store = SqlDefinitionStore(sessions)
        for _ in range(3):
            store.get_machine(ORDER_MACHINE)
            store.get_state(NEW)
            store.get_transition(PAY)
            store.transitions_from(ORDER_MACHINE, NEW)
        assert sessions.opened == 4

    def test_misses_not_cached(self, sessions):
        """Test unknown ids are looked up again."""
        store = SqlDefinitionStore(sessions)
        for _ in range(2):
            with pytest.raises(NotFoundError):
                store.get_machine(99)
        assert sessions.opened == 2

    def test_clear_cache(self, sessions):
        """Test clearing the cache forces a fresh read."""
        store = SqlDefinitionStore(sessions)
        store.get_machine(ORDER_MACHINE)
        store.clear_cache()
        store.get_machine(ORDER_MACHINE)
        assert sessions.opened == 2

    def test_cached_list_is_a_copy(self, sessions):
        """Test callers cannot alter the cached transition list."""
        store = SqlDefinitionStore(sessions)
        store.transitions_from(ORDER_MACHINE, NEW).clear()
        assert [t.id for t in store.transitions_from(ORDER_MACHINE, NEW)] == [PAY, CANCEL]
