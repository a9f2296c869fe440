"""
Concurrent apply_transition calls on the same entity.

Threads are released together by a barrier so that they race for the same
entity key. SQLite serializes them on its file lock; set
STATEFLOW_TEST_PG_URL to also run against PostgreSQL with advisory locks.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest

from stateflow.core.audit import AuditLogStore, TenantProvisioner
from stateflow.core.engine import TransitionEngine
from stateflow.core.errors import ConcurrencyConflict, ValidationError
from stateflow.db.session import create_db_engine, init_db

from tests.factories import CANCEL, NEW, ORDER_MACHINE, PAID, PAY, make_entity, make_principal

pytestmark = pytest.mark.integration

PG_URL = os.environ.get("STATEFLOW_TEST_PG_URL")
RUN_ID = uuid4().hex[:8]


@pytest.fixture(params=["sqlite", "postgresql"])
def race_engine(request, tmp_path, definitions, guard_registry):
    if request.param == "sqlite":
        url = f"sqlite:///{tmp_path / 'race.db'}"
    elif PG_URL:
        url = PG_URL
    else:
        pytest.skip("STATEFLOW_TEST_PG_URL not set")

    db_engine = create_db_engine(url)
    init_db(db_engine)
    yield TransitionEngine(definitions, AuditLogStore(db_engine), guards=guard_registry)
    db_engine.dispose()


def _entity(suffix):
    """Entity ids unique per test run, since a PostgreSQL log outlives the test."""
    return make_entity(f"{RUN_ID}-{suffix}")


def _race(engine, calls):
    """Run ``calls`` (transition_id, entity, tenant) simultaneously.

    Returns:
        List of (result, error) pairs in call order
    """
    barrier = Barrier(len(calls))
    principal = make_principal("racer")

    def attempt(call):
        transition_id, entity, tenant = call
        barrier.wait()
        try:
            return engine.apply_transition(transition_id, entity, principal, tenant=tenant), None
        except (ValidationError, ConcurrencyConflict) as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(attempt, calls))


class TestConcurrentTransitions:
    """Exactly one writer wins a race for the same entity."""

    def test_same_transition_race(self, race_engine):
        """Test two callers paying the same order: one entry, one failure."""
        entity = _entity("2")
        outcomes = _race(race_engine, [(PAY, entity, None), (PAY, entity, None)])

        winners = [result for result, error in outcomes if result is not None]
        losers = [error for result, error in outcomes if error is not None]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], (ValidationError, ConcurrencyConflict))

        history = race_engine.get_entity_history(ORDER_MACHINE, entity)
        assert [(e.from_state_id, e.to_state_id) for e in history] == [(NEW, PAID)]

    def test_mutually_exclusive_transitions(self, race_engine):
        """Test pay and cancel racing from new: never both succeed."""
        entity = _entity("3")
        outcomes = _race(race_engine, [(PAY, entity, None), (CANCEL, entity, None)])

        assert sum(1 for result, _ in outcomes if result is not None) == 1
        history = race_engine.get_entity_history(ORDER_MACHINE, entity)
        assert len(history) == 1
        assert history[0].sequence == 1

    def test_many_racers(self, race_engine):
        """Test eight callers on one entity produce a single entry."""
        entity = _entity("4")
        outcomes = _race(race_engine, [(PAY, entity, None)] * 8)

        assert sum(1 for result, _ in outcomes if result is not None) == 1
        assert len(race_engine.get_entity_history(ORDER_MACHINE, entity)) == 1

    def test_different_entities_do_not_conflict(self, race_engine):
        """Test racing on distinct entities lets every caller through."""
        outcomes = _race(race_engine, [(PAY, _entity(str(n)), None) for n in range(10, 14)])
        assert all(error is None for _, error in outcomes)

    def test_same_entity_in_two_tenants(self, race_engine):
        """Test the tenant is part of the race key."""
        provisioner = TenantProvisioner(race_engine.audit_store.engine)
        provisioner.provision("acme")
        entity = _entity("5")

        outcomes = _race(race_engine, [(PAY, entity, None), (PAY, entity, "acme")])

        assert all(error is None for _, error in outcomes)
        assert race_engine.get_current_state(ORDER_MACHINE, entity) == PAID
        assert race_engine.get_current_state(ORDER_MACHINE, entity, tenant="acme") == PAID
