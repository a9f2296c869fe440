"""Pytest configuration and shared fixtures."""

import pytest

from stateflow.core.audit import AuditLogStore, TenantProvisioner
from stateflow.core.config import Settings
from stateflow.core.engine import TransitionEngine
from stateflow.core.guards import create_default_registry
from stateflow.db.session import create_db_engine, init_db

from tests.factories import make_definitions, make_principal


@pytest.fixture
def database_url(tmp_path):
    """SQLite file database, shareable across threads."""
    return f"sqlite:///{tmp_path / 'stateflow.db'}"


@pytest.fixture
def db_engine(database_url):
    """Engine with the shared schema and immutability triggers installed."""
    engine = create_db_engine(database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def definitions():
    return make_definitions()


@pytest.fixture
def audit_store(db_engine):
    return AuditLogStore(db_engine)


@pytest.fixture
def provisioner(db_engine):
    return TenantProvisioner(db_engine)


@pytest.fixture
def guard_registry():
    registry = create_default_registry()
    registry.register_callback("can_reject", lambda entity, principal: "reviewer" in principal.roles)
    return registry


@pytest.fixture
def engine(definitions, audit_store, guard_registry):
    """Transition engine over the order and document machines."""
    return TransitionEngine(definitions, audit_store, guards=guard_registry)


@pytest.fixture
def admin():
    return make_principal("admin-1", roles=["admin"], capabilities=["*:*"], name="Ada Admin")


@pytest.fixture
def clerk():
    return make_principal(
        "clerk-1",
        roles=["clerk"],
        capabilities=["transitions:read", "transitions:apply", "audit_logs:list"],
    )


@pytest.fixture
def settings(database_url, tmp_path):
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url=database_url,
        log_dir=str(tmp_path / "logs"),
        file_logging=False,
        default_page_size=2,
        max_page_size=5,
    )
