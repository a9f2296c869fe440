"""Engine and session factory construction."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections may be used from any thread and writers wait up to
    30 seconds for the file lock. Other databases use the default pool with
    pre-ping.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create the shared schema directly, without migrations.

    Used by tests and single-file SQLite deployments; production databases
    are managed with Alembic.
    """
    from stateflow.db.base import Base
    from stateflow.db.immutability import install_immutability_triggers
    from stateflow.db.models import SHARED_LOG_TABLE

    Base.metadata.create_all(engine)
    with engine.begin() as connection:
        install_immutability_triggers(connection, SHARED_LOG_TABLE)
