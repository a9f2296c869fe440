import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from stateflow import __version__
from stateflow.api.routers import audit, health, transitions
from stateflow.core.audit import AuditLogStore
from stateflow.core.config import Settings, get_settings
from stateflow.core.definitions import DefinitionStore, SqlDefinitionStore, load_definitions
from stateflow.core.engine import TransitionEngine
from stateflow.core.errors import (
    AuthorizationError,
    ConcurrencyConflict,
    NotFoundError,
    PersistenceError,
    StateflowError,
    ValidationError,
)
from stateflow.core.guards import GuardRegistry
from stateflow.core.logger import configure_from_settings
from stateflow.db.session import create_db_engine, create_session_factory
from stateflow.services.webhooks import subscriber_from_settings

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_409_CONFLICT,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: StateflowError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def stateflow_error_handler(request: Request, exc: StateflowError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content={"detail": exc.message, "code": exc.code})


def create_app(
    settings: Optional[Settings] = None,
    *,
    db_engine: Optional[Engine] = None,
    definitions: Optional[DefinitionStore] = None,
    guards: Optional[GuardRegistry] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        settings: Defaults to ``get_settings()``
        db_engine: Engine for the audit store; built from settings if omitted
        definitions: Definition store; a YAML file from settings or the
            definition tables if omitted
        guards: Guard registry; the built-in guards if omitted
    """
    settings = settings or get_settings()
    configure_from_settings(settings)

    db_engine = db_engine or create_db_engine(settings.database_url, echo=settings.debug)
    if definitions is None:
        if settings.definitions_file:
            definitions = load_definitions(settings.definitions_file)
        else:
            definitions = SqlDefinitionStore(create_session_factory(db_engine))

    audit_store = AuditLogStore(db_engine)
    engine = TransitionEngine(definitions, audit_store, guards=guards)

    webhooks = subscriber_from_settings(settings)
    if webhooks is not None:
        webhooks.attach(engine)

    app = FastAPI(
        title=settings.app_name,
        description="Transition execution engine with immutable audit trail",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.definitions = definitions
    app.state.audit_store = audit_store
    app.state.transition_engine = engine

    app.add_exception_handler(StateflowError, stateflow_error_handler)

    app.include_router(transitions.router, prefix="/api")
    app.include_router(audit.router, prefix="/api")
    app.include_router(health.router)

    return app


app = create_app()
