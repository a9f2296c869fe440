import inspect
from functools import wraps
from typing import Callable, Optional, Union

from fastapi import Header, HTTPException, Request, status

from stateflow.core.access import AccessPolicy, Permission
from stateflow.core.audit import AuditLogStore
from stateflow.core.config import Settings
from stateflow.core.definitions import DefinitionStore
from stateflow.core.engine import TransitionEngine
from stateflow.core.identity import Principal


def _split(header: Optional[str]) -> list[str]:
    if not header:
        return []
    return [part.strip() for part in header.split(",") if part.strip()]


def get_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_roles: Optional[str] = Header(None),
    x_principal_capabilities: Optional[str] = Header(None),
    x_principal_name: Optional[str] = Header(None),
) -> Principal:
    """Principal shape supplied by the upstream identity provider.

    Authentication happens in front of this service; the headers are
    trusted as given.
    """
    if not x_principal_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Principal-Id header",
        )
    return Principal.of(
        x_principal_id,
        roles=_split(x_principal_roles),
        capabilities=_split(x_principal_capabilities),
        name=x_principal_name,
    )


def get_tenant(x_tenant: Optional[str] = Header(None)) -> Optional[str]:
    """Tenant selected by the ``X-Tenant`` header; None for the shared store."""
    return x_tenant or None


def get_transition_engine(request: Request) -> TransitionEngine:
    return request.app.state.transition_engine


def get_audit_store(request: Request) -> AuditLogStore:
    return request.app.state.audit_store


def get_definitions(request: Request) -> DefinitionStore:
    return request.app.state.definitions


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_permission(*permissions: Union[str, Permission], require_all: bool = False):
    """
    Decorator factory for endpoints requiring specific permissions.

    The endpoint must take ``principal: Principal = Depends(get_principal)``.
    Permissions are checked against the principal's capabilities. Plain
    ``def`` endpoints stay synchronous so FastAPI runs them in its
    threadpool.

    Usage:
        @router.get("/audit-logs")
        @require_permission("audit_logs:list")
        def list_audit_logs(principal: Principal = Depends(get_principal)):
            ...
    """
    def check(kwargs) -> None:
        principal = kwargs.get("principal")
        if principal is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
            )
        AccessPolicy(principal.capabilities).require(*permissions, require_all=require_all)

    def decorator(func: Callable):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                check(kwargs)
                return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            check(kwargs)
            return func(*args, **kwargs)
        return wrapper
    return decorator
