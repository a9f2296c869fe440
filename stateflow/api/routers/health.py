"""Health check endpoints.

- /health: Basic health check
- /health/ready: Readiness probe (database reachable)
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from stateflow import __version__

router = APIRouter(tags=["health"])


def check_database(request: Request) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        with request.app.state.audit_store.engine.connect() as connection:
            connection.execute(text("SELECT 1")).fetchone()
            return {"status": "healthy", "dialect": connection.dialect.name}
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


@router.get("/health")
async def health_check():
    """Returns 200 if the application is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness_probe(request: Request):
    """
    Readiness probe.

    Failure means traffic should not be routed to this instance.
    """
    checks = {"database": check_database(request)}
    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]

    if unhealthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks, "failed": unhealthy},
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "ready", "checks": checks},
    )
