"""Audit log query and export endpoints."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from stateflow.api.deps import (
    get_app_settings,
    get_audit_store,
    get_definitions,
    get_principal,
    get_tenant,
    require_permission,
)
from stateflow.api.schemas import AuditLogListResponse, entry_response
from stateflow.core.audit import AuditLogStore, AuditQuery, export_csv
from stateflow.core.config import Settings
from stateflow.core.definitions import DefinitionStore
from stateflow.core.identity import Principal

router = APIRouter(prefix="/audit-logs", tags=["audit"])


def _filters(
    machine_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    principal_id: Optional[str] = None,
    transition_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> AuditQuery:
    return AuditQuery(
        machine_id=machine_id,
        entity_type=entity_type,
        entity_id=entity_id,
        principal_id=principal_id,
        transition_id=transition_id,
        created_from=start_date,
        created_to=end_date,
    )


@router.get("", response_model=AuditLogListResponse)
@require_permission("audit_logs:list")
def list_audit_logs(
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
    filters: AuditQuery = Depends(_filters),
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    store: AuditLogStore = Depends(get_audit_store),
    settings: Settings = Depends(get_app_settings),
):
    """
    List transition audit logs, newest first.

    Supports filtering by machine, entity, principal, transition and date range.
    """
    per_page = min(per_page or settings.default_page_size, settings.max_page_size)

    result = store.query(filters, page=page, per_page=per_page, tenant=tenant)
    return AuditLogListResponse(
        items=[entry_response(e) for e in result.items],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        pages=result.pages,
    )


@router.get("/export/csv")
@require_permission("audit_logs:export")
def export_audit_logs_csv(
    filters: AuditQuery = Depends(_filters),
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    store: AuditLogStore = Depends(get_audit_store),
    definitions: DefinitionStore = Depends(get_definitions),
    settings: Settings = Depends(get_app_settings),
):
    """Export transition audit logs as CSV for reporting."""
    entries = store.list_entries(filters, tenant=tenant, limit=settings.export_limit)
    document = export_csv(entries, definitions)

    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    filename = f"transition_logs_{tenant + '_' if tenant else ''}{date_str}.csv"

    return StreamingResponse(
        iter([document]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
