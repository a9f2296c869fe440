"""Request and response schemas for the stateflow API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EntityBody(BaseModel):
    """Entity addressed by a transition request."""
    entity_type: str = Field(..., min_length=1, max_length=100)
    entity_id: str = Field(..., min_length=1, max_length=191)
    owner_id: Optional[str] = None


class ApplyTransitionRequest(EntityBody):
    comment: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TransitionResponse(BaseModel):
    id: int
    machine_id: int
    from_state_id: int
    to_state_id: int
    label: Optional[str] = None
    guard_id: Optional[str] = None
    sort_order: int = 0


class CurrentStateResponse(BaseModel):
    machine_id: int
    entity_type: str
    entity_id: str
    state_id: int
    state_slug: str
    state_name: str
    is_final: bool


class GuardCheckResponse(BaseModel):
    allowed: bool
    message: str


class AuditLogResponse(BaseModel):
    id: int
    machine_id: int
    entity_type: str
    entity_id: str
    from_state_id: Optional[int]
    to_state_id: int
    transition_id: int
    principal_id: str
    comment: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    sequence: int
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    per_page: int
    pages: int


class ApplyTransitionResponse(BaseModel):
    success: bool = True
    message: str
    from_state_id: int
    to_state_id: int
    entry: AuditLogResponse


class MachineStatsResponse(BaseModel):
    machine_id: int
    total_transitions: int
    unique_entities: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None


def entry_response(entry) -> AuditLogResponse:
    return AuditLogResponse(
        id=entry.id,
        machine_id=entry.machine_id,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        from_state_id=entry.from_state_id,
        to_state_id=entry.to_state_id,
        transition_id=entry.transition_id,
        principal_id=entry.principal_id,
        comment=entry.comment,
        metadata=entry.metadata,
        sequence=entry.sequence,
        created_at=entry.created_at,
    )


def transition_response(transition) -> TransitionResponse:
    return TransitionResponse(
        id=transition.id,
        machine_id=transition.machine_id,
        from_state_id=transition.from_state_id,
        to_state_id=transition.to_state_id,
        label=transition.label,
        guard_id=transition.guard_id,
        sort_order=transition.sort_order,
    )
