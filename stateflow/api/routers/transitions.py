"""Entity state and transition endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from stateflow.api.deps import (
    get_audit_store,
    get_principal,
    get_tenant,
    get_transition_engine,
    require_permission,
)
from stateflow.api.schemas import (
    ApplyTransitionRequest,
    ApplyTransitionResponse,
    AuditLogResponse,
    CurrentStateResponse,
    EntityBody,
    GuardCheckResponse,
    MachineStatsResponse,
    TransitionResponse,
    entry_response,
    transition_response,
)
from stateflow.core.audit import AuditLogStore
from stateflow.core.engine import TransitionEngine
from stateflow.core.identity import EntityRef, Principal

router = APIRouter(tags=["transitions"])


@router.get(
    "/machines/{machine_id}/entities/{entity_type}/{entity_id}/state",
    response_model=CurrentStateResponse,
)
@require_permission("transitions:read")
def get_current_state(
    machine_id: int,
    entity_type: str,
    entity_id: str,
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    engine: TransitionEngine = Depends(get_transition_engine),
):
    """Derived current state of an entity."""
    entity = EntityRef(entity_type, entity_id)
    state_id = engine.get_current_state(machine_id, entity, tenant=tenant)
    state = engine.definitions.get_state(state_id)
    return CurrentStateResponse(
        machine_id=machine_id,
        entity_type=entity.entity_type,
        entity_id=entity.entity_id,
        state_id=state.id,
        state_slug=state.slug,
        state_name=state.display_name,
        is_final=state.is_final,
    )


@router.get(
    "/machines/{machine_id}/entities/{entity_type}/{entity_id}/transitions",
    response_model=List[TransitionResponse],
)
@require_permission("transitions:read")
def list_available_transitions(
    machine_id: int,
    entity_type: str,
    entity_id: str,
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    engine: TransitionEngine = Depends(get_transition_engine),
):
    """
    Transitions leaving the entity's current state.

    Guards are not evaluated here; use the check endpoint for that.
    """
    transitions = engine.get_available_transitions(
        machine_id, EntityRef(entity_type, entity_id), tenant=tenant
    )
    return [transition_response(t) for t in transitions]


@router.get(
    "/machines/{machine_id}/entities/{entity_type}/{entity_id}/history",
    response_model=List[AuditLogResponse],
)
@require_permission("transitions:read")
def get_entity_history(
    machine_id: int,
    entity_type: str,
    entity_id: str,
    limit: Optional[int] = Query(None, ge=1),
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    engine: TransitionEngine = Depends(get_transition_engine),
):
    """Audit entries for one entity, oldest first."""
    entries = engine.get_entity_history(
        machine_id, EntityRef(entity_type, entity_id), tenant=tenant, limit=limit
    )
    return [entry_response(e) for e in entries]


@router.get("/machines/{machine_id}/stats", response_model=MachineStatsResponse)
@require_permission("audit_logs:read")
def get_machine_stats(
    machine_id: int,
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    engine: TransitionEngine = Depends(get_transition_engine),
    store: AuditLogStore = Depends(get_audit_store),
):
    """Transition and entity counts for a machine."""
    engine.definitions.get_machine(machine_id)
    stats = store.machine_stats(machine_id, tenant=tenant)
    return MachineStatsResponse(machine_id=machine_id, **stats)


@router.post("/transitions/{transition_id}/check", response_model=GuardCheckResponse)
@require_permission("transitions:apply")
def check_transition(
    transition_id: int,
    body: EntityBody,
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    engine: TransitionEngine = Depends(get_transition_engine),
):
    """Whether the caller could apply the transition right now."""
    entity = EntityRef(body.entity_type, body.entity_id, body.owner_id)
    verdict = engine.can_transition(transition_id, entity, principal, tenant=tenant)
    return GuardCheckResponse(allowed=verdict.allowed, message=verdict.message)


@router.post("/transitions/{transition_id}/apply", response_model=ApplyTransitionResponse)
@require_permission("transitions:apply")
def apply_transition(
    transition_id: int,
    body: ApplyTransitionRequest,
    principal: Principal = Depends(get_principal),
    tenant: Optional[str] = Depends(get_tenant),
    engine: TransitionEngine = Depends(get_transition_engine),
):
    """Apply a transition and return the recorded audit entry."""
    entity = EntityRef(body.entity_type, body.entity_id, body.owner_id)
    result = engine.apply_transition(
        transition_id,
        entity,
        principal,
        body.comment,
        metadata=body.metadata,
        tenant=tenant,
    )
    return ApplyTransitionResponse(
        message=result.message,
        from_state_id=result.from_state_id,
        to_state_id=result.to_state_id,
        entry=entry_response(result.entry),
    )
