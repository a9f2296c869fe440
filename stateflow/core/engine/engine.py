"""Transition execution engine.

Stateless between calls: an entity's current state is derived from its
latest audit log entry (or the machine's initial state when it has none),
so the engine holds nothing per entity.

apply_transition:
    1. resolve the transition                    NotFoundError
    2. derive the current state, compare         ValidationError
    3. evaluate the guard                        AuthorizationError
    4. fire before-transition                    listener's exception
    5. append the audit log entry                ConcurrencyConflict / PersistenceError
    6. fire after-transition-success

Steps 2 to 5 run inside one audit store transaction for the entity key.
Failures after step 1 fire after-transition-failure; NotFoundError never
does.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from stateflow.core.audit import AuditLogEntry, AuditLogStore
from stateflow.core.definitions import DefinitionStore, Machine, Transition
from stateflow.core.errors import AuthorizationError, NotFoundError, ValidationError
from stateflow.core.guards import GuardRegistry, GuardResult, create_default_registry
from stateflow.core.identity import EntityRef, Principal
from .events import EventKind, NotificationBus, TransitionEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a successful ``apply_transition``."""

    entry: AuditLogEntry
    from_state_id: int
    to_state_id: int
    transition: Transition
    message: str

    @property
    def log_id(self) -> int:
        return self.entry.id


class TransitionEngine:
    """Applies transitions to entities and records them in the audit log."""

    def __init__(
        self,
        definitions: DefinitionStore,
        audit_store: AuditLogStore,
        guards: Optional[GuardRegistry] = None,
        bus: Optional[NotificationBus] = None,
    ):
        """
        Args:
            definitions: Read-only machine/state/transition lookups
            audit_store: Store for current-state reads and log writes
            guards: Guard registry; defaults to the built-in guards
            bus: Notification bus; a fresh one is created if omitted
        """
        self.definitions = definitions
        self.audit_store = audit_store
        self.guards = guards or create_default_registry()
        self.bus = bus or NotificationBus()

    def subscribe(self, kind: EventKind, listener) -> None:
        self.bus.subscribe(kind, listener)

    def unsubscribe(self, kind: EventKind, listener) -> None:
        self.bus.unsubscribe(kind, listener)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_current_state(
        self,
        machine_id: int,
        entity: EntityRef,
        *,
        tenant: Optional[str] = None,
    ) -> int:
        """Derive the entity's current state id.

        Raises:
            NotFoundError: If the machine (or tenant) is unknown
        """
        machine = self.definitions.get_machine(machine_id)
        latest = self.audit_store.latest(
            machine.id, entity.entity_type, entity.entity_id, tenant=tenant
        )
        return self._derive_state(machine, latest)

    def get_available_transitions(
        self,
        machine_id: int,
        entity: EntityRef,
        *,
        tenant: Optional[str] = None,
    ) -> List[Transition]:
        """Transitions leaving the entity's current state.

        Guards are not evaluated; enforcement happens only when applying.
        Ordered by (sort_order, id).
        """
        current = self.get_current_state(machine_id, entity, tenant=tenant)
        return sorted(
            self.definitions.transitions_from(machine_id, current),
            key=lambda t: t.ordering_key,
        )

    def can_transition(
        self,
        transition_id: int,
        entity: EntityRef,
        principal: Principal,
        *,
        tenant: Optional[str] = None,
    ) -> GuardResult:
        """Check whether ``principal`` may apply a transition right now.

        Returns:
            GuardResult; denied when the guard says no

        Raises:
            NotFoundError: Unknown transition, machine, guard or tenant
            ValidationError: The entity is not in the transition's from-state
        """
        transition = self.definitions.get_transition(transition_id)
        machine = self.definitions.get_machine(transition.machine_id)
        latest = self.audit_store.latest(
            machine.id, entity.entity_type, entity.entity_id, tenant=tenant
        )
        self._check_from_state(transition, self._derive_state(machine, latest))
        return self.guards.evaluate(transition.guard_id, entity, principal, transition.metadata)

    def get_entity_history(
        self,
        machine_id: int,
        entity: EntityRef,
        *,
        tenant: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        """Audit entries for one entity, oldest first."""
        machine = self.definitions.get_machine(machine_id)
        return self.audit_store.history(
            machine.id, entity.entity_type, entity.entity_id, tenant=tenant, limit=limit
        )

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def apply_transition(
        self,
        transition_id: int,
        entity: EntityRef,
        principal: Principal,
        comment: Optional[str] = None,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        tenant: Optional[str] = None,
    ) -> TransitionResult:
        """Apply a transition and record it.

        Args:
            transition_id: Transition to apply
            entity: Entity being moved
            principal: Acting identity
            comment: Optional free-text note stored with the entry
            metadata: Optional data stored with the entry
            tenant: Audit store to use; None for the shared store

        Returns:
            TransitionResult carrying the stored entry

        Raises:
            NotFoundError: Unknown transition, machine, guard, callback or tenant
            ValidationError: The entity is not in the transition's from-state
            AuthorizationError: The guard denied the transition
            ConcurrencyConflict: Another writer moved the entity first
            PersistenceError: The audit log write failed
            Exception: Whatever a before-transition listener raised
        """
        transition = self.definitions.get_transition(transition_id)
        machine = self.definitions.get_machine(transition.machine_id)
        from_state_id: Optional[int] = None

        try:
            with self.audit_store.transaction(
                machine.id, entity.entity_type, entity.entity_id, tenant=tenant
            ) as tx:
                from_state_id = self._derive_state(machine, tx.latest())
                self._check_from_state(transition, from_state_id)

                verdict = self.guards.evaluate(
                    transition.guard_id, entity, principal, transition.metadata
                )
                if not verdict.allowed:
                    raise AuthorizationError(verdict.message, guard_id=transition.guard_id)

                self.bus.publish(self._event(
                    EventKind.BEFORE, transition, entity, principal, from_state_id,
                    comment=comment, tenant=tenant,
                ))

                entry = tx.append(AuditLogEntry(
                    machine_id=machine.id,
                    entity_type=entity.entity_type,
                    entity_id=entity.entity_id,
                    from_state_id=from_state_id,
                    to_state_id=transition.to_state_id,
                    transition_id=transition.id,
                    principal_id=principal.id,
                    comment=comment,
                    metadata=metadata,
                ))
        except NotFoundError:
            raise
        except Exception as e:
            logger.warning(
                f"Transition {transition.id} failed for {entity} "
                f"principal={principal.id} tenant={tenant}: {e}"
            )
            self.bus.publish(self._event(
                EventKind.AFTER_FAILURE, transition, entity, principal, from_state_id,
                comment=comment, tenant=tenant, error=e,
            ))
            raise

        message = (
            f"Successfully transitioned from {self._state_name(from_state_id)} "
            f"to {self._state_name(transition.to_state_id)}"
        )
        logger.info(
            f"Applied transition {transition.id} to {entity}: "
            f"{from_state_id} -> {transition.to_state_id} "
            f"principal={principal.id} tenant={tenant} log_id={entry.id}"
        )

        self.bus.publish(self._event(
            EventKind.AFTER_SUCCESS, transition, entity, principal, from_state_id,
            comment=comment, tenant=tenant, entry=entry,
        ))

        return TransitionResult(
            entry=entry,
            from_state_id=from_state_id,
            to_state_id=transition.to_state_id,
            transition=transition,
            message=message,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _derive_state(machine: Machine, latest: Optional[AuditLogEntry]) -> int:
        return latest.to_state_id if latest is not None else machine.initial_state_id

    def _check_from_state(self, transition: Transition, current_state_id: int) -> None:
        if current_state_id == transition.from_state_id:
            return
        raise ValidationError(
            f'Invalid transition. Current state is "{self._state_name(current_state_id)}" '
            f'but transition requires "{self._state_name(transition.from_state_id)}"',
            current_state_id=current_state_id,
            required_state_id=transition.from_state_id,
        )

    def _state_name(self, state_id: Optional[int]) -> str:
        if state_id is None:
            return "initial"
        try:
            return self.definitions.get_state(state_id).display_name
        except NotFoundError:
            return str(state_id)

    @staticmethod
    def _event(
        kind: EventKind,
        transition: Transition,
        entity: EntityRef,
        principal: Principal,
        from_state_id: Optional[int],
        **extra,
    ) -> TransitionEvent:
        return TransitionEvent(
            kind=kind,
            machine_id=transition.machine_id,
            entity_ref=entity,
            from_state_id=from_state_id,
            to_state_id=transition.to_state_id,
            transition_id=transition.id,
            principal=principal,
            **extra,
        )
