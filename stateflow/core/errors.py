"""Error taxonomy for the transition engine.

Every error carries a human-readable message that callers may render verbatim.
None of these are retried internally.
"""

from typing import Optional


class StateflowError(Exception):
    """Base class for all engine errors."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StateflowError):
    """Unknown machine, state, transition, guard or callback identifier."""

    code = "not_found"

    def __init__(self, kind: str, identifier, message: Optional[str] = None):
        super().__init__(message or f"{kind.capitalize()} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class TenantNotProvisionedError(NotFoundError):
    """Audit store for a tenant was never provisioned."""

    def __init__(self, tenant: str):
        super().__init__(
            "tenant",
            tenant,
            f"Tenant '{tenant}' has no provisioned audit log store",
        )
        self.tenant = tenant


class ValidationError(StateflowError):
    """Entity is not in the state the transition starts from."""

    code = "invalid_current_state"

    def __init__(
        self,
        message: str,
        *,
        current_state_id: Optional[int] = None,
        required_state_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.current_state_id = current_state_id
        self.required_state_id = required_state_id


class AuthorizationError(StateflowError):
    """A guard (or access policy) denied the operation."""

    code = "guard_failed"

    def __init__(self, message: str, *, guard_id: Optional[str] = None):
        super().__init__(message)
        self.guard_id = guard_id


class ConcurrencyConflict(StateflowError):
    """Another writer committed a transition for the same entity first."""

    code = "concurrency_conflict"


class PersistenceError(StateflowError):
    """The audit log write failed after validation and authorization passed."""

    code = "log_failed"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
