"""Built-in guard variants.

Metadata keys consumed:
    role        required_roles       list of role names (or a single name)
    capability  required_capability  capability string, wildcards honoured
    owner       (none)               compares principal.id to entity.owner_id
    callback    callback             name of a registered callback function
"""

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from stateflow.core.access import grants
from stateflow.core.identity import EntityRef, Principal
from .base import Guard, GuardResult

if TYPE_CHECKING:
    from .registry import GuardRegistry

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, Iterable):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value)]


class RoleGuard(Guard):
    """Allows principals holding at least one of the required roles."""

    key = "role"

    def evaluate(self, entity: EntityRef, principal: Principal, metadata: Mapping[str, Any]) -> GuardResult:
        required = _as_list(metadata.get("required_roles"))
        if not required:
            return GuardResult.deny("No roles configured for this guard")

        matched = sorted(principal.roles.intersection(required))
        if matched:
            return GuardResult.allow(f"Principal has required role: {', '.join(matched)}")

        held = ", ".join(sorted(principal.roles)) or "none"
        return GuardResult.deny(
            f"Principal does not have required role. "
            f"Required: {', '.join(required)}. Principal has: {held}"
        )


class CapabilityGuard(Guard):
    """Allows principals holding the required capability."""

    key = "capability"

    def evaluate(self, entity: EntityRef, principal: Principal, metadata: Mapping[str, Any]) -> GuardResult:
        required = metadata.get("required_capability")
        if not required:
            return GuardResult.deny("No capability configured for this guard")

        if grants(principal.capabilities, str(required)):
            return GuardResult.allow(f"Principal has required capability: {required}")
        return GuardResult.deny(f"Principal lacks required capability: {required}")


class OwnerGuard(Guard):
    """Allows only the owner the caller named for the entity."""

    key = "owner"

    def evaluate(self, entity: EntityRef, principal: Principal, metadata: Mapping[str, Any]) -> GuardResult:
        if entity.owner_id is None:
            return GuardResult.deny(f"No owner supplied for entity {entity}")
        if entity.owner_id == principal.id:
            return GuardResult.allow("Principal is the owner of this entity")
        return GuardResult.deny("Principal is not the owner of this entity")


class CallbackGuard(Guard):
    """Delegates to a named callback registered with the guard registry.

    The callback is resolved at evaluation time, so callbacks registered
    after the guard was built are still found. It may return a bool or an
    ``(allowed, message)`` pair.
    """

    key = "callback"

    def __init__(self, registry: "GuardRegistry"):
        self._registry = registry

    def evaluate(self, entity: EntityRef, principal: Principal, metadata: Mapping[str, Any]) -> GuardResult:
        name = metadata.get("callback")
        if not name:
            return GuardResult.deny("No callback configured for this guard")

        callback = self._registry.get_callback(str(name))
        outcome = callback(entity, principal)

        if isinstance(outcome, tuple):
            allowed, message = outcome
            return GuardResult(bool(allowed), str(message))
        if isinstance(outcome, bool):
            if outcome:
                return GuardResult.allow(f"Callback '{name}' allowed the transition")
            return GuardResult.deny(f"Callback '{name}' denied the transition")

        logger.warning(f"Callback {name} returned {type(outcome).__name__}, treating as denial")
        return GuardResult.deny(f"Invalid callback result: {type(outcome).__name__}")
