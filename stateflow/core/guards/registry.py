"""Guard registry.

Maps the guard identifier stored on a transition to a factory that builds
the guard. Lookups fail closed: an identifier with no registered factory is
an error, never an implicit allow.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from stateflow.core.errors import NotFoundError
from stateflow.core.identity import EntityRef, Principal
from .base import Guard, GuardResult
from .builtin import CallbackGuard, CapabilityGuard, OwnerGuard, RoleGuard

logger = logging.getLogger(__name__)

GuardFactory = Callable[["GuardRegistry"], Guard]
GuardCallback = Callable[[EntityRef, Principal], Union[bool, Tuple[bool, str]]]


class GuardRegistry:
    """Registry of guard factories and named guard callbacks."""

    def __init__(self):
        self._factories: Dict[str, GuardFactory] = {}
        self._callbacks: Dict[str, GuardCallback] = {}

    def register(self, key: str, factory: GuardFactory) -> None:
        """Register a guard factory.

        Args:
            key: Identifier stored in ``Transition.guard_id``
            factory: Callable receiving this registry and returning a Guard
        """
        if key in self._factories:
            logger.warning(f"Overwriting existing guard factory: {key}")
        self._factories[key] = factory
        logger.debug(f"Registered guard factory: {key}")

    def unregister(self, key: str) -> None:
        if key in self._factories:
            del self._factories[key]
            logger.debug(f"Unregistered guard factory: {key}")

    def has(self, key: str) -> bool:
        return key in self._factories

    def list_guards(self) -> List[str]:
        return sorted(self._factories)

    def build(self, key: str) -> Guard:
        """Build the guard registered under ``key``.

        Raises:
            NotFoundError: If no factory is registered under ``key``
        """
        factory = self._factories.get(key)
        if factory is None:
            raise NotFoundError("guard", key)
        return factory(self)

    def register_callback(self, name: str, callback: GuardCallback) -> None:
        """Register a named callback for the ``callback`` guard."""
        if name in self._callbacks:
            logger.warning(f"Overwriting existing guard callback: {name}")
        self._callbacks[name] = callback

    def unregister_callback(self, name: str) -> None:
        self._callbacks.pop(name, None)

    def get_callback(self, name: str) -> GuardCallback:
        """Resolve a named callback.

        Raises:
            NotFoundError: If no callback is registered under ``name``
        """
        callback = self._callbacks.get(name)
        if callback is None:
            raise NotFoundError("callback", name)
        return callback

    def evaluate(
        self,
        key: Optional[str],
        entity: EntityRef,
        principal: Principal,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> GuardResult:
        """Build and evaluate a guard.

        A missing key means the transition is unguarded and always allowed.
        Unknown guard keys and callback names propagate as ``NotFoundError``;
        any other exception raised by the guard becomes a denial.

        Args:
            key: Guard identifier, or None for an unguarded transition
            entity: The entity being transitioned
            principal: The acting identity
            metadata: Transition metadata passed to the guard

        Returns:
            GuardResult with the verdict

        Raises:
            NotFoundError: If the guard or its callback is not registered
        """
        if not key:
            return GuardResult.allow("Transition is allowed")

        guard = self.build(key)
        try:
            result = guard.evaluate(entity, principal, metadata or {})
        except NotFoundError:
            raise
        except Exception as e:
            logger.warning(f"Guard {key} raised for {entity}: {e}")
            return GuardResult.deny(f"Guard check failed: {e}")

        logger.debug(
            f"Guard {key} for {entity} principal={principal.id}: "
            f"allowed={result.allowed} ({result.message})"
        )
        return result


def create_default_registry() -> GuardRegistry:
    """Create a registry with the built-in guards registered."""
    registry = GuardRegistry()
    registry.register(RoleGuard.key, lambda _registry: RoleGuard())
    registry.register(CapabilityGuard.key, lambda _registry: CapabilityGuard())
    registry.register(OwnerGuard.key, lambda _registry: OwnerGuard())
    registry.register(CallbackGuard.key, CallbackGuard)
    return registry
