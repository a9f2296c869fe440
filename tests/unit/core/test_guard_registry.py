"""Tests for guard registry lookup and evaluation."""

import logging

import pytest

from stateflow.core.errors import NotFoundError
from stateflow.core.guards import Guard, GuardRegistry, GuardResult, create_default_registry

from tests.factories import make_entity, make_principal


class AlwaysGuard(Guard):
    """Allows everything."""

    key = "always"

    def evaluate(self, entity, principal, metadata):
        return GuardResult.allow()


class ExplodingGuard(Guard):
    """Raises on evaluation."""

    key = "exploding"

    def evaluate(self, entity, principal, metadata):
        raise RuntimeError("directory unavailable")


class TestGuardRegistry:
    """Test GuardRegistry."""

    def test_default_registry_keys(self):
        """Test the built-in guards are registered."""
        assert create_default_registry().list_guards() == ["callback", "capability", "owner", "role"]

    def test_register_and_build(self):
        """Test registering a custom factory."""
        registry = GuardRegistry()
        registry.register("always", lambda r: AlwaysGuard())
        assert registry.has("always")
        assert isinstance(registry.build("always"), AlwaysGuard)

    def test_unregister(self):
        """Test unregistering a factory."""
        registry = GuardRegistry()
        registry.register("always", lambda r: AlwaysGuard())
        registry.unregister("always")
        assert not registry.has("always")
        registry.unregister("always")  # no error

    def test_build_unknown_raises(self):
        """Test unknown guard ids fail closed."""
        with pytest.raises(NotFoundError, match="Guard not found: nope"):
            GuardRegistry().build("nope")

    def test_evaluate_without_guard_allows(self):
        """Test unguarded transitions are allowed."""
        result = GuardRegistry().evaluate(None, make_entity(), make_principal())
        assert result == GuardResult(True, "Transition is allowed")

    def test_evaluate_unknown_raises(self):
        """Test evaluation of an unknown guard raises rather than allowing."""
        with pytest.raises(NotFoundError):
            GuardRegistry().evaluate("nope", make_entity(), make_principal())

    def test_guard_exception_is_denial(self):
        """Test a guard raising is reported as a denial."""
        registry = GuardRegistry()
        registry.register("exploding", lambda r: ExplodingGuard())
        result = registry.evaluate("exploding", make_entity(), make_principal())
        assert not result.allowed
        assert result.message == "Guard check failed: directory unavailable"

    def test_evaluation_logged_at_debug(self, caplog):
        """Test guard verdicts are logged at DEBUG."""
        registry = create_default_registry()
        with caplog.at_level(logging.DEBUG, logger="stateflow.core.guards.registry"):
            registry.evaluate("role", make_entity(), make_principal(roles=["admin"]), {"required_roles": ["admin"]})
        assert any("allowed=True" in r.getMessage() for r in caplog.records)

    def test_overwrite_warns(self, caplog):
        """Test re-registering a key logs a warning."""
        registry = create_default_registry()
        with caplog.at_level(logging.WARNING, logger="stateflow.core.guards.registry"):
            registry.register("role", lambda r: AlwaysGuard())
        assert "Overwriting" in caplog.text

    def test_callback_lookup(self):
        """Test named callback registration."""
        registry = GuardRegistry()
        check = lambda entity, principal: True  # noqa: E731
        registry.register_callback("check", check)
        assert registry.get_callback("check") is check
        registry.unregister_callback("check")
        with pytest.raises(NotFoundError):
            registry.get_callback("check")
