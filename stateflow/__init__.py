"""stateflow: transition execution engine with an immutable audit trail."""

__version__ = "0.1.0"
