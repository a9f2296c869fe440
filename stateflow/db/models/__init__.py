"""Database models for stateflow."""

from stateflow.db.models.definition import MachineRecord, StateRecord, TransitionRecord
from stateflow.db.models.audit import (
    SHARED_LOG_TABLE,
    TENANT_KEY_PATTERN,
    TenantRecord,
    build_log_table,
    is_valid_tenant_key,
    tenant_log_table,
    tenant_table_name,
    transition_logs,
)

__all__ = [
    "MachineRecord",
    "StateRecord",
    "TransitionRecord",
    "SHARED_LOG_TABLE",
    "TENANT_KEY_PATTERN",
    "TenantRecord",
    "build_log_table",
    "is_valid_tenant_key",
    "tenant_log_table",
    "tenant_table_name",
    "transition_logs",
]
