"""Immutable transition audit trail, optionally isolated per tenant."""

from .store import (
    AuditLogEntry,
    AuditLogStore,
    AuditQuery,
    AuditTransaction,
    Page,
    advisory_lock_key,
)
from .tenancy import TenantProvisioner
from .export import CSV_HEADER, export_csv, write_csv

__all__ = [
    "AuditLogEntry",
    "AuditLogStore",
    "AuditQuery",
    "AuditTransaction",
    "Page",
    "advisory_lock_key",
    "TenantProvisioner",
    "CSV_HEADER",
    "export_csv",
    "write_csv",
]
