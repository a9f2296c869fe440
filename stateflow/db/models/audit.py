"""Transition audit log tables.

The shared log and every tenant log have the same shape, so they are built
from one table factory rather than mapped classes. Rows are IMMUTABLE:
database triggers (see ``stateflow.db.immutability``) reject UPDATE and
DELETE.

Tenant tables are created only by explicit provisioning and are recorded in
the ``tenants`` table.
"""

import re
import threading
from datetime import datetime
from typing import Dict

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    JSON,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

from stateflow.db.base import Base

SHARED_LOG_TABLE = "transition_logs"
TENANT_TABLE_PREFIX = "transition_logs_t_"
TENANT_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_]{0,39}$")


def build_log_table(name: str, metadata: MetaData) -> Table:
    """Define an audit log table named ``name`` on ``metadata``."""
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("machine_id", Integer, nullable=False),
        Column("entity_type", String(100), nullable=False),
        Column("entity_id", String(191), nullable=False),
        Column("from_state_id", Integer, nullable=True),  # NULL for the first transition
        Column("to_state_id", Integer, nullable=False),
        Column("transition_id", Integer, nullable=False),
        Column("principal_id", String(191), nullable=False),
        Column("comment", Text, nullable=True),
        Column("extra_data", JSON, nullable=True),
        # 1-based position within (machine_id, entity_type, entity_id)
        Column("sequence", Integer, nullable=False),
        Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
        UniqueConstraint(
            "machine_id", "entity_type", "entity_id", "sequence",
            name=f"uq_{name}_entity_sequence",
        ),
        Index(f"ix_{name}_entity", "machine_id", "entity_type", "entity_id"),
        Index(f"ix_{name}_principal", "principal_id"),
        Index(f"ix_{name}_created", "created_at"),
    )


transition_logs = build_log_table(SHARED_LOG_TABLE, Base.metadata)


class TenantRecord(Base):
    """A provisioned tenant and the log table it owns."""
    __tablename__ = "tenants"

    key = Column(String(40), primary_key=True)
    table_name = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<TenantRecord {self.key}>"


def is_valid_tenant_key(tenant: str) -> bool:
    return isinstance(tenant, str) and bool(TENANT_KEY_PATTERN.match(tenant))


def tenant_table_name(tenant: str) -> str:
    """Return the log table name for ``tenant``.

    Raises:
        ValueError: If the tenant key is malformed
    """
    if not is_valid_tenant_key(tenant):
        raise ValueError(
            f"Invalid tenant key: {tenant!r}. "
            f"Must match {TENANT_KEY_PATTERN.pattern}"
        )
    return f"{TENANT_TABLE_PREFIX}{tenant}"


# Tenant tables live on their own MetaData so migrations never see them
_tenant_metadata = MetaData()
_tenant_tables: Dict[str, Table] = {}
_tenant_tables_lock = threading.Lock()


def tenant_log_table(tenant: str) -> Table:
    """Return the (cached) Table object for a tenant's log.

    Only describes the table; it does not create it.
    """
    name = tenant_table_name(tenant)
    with _tenant_tables_lock:
        table = _tenant_tables.get(name)
        if table is None:
            table = build_log_table(name, _tenant_metadata)
            _tenant_tables[name] = table
        return table
