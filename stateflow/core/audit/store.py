"""Append-only audit log store.

Every successfully applied transition produces exactly one entry. The
store owns the shared log and any provisioned tenant logs; all of them
have the same schema (``stateflow.db.models.audit``).

Writers go through ``AuditLogStore.transaction``, which scopes a database
transaction to one (tenant, machine, entity) key:

    with store.transaction(machine_id, entity_type, entity_id, tenant=t) as tx:
        latest = tx.latest()
        ...                     # validate against latest, evaluate guard
        entry = tx.append(new_entry)

On PostgreSQL the key is serialized with a transaction-scoped advisory
lock. On every backend the unique (machine, entity, sequence) constraint
turns a lost race into ``ConcurrencyConflict``.
"""

import hashlib
import logging
import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import Table, func, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from stateflow.core.errors import (
    ConcurrencyConflict,
    PersistenceError,
    StateflowError,
    TenantNotProvisionedError,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    """Log timestamps are stored as naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable record of an applied transition.

    ``id``, ``sequence`` and ``created_at`` are assigned by the store.
    """

    machine_id: int
    entity_type: str
    entity_id: str
    from_state_id: Optional[int]
    to_state_id: int
    transition_id: int
    principal_id: str
    comment: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None, hash=False, compare=False)
    id: Optional[int] = None
    sequence: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "machine_id": self.machine_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "from_state_id": self.from_state_id,
            "to_state_id": self.to_state_id,
            "transition_id": self.transition_id,
            "principal_id": self.principal_id,
            "comment": self.comment,
            "metadata": self.metadata,
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class AuditQuery:
    """Filters for ``AuditLogStore.query``. ``None`` means unfiltered."""

    machine_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    principal_id: Optional[str] = None
    transition_id: Optional[int] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


@dataclass(frozen=True)
class Page:
    """One page of query results, newest first."""

    items: List[AuditLogEntry]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.per_page else 0


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        machine_id=row.machine_id,
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        from_state_id=row.from_state_id,
        to_state_id=row.to_state_id,
        transition_id=row.transition_id,
        principal_id=row.principal_id,
        comment=row.comment,
        metadata=row.extra_data,
        sequence=row.sequence,
        created_at=row.created_at,
    )


def advisory_lock_key(tenant: Optional[str], machine_id: int, entity_type: str, entity_id: str) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock``."""
    raw = f"{tenant or ''}\x1f{machine_id}\x1f{entity_type}\x1f{entity_id}".encode("utf-8")
    digest = hashlib.blake2b(raw, digest_size=8).digest()
    return struct.unpack(">q", digest)[0]


def _translate_error(
    e: SQLAlchemyError,
    entity_type: str,
    entity_id: str,
    tenant: Optional[str],
    action: str = "log transition",
) -> StateflowError:
    if isinstance(e, IntegrityError):
        logger.warning(f"Concurrent write for {entity_type}:{entity_id} tenant={tenant}: {e.orig}")
        return ConcurrencyConflict(
            f"Entity {entity_type}:{entity_id} was transitioned concurrently; retry with fresh state"
        )
    logger.error(f"Audit log {action} failed for {entity_type}:{entity_id} tenant={tenant}: {e}")
    return PersistenceError(f"Failed to {action}: {e}", cause=e)


class AuditTransaction:
    """Reads and writes for one entity key inside one database transaction.

    Database errors raised by ``latest`` and ``append`` are translated to
    ``ConcurrencyConflict`` or ``PersistenceError``.
    """

    def __init__(
        self,
        connection: Connection,
        table: Table,
        machine_id: int,
        entity_type: str,
        entity_id: str,
        tenant: Optional[str] = None,
    ):
        self._conn = connection
        self.tenant = tenant
        self._table = table
        self.machine_id = machine_id
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self._latest: Optional[AuditLogEntry] = None
        self._latest_loaded = False

    def _execute(self, stmt, action: str = "log transition"):
        try:
            return self._conn.execute(stmt)
        except SQLAlchemyError as e:
            raise _translate_error(e, self.entity_type, self.entity_id, self.tenant, action) from e

    def _key_clause(self):
        t = self._table
        return (
            (t.c.machine_id == self.machine_id)
            & (t.c.entity_type == self.entity_type)
            & (t.c.entity_id == self.entity_id)
        )

    def latest(self) -> Optional[AuditLogEntry]:
        """Most recent entry for the key, or None if it has no history."""
        if not self._latest_loaded:
            stmt = (
                select(self._table)
                .where(self._key_clause())
                .order_by(self._table.c.sequence.desc())
                .limit(1)
            )
            row = self._execute(stmt, "read transition log").first()
            self._latest = _row_to_entry(row) if row is not None else None
            self._latest_loaded = True
        return self._latest

    def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Insert ``entry`` as the next entry of the key.

        Returns:
            The stored entry with id, sequence and created_at filled in
        """
        if (entry.machine_id, entry.entity_type, str(entry.entity_id)) != (
            self.machine_id, self.entity_type, self.entity_id
        ):
            raise ValueError("Entry does not belong to this transaction's entity")

        previous = self.latest()
        sequence = (previous.sequence if previous else 0) + 1
        created_at = _as_naive_utc(entry.created_at) if entry.created_at else _utcnow()

        result = self._execute(
            self._table.insert().values(
                machine_id=entry.machine_id,
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                from_state_id=entry.from_state_id,
                to_state_id=entry.to_state_id,
                transition_id=entry.transition_id,
                principal_id=entry.principal_id,
                comment=entry.comment,
                extra_data=entry.metadata,
                sequence=sequence,
                created_at=created_at,
            )
        )
        stored = replace(
            entry,
            entity_id=str(entry.entity_id),
            id=result.inserted_primary_key[0],
            sequence=sequence,
            created_at=created_at,
        )
        self._latest = stored
        return stored


class AuditLogStore:
    """Shared and tenant-isolated transition audit logs."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._provisioned: set[str] = set()
        self._provisioned_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    def resolve_table(self, connection: Connection, tenant: Optional[str] = None) -> Table:
        """Return the log table addressed by ``tenant``.

        Raises:
            TenantNotProvisionedError: If ``tenant`` has no provisioned log
        """
        from stateflow.db.models import TenantRecord, is_valid_tenant_key, tenant_log_table, transition_logs

        if tenant is None:
            return transition_logs
        if not is_valid_tenant_key(tenant):
            raise TenantNotProvisionedError(tenant)

        with self._provisioned_lock:
            known = tenant in self._provisioned
        if not known:
            found = connection.execute(
                select(TenantRecord.key).where(TenantRecord.key == tenant)
            ).first()
            if found is None:
                raise TenantNotProvisionedError(tenant)
            with self._provisioned_lock:
                self._provisioned.add(tenant)
        return tenant_log_table(tenant)

    @contextmanager
    def transaction(
        self,
        machine_id: int,
        entity_type: str,
        entity_id: str,
        *,
        tenant: Optional[str] = None,
    ) -> Iterator[AuditTransaction]:
        """Open a write transaction scoped to one entity key.

        The transaction commits when the block exits normally and rolls back
        if it raises.

        Exceptions raised by the block itself propagate unchanged; only the
        store's own statements and the commit are translated.

        Raises:
            TenantNotProvisionedError: If ``tenant`` has no provisioned log
            ConcurrencyConflict: If another writer appended for the key first
            PersistenceError: On any other database failure
        """
        in_block = False
        try:
            with self._engine.begin() as connection:
                table = self.resolve_table(connection, tenant)
                if connection.dialect.name == "postgresql":
                    connection.execute(
                        text("SELECT pg_advisory_xact_lock(:key)"),
                        {"key": advisory_lock_key(tenant, machine_id, entity_type, str(entity_id))},
                    )
                in_block = True
                yield AuditTransaction(connection, table, machine_id, entity_type, entity_id, tenant)
                in_block = False
        except SQLAlchemyError as e:
            if in_block:
                raise
            raise _translate_error(e, entity_type, str(entity_id), tenant) from e

    def append(self, entry: AuditLogEntry, *, tenant: Optional[str] = None) -> int:
        """Append one entry in its own transaction and return its id."""
        with self.transaction(entry.machine_id, entry.entity_type, entry.entity_id, tenant=tenant) as tx:
            stored = tx.append(entry)
        return stored.id

    @contextmanager
    def _reading(self, tenant: Optional[str]) -> Iterator[tuple]:
        with self._engine.connect() as connection:
            yield connection, self.resolve_table(connection, tenant)

    def latest(
        self,
        machine_id: int,
        entity_type: str,
        entity_id: str,
        *,
        tenant: Optional[str] = None,
    ) -> Optional[AuditLogEntry]:
        """Most recent entry for the entity, or None."""
        with self._reading(tenant) as (connection, table):
            return AuditTransaction(connection, table, machine_id, entity_type, entity_id, tenant).latest()

    def history(
        self,
        machine_id: int,
        entity_type: str,
        entity_id: str,
        *,
        tenant: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        """Entries for one entity, oldest first.

        With ``limit``, the most recent ``limit`` entries are returned, still
        oldest first.
        """
        with self._reading(tenant) as (connection, table):
            stmt = (
                select(table)
                .where(
                    table.c.machine_id == machine_id,
                    table.c.entity_type == entity_type,
                    table.c.entity_id == str(entity_id),
                )
                .order_by(table.c.sequence.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            rows = [_row_to_entry(row) for row in connection.execute(stmt)]
        rows.reverse()
        return rows

    def query(
        self,
        filters: Optional[AuditQuery] = None,
        page: int = 1,
        per_page: int = 50,
        *,
        tenant: Optional[str] = None,
    ) -> Page:
        """Filtered, paginated entries, newest first.

        Args:
            filters: Field filters; None returns everything
            page: 1-based page number
            per_page: Page size

        Returns:
            Page with the items and the unpaginated total
        """
        filters = filters or AuditQuery()
        page = max(page, 1)
        per_page = max(per_page, 1)

        with self._reading(tenant) as (connection, table):
            conditions = self._conditions(table, filters)
            total = connection.execute(
                select(func.count()).select_from(table).where(*conditions)
            ).scalar_one()
            stmt = (
                select(table)
                .where(*conditions)
                .order_by(table.c.created_at.desc(), table.c.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            items = [_row_to_entry(row) for row in connection.execute(stmt)]

        return Page(items=items, total=total, page=page, per_page=per_page)

    def list_entries(
        self,
        filters: Optional[AuditQuery] = None,
        *,
        tenant: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        """Unpaginated entries, newest first (used by exports)."""
        filters = filters or AuditQuery()
        with self._reading(tenant) as (connection, table):
            stmt = (
                select(table)
                .where(*self._conditions(table, filters))
                .order_by(table.c.created_at.desc(), table.c.id.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [_row_to_entry(row) for row in connection.execute(stmt)]

    def machine_stats(self, machine_id: int, *, tenant: Optional[str] = None) -> Dict[str, int]:
        """Transition and distinct-entity counts for one machine."""
        with self._reading(tenant) as (connection, table):
            total = connection.execute(
                select(func.count()).select_from(table).where(table.c.machine_id == machine_id)
            ).scalar_one()
            entities = select(table.c.entity_type, table.c.entity_id).where(
                table.c.machine_id == machine_id
            ).distinct().subquery()
            unique = connection.execute(
                select(func.count()).select_from(entities)
            ).scalar_one()
        return {"total_transitions": total, "unique_entities": unique}

    @staticmethod
    def _conditions(table: Table, filters: AuditQuery) -> list:
        conditions = []
        if filters.machine_id is not None:
            conditions.append(table.c.machine_id == filters.machine_id)
        if filters.entity_type:
            conditions.append(table.c.entity_type == filters.entity_type)
        if filters.entity_id is not None:
            conditions.append(table.c.entity_id == str(filters.entity_id))
        if filters.principal_id:
            conditions.append(table.c.principal_id == filters.principal_id)
        if filters.transition_id is not None:
            conditions.append(table.c.transition_id == filters.transition_id)
        if filters.created_from:
            conditions.append(table.c.created_at >= _as_naive_utc(filters.created_from))
        if filters.created_to:
            conditions.append(table.c.created_at <= _as_naive_utc(filters.created_to))
        return conditions
