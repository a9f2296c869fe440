"""Database triggers that make audit log tables append-only.

Installed on the shared log by migration and on each tenant log at
provisioning time. Installation is idempotent. Dialects without trigger
support here are logged and left unprotected.
"""

import hashlib
import logging
from typing import List

from sqlalchemy import text
from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

PG_FUNCTION = "stateflow_prevent_log_mutation"

_PG_CREATE_FUNCTION = f"""
    CREATE OR REPLACE FUNCTION {PG_FUNCTION}()
    RETURNS TRIGGER AS $trigger$
    BEGIN
        RAISE EXCEPTION 'Transition logs are immutable: % rejected. Record ID: %', lower(TG_OP), OLD.id;
    END;
    $trigger$ LANGUAGE plpgsql;
"""


MAX_IDENTIFIER_LENGTH = 63


def trigger_names(table_name: str) -> List[str]:
    """UPDATE and DELETE trigger names for ``table_name``.

    Names that would exceed PostgreSQL's identifier limit are replaced by a
    hash of the table name, so the two triggers never truncate to the same
    identifier.
    """
    names = [f"{table_name}_prevent_update", f"{table_name}_prevent_delete"]
    if all(len(name) <= MAX_IDENTIFIER_LENGTH for name in names):
        return names
    digest = hashlib.blake2b(table_name.encode("utf-8"), digest_size=8).hexdigest()
    return [f"tlog_{digest}_prevent_update", f"tlog_{digest}_prevent_delete"]


def install_immutability_triggers(connection: Connection, table_name: str) -> bool:
    """Install UPDATE/DELETE rejecting triggers on ``table_name``.

    Args:
        connection: Connection inside the caller's transaction
        table_name: Audit log table to protect

    Returns:
        True if triggers were installed, False for unsupported dialects
    """
    dialect = connection.dialect.name
    update_trigger, delete_trigger = trigger_names(table_name)

    if dialect == "postgresql":
        connection.execute(text(_PG_CREATE_FUNCTION))
        for trigger, operation in ((update_trigger, "UPDATE"), (delete_trigger, "DELETE")):
            connection.execute(text(f'DROP TRIGGER IF EXISTS {trigger} ON "{table_name}"'))
            connection.execute(text(f"""
                CREATE TRIGGER {trigger}
                BEFORE {operation} ON "{table_name}"
                FOR EACH ROW
                EXECUTE FUNCTION {PG_FUNCTION}();
            """))
    elif dialect == "sqlite":
        for trigger, operation in ((update_trigger, "UPDATE"), (delete_trigger, "DELETE")):
            connection.execute(text(f"""
                CREATE TRIGGER IF NOT EXISTS {trigger}
                BEFORE {operation} ON "{table_name}"
                BEGIN
                    SELECT RAISE(ABORT, 'Transition logs are immutable and cannot be {operation.lower()}d');
                END;
            """))
    else:
        logger.warning(f"No immutability triggers for dialect {dialect}; {table_name} is unprotected")
        return False

    logger.debug(f"Installed immutability triggers on {table_name}")
    return True


def drop_immutability_triggers(connection: Connection, table_name: str) -> None:
    """Remove the triggers from ``table_name`` (migration downgrade only)."""
    dialect = connection.dialect.name
    for trigger in trigger_names(table_name):
        if dialect == "postgresql":
            connection.execute(text(f'DROP TRIGGER IF EXISTS {trigger} ON "{table_name}"'))
        elif dialect == "sqlite":
            connection.execute(text(f"DROP TRIGGER IF EXISTS {trigger}"))
