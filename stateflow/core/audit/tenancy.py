"""Ahead-of-time provisioning of tenant audit logs.

A tenant log is created here and nowhere else. Reads and writes against a
tenant that was never provisioned fail with ``TenantNotProvisionedError``.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class TenantProvisioner:
    """Creates and lists tenant audit log tables."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def provision(self, tenant: str) -> bool:
        """Create the tenant's log table, indexes and triggers.

        Idempotent: provisioning an existing tenant changes nothing.

        Args:
            tenant: Tenant key, ``^[a-z0-9][a-z0-9_]{0,39}$``

        Returns:
            True if the tenant was created, False if it already existed

        Raises:
            ValueError: If the tenant key is malformed
        """
        from stateflow.db.immutability import install_immutability_triggers
        from stateflow.db.models import TenantRecord, tenant_log_table

        table = tenant_log_table(tenant)

        if self.is_provisioned(tenant):
            logger.debug(f"Tenant {tenant} already provisioned")
            return False

        try:
            with self._engine.begin() as connection:
                table.create(connection, checkfirst=True)
                install_immutability_triggers(connection, table.name)
                connection.execute(
                    TenantRecord.__table__.insert().values(key=tenant, table_name=table.name)
                )
        except IntegrityError:
            # Provisioned concurrently by another process
            logger.info(f"Tenant {tenant} was provisioned concurrently")
            return False

        logger.info(f"Provisioned tenant {tenant} ({table.name})")
        return True

    def is_provisioned(self, tenant: str) -> bool:
        from stateflow.db.models import TenantRecord, is_valid_tenant_key

        if not is_valid_tenant_key(tenant):
            return False
        with self._engine.connect() as connection:
            found = connection.execute(
                select(TenantRecord.key).where(TenantRecord.key == tenant)
            ).first()
        return found is not None

    def list_tenants(self) -> List[str]:
        from stateflow.db.models import TenantRecord

        with self._engine.connect() as connection:
            return list(
                connection.execute(select(TenantRecord.key).order_by(TenantRecord.key)).scalars()
            )
