"""Tests for tenant provisioning, isolation and log immutability."""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import DatabaseError

from stateflow.core.audit import AuditQuery
from stateflow.core.errors import TenantNotProvisionedError
from stateflow.db.immutability import trigger_names
from stateflow.db.models import tenant_table_name

from tests.factories import make_entry


class TestProvisioning:
    """Test ahead-of-time tenant provisioning."""

    def test_provision_creates_table(self, provisioner, db_engine):
        """Test the tenant table and registry row are created."""
        assert provisioner.provision("acme") is True
        assert "transition_logs_t_acme" in inspect(db_engine).get_table_names()
        assert provisioner.is_provisioned("acme")
        assert provisioner.list_tenants() == ["acme"]

    def test_provision_is_idempotent(self, provisioner):
        """Test provisioning twice is a no-op."""
        assert provisioner.provision("acme") is True
        assert provisioner.provision("acme") is False
        assert provisioner.list_tenants() == ["acme"]

    def test_list_tenants_sorted(self, provisioner):
        """Test tenants are listed alphabetically."""
        provisioner.provision("zeta")
        provisioner.provision("acme")
        assert provisioner.list_tenants() == ["acme", "zeta"]

    @pytest.mark.parametrize("tenant", ["", "Acme", "_acme", "acme-corp", "a" * 41, "acme; drop table"])
    def test_invalid_key_rejected(self, provisioner, tenant):
        """Test malformed tenant keys are rejected before any DDL."""
        with pytest.raises(ValueError):
            provisioner.provision(tenant)
        assert not provisioner.is_provisioned(tenant)

    def test_table_name(self):
        """Test the tenant table naming scheme."""
        assert tenant_table_name("acme_eu") == "transition_logs_t_acme_eu"


class TestIsolation:
    """Test that tenant logs never mix."""

    def test_unprovisioned_tenant_raises(self, audit_store):
        """Test reads and writes against unknown tenants fail."""
        with pytest.raises(TenantNotProvisionedError, match="acme"):
            audit_store.append(make_entry(), tenant="acme")
        with pytest.raises(TenantNotProvisionedError):
            audit_store.query(tenant="acme")

    def test_invalid_tenant_in_store_raises(self, audit_store):
        """Test malformed keys look like unprovisioned tenants to the store."""
        with pytest.raises(TenantNotProvisionedError):
            audit_store.latest(1, "order", "1", tenant="Not Valid")

    def test_entries_stay_in_their_tenant(self, audit_store, provisioner):
        """Test an entry appended under one tenant is invisible elsewhere."""
        provisioner.provision("acme")
        provisioner.provision("globex")
        audit_store.append(make_entry(comment="acme only"), tenant="acme")

        assert audit_store.query(tenant="acme").total == 1
        assert audit_store.query(tenant="globex").total == 0
        assert audit_store.query().total == 0
        assert audit_store.latest(1, "order", "1", tenant="globex") is None

    def test_same_entity_in_two_tenants(self, audit_store, provisioner):
        """Test sequences are independent per tenant."""
        provisioner.provision("acme")
        audit_store.append(make_entry(), tenant="acme")
        audit_store.append(make_entry())
        assert audit_store.latest(1, "order", "1", tenant="acme").sequence == 1
        assert audit_store.latest(1, "order", "1").sequence == 1
        assert audit_store.query(AuditQuery(entity_id="1"), tenant="acme").total == 1


class TestImmutability:
    """Test that stored entries cannot be changed."""

    @pytest.mark.parametrize("statement", [
        "UPDATE {table} SET comment = 'edited'",
        "DELETE FROM {table}",
    ])
    def test_shared_log_rejects_mutation(self, audit_store, db_engine, statement):
        """Test UPDATE and DELETE are rejected on the shared log."""
        audit_store.append(make_entry())
        with pytest.raises(DatabaseError, match="immutable"):
            with db_engine.begin() as connection:
                connection.execute(text(statement.format(table="transition_logs")))
        assert audit_store.latest(1, "order", "1").comment is None

    @pytest.mark.parametrize("statement", [
        "UPDATE {table} SET principal_id = 'someone-else'",
        "DELETE FROM {table}",
    ])
    def test_tenant_log_rejects_mutation(self, audit_store, provisioner, db_engine, statement):
        """Test provisioned tenant logs carry the same protection."""
        provisioner.provision("acme")
        audit_store.append(make_entry(), tenant="acme")
        with pytest.raises(DatabaseError, match="immutable"):
            with db_engine.begin() as connection:
                connection.execute(text(statement.format(table="transition_logs_t_acme")))
        assert audit_store.latest(1, "order", "1", tenant="acme").principal_id == "user-1"

    def test_longest_tenant_key_rejects_mutation(self, audit_store, provisioner, db_engine):
        """Test tenants with the longest allowed key are still protected."""
        tenant = "t" * 40
        provisioner.provision(tenant)
        audit_store.append(make_entry(), tenant=tenant)
        for statement in ("UPDATE {table} SET comment = 'edited'", "DELETE FROM {table}"):
            with pytest.raises(DatabaseError, match="immutable"):
                with db_engine.begin() as connection:
                    connection.execute(text(statement.format(table=tenant_table_name(tenant))))
        assert audit_store.latest(1, "order", "1", tenant=tenant).comment is None


class TestTriggerNames:
    """Test trigger naming against PostgreSQL's identifier limit."""

    def test_short_table_names_kept_readable(self):
        """Test the shared log keeps descriptive trigger names."""
        assert trigger_names("transition_logs") == [
            "transition_logs_prevent_update",
            "transition_logs_prevent_delete",
        ]

    @pytest.mark.parametrize("length", [1, 35, 36, 40])
    def test_names_distinct_and_within_limit(self, length):
        """Test tenant trigger names never truncate to the same identifier."""
        update_trigger, delete_trigger = trigger_names(tenant_table_name("t" * length))
        assert update_trigger != delete_trigger
        assert len(update_trigger) <= 63
        assert len(delete_trigger) <= 63
        assert update_trigger[:63] != delete_trigger[:63]

    def test_hashed_names_differ_per_table(self):
        """Test two long tenant keys get different trigger names."""
        assert trigger_names(tenant_table_name("a" * 40)) != trigger_names(tenant_table_name("b" * 40))
