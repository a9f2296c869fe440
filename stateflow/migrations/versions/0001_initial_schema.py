"""Initial schema: definitions, shared transition log, tenant registry

Revision ID: 0001
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all shared tables."""

    # --- machines (no FK deps) ---
    op.create_table(
        "machines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("initial_state_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_machines"),
        sa.UniqueConstraint("slug", name="uq_machines_slug"),
    )

    # --- states (FK -> machines) ---
    op.create_table(
        "states",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("kind", sa.String(20), nullable=False, server_default="intermediate"),
        sa.PrimaryKeyConstraint("id", name="pk_states"),
        sa.ForeignKeyConstraint(
            ["machine_id"],
            ["machines.id"],
            name="fk_states_machine_id_machines",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("machine_id", "slug", name="uq_states_machine_slug"),
    )
    op.create_index("ix_states_machine_id", "states", ["machine_id"])

    # --- transitions (FK -> machines, states) ---
    op.create_table(
        "transitions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("from_state_id", sa.Integer(), nullable=False),
        sa.Column("to_state_id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(255), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("guard_id", sa.String(100), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transitions"),
        sa.ForeignKeyConstraint(
            ["machine_id"],
            ["machines.id"],
            name="fk_transitions_machine_id_machines",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["from_state_id"], ["states.id"], name="fk_transitions_from_state_id_states"
        ),
        sa.ForeignKeyConstraint(
            ["to_state_id"], ["states.id"], name="fk_transitions_to_state_id_states"
        ),
    )
    op.create_index("ix_transitions_machine_id", "transitions", ["machine_id"])
    op.create_index("ix_transitions_from_state_id", "transitions", ["from_state_id"])

    # --- transition_logs (shared audit log) ---
    op.create_table(
        "transition_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("machine_id", sa.Integer(), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.String(191), nullable=False),
        sa.Column("from_state_id", sa.Integer(), nullable=True),
        sa.Column("to_state_id", sa.Integer(), nullable=False),
        sa.Column("transition_id", sa.Integer(), nullable=False),
        sa.Column("principal_id", sa.String(191), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("extra_data", sa.JSON(), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_transition_logs"),
        sa.UniqueConstraint(
            "machine_id", "entity_type", "entity_id", "sequence",
            name="uq_transition_logs_entity_sequence",
        ),
    )
    op.create_index(
        "ix_transition_logs_entity",
        "transition_logs",
        ["machine_id", "entity_type", "entity_id"],
    )
    op.create_index("ix_transition_logs_principal", "transition_logs", ["principal_id"])
    op.create_index("ix_transition_logs_created", "transition_logs", ["created_at"])

    # --- tenants (registry of provisioned tenant logs) ---
    op.create_table(
        "tenants",
        sa.Column("key", sa.String(40), nullable=False),
        sa.Column("table_name", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key", name="pk_tenants"),
        sa.UniqueConstraint("table_name", name="uq_tenants_table_name"),
    )


def downgrade() -> None:
    """Drop all shared tables."""
    op.drop_table("tenants")
    op.drop_index("ix_transition_logs_created", table_name="transition_logs")
    op.drop_index("ix_transition_logs_principal", table_name="transition_logs")
    op.drop_index("ix_transition_logs_entity", table_name="transition_logs")
    op.drop_table("transition_logs")
    op.drop_index("ix_transitions_from_state_id", table_name="transitions")
    op.drop_index("ix_transitions_machine_id", table_name="transitions")
    op.drop_table("transitions")
    op.drop_index("ix_states_machine_id", table_name="states")
    op.drop_table("states")
    op.drop_table("machines")
