"""Make the shared transition log immutable

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17

Creates database triggers that reject UPDATE and DELETE on
transition_logs. Tenant logs get the same triggers when provisioned.
"""
from typing import Sequence, Union

from alembic import op

from stateflow.db.immutability import drop_immutability_triggers, install_immutability_triggers

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, Sequence[str], None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Install immutability triggers on transition_logs."""
    install_immutability_triggers(op.get_bind(), "transition_logs")


def downgrade() -> None:
    """Remove immutability triggers."""
    drop_immutability_triggers(op.get_bind(), "transition_logs")
