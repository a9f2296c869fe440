"""Workflow definition tables.

Definitions are maintained by a separate authoring tool; the engine only
reads these rows (see ``SqlDefinitionStore``).
"""

from sqlalchemy import Column, Integer, String, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from stateflow.db.base import Base


class MachineRecord(Base):
    """A workflow definition."""
    __tablename__ = "machines"

    id = Column(Integer, primary_key=True)
    slug = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=True)

    # Not a foreign key: states reference machines, so this would be circular
    initial_state_id = Column(Integer, nullable=False)

    states = relationship("StateRecord", back_populates="machine", order_by="StateRecord.id")
    transitions = relationship("TransitionRecord", back_populates="machine", order_by="TransitionRecord.sort_order")

    def __repr__(self) -> str:
        return f"<MachineRecord {self.slug}>"


class StateRecord(Base):
    """A node of one machine."""
    __tablename__ = "states"
    __table_args__ = (
        UniqueConstraint("machine_id", "slug", name="uq_states_machine_slug"),
    )

    id = Column(Integer, primary_key=True)
    machine_id = Column(Integer, ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True)
    slug = Column(String(100), nullable=False)
    name = Column(String(255), nullable=True)
    kind = Column(String(20), nullable=False, default="intermediate")  # initial, intermediate, final

    machine = relationship("MachineRecord", back_populates="states")

    def __repr__(self) -> str:
        return f"<StateRecord {self.slug} [{self.kind}]>"


class TransitionRecord(Base):
    """A directed edge between two states of one machine."""
    __tablename__ = "transitions"

    id = Column(Integer, primary_key=True)
    machine_id = Column(Integer, ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True)
    from_state_id = Column(Integer, ForeignKey("states.id"), nullable=False, index=True)
    to_state_id = Column(Integer, ForeignKey("states.id"), nullable=False)
    label = Column(String(255), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    # Guard key in the guard registry, and the configuration it reads
    guard_id = Column(String(100), nullable=True)
    extra_data = Column(JSON, nullable=False, default=dict)

    machine = relationship("MachineRecord", back_populates="transitions")

    def __repr__(self) -> str:
        return f"<TransitionRecord {self.label or self.id} {self.from_state_id}->{self.to_state_id}>"
