from sqlalchemy import Column, DateTime, Enum, Float, Index, Integer, String

from .base import Base
from .inventory import MachineKind


class Machine(Base):
    __tablename__ = "machines"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    kind = Column(
        Enum(
            MachineKind,
            name="machine_kind",
            values_callable=lambda kinds: [k.value for k in kinds],
            validate_strings=True,
        ),
        nullable=False,
    )
    make = Column(String, nullable=False)
    model = Column(String, nullable=False)
    cpu = Column(String, nullable=False, default="")
    ram_gb = Column(Integer, nullable=False, default=0)
    storage_tb = Column(Float, nullable=False, default=0.0)
    location = Column(String, nullable=False, default="")
    serial = Column(String, nullable=False, default="")
    notes = Column(String, nullable=False, default="")
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_machines_kind", "kind"),
        Index("idx_machines_name", "name"),
    )

    def __repr__(self):
        return f"<Machine(id='{self.id}', name='{self.name}', kind='{self.kind}')>"
