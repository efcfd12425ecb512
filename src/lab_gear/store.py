"""
Record store for machine inventory.

Each public method runs in its own session and commits (or rolls back) before
returning, so every operation is atomic on its own. Nothing here spans calls.
"""

from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lab_gear.errors import DuplicateMachineError, MachineNotFoundError, StoreError
from lab_gear.logging import EventType, get_logger
from lab_gear.models import Machine, MachineKind, MachineRecord
from lab_gear.persistence import DatabaseManager

_MUTABLE_COLUMNS = (
    "name",
    "kind",
    "make",
    "model",
    "cpu",
    "ram_gb",
    "storage_tb",
    "location",
    "serial",
    "notes",
    "updated_at",
)


def _to_record(row: Machine) -> MachineRecord:
    return MachineRecord(
        id=row.id,
        name=row.name,
        kind=row.kind,
        make=row.make,
        model=row.model,
        cpu=row.cpu,
        ram_gb=row.ram_gb,
        storage_tb=row.storage_tb,
        location=row.location,
        serial=row.serial,
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _column_values(record: MachineRecord) -> dict:
    # SQLite has no timezone support; timestamps are stored as naive UTC.
    return {
        "name": record.name,
        "kind": record.kind,
        "make": record.make,
        "model": record.model,
        "cpu": record.cpu,
        "ram_gb": record.ram_gb,
        "storage_tb": record.storage_tb,
        "location": record.location,
        "serial": record.serial,
        "notes": record.notes,
        "created_at": record.created_at.replace(tzinfo=None),
        "updated_at": record.updated_at.replace(tzinfo=None),
    }


class MachineStore:
    """CRUD access to the machines table."""

    def __init__(self, db: DatabaseManager):
        self.db = db
        self.logger = get_logger("lab_gear.store")

    def create(self, record: MachineRecord) -> MachineRecord:
        """Insert a new machine. The identifier must not exist yet."""
        try:
            with self.db.get_session() as session:
                session.add(Machine(id=record.id, **_column_values(record)))
                session.flush()
        except IntegrityError as e:
            raise DuplicateMachineError(record.id) from e
        except SQLAlchemyError as e:
            self._log_failure("create", e, machine_id=record.id)
            raise StoreError("failed to create machine") from e
        return record

    def get_by_id(self, machine_id: str) -> MachineRecord:
        """Return the machine or raise MachineNotFoundError."""
        try:
            with self.db.get_session() as session:
                row = session.get(Machine, machine_id)
                if row is None:
                    raise MachineNotFoundError(machine_id)
                return _to_record(row)
        except SQLAlchemyError as e:
            self._log_failure("get", e, machine_id=machine_id)
            raise StoreError("failed to get machine") from e

    def list(self, kind: Optional[MachineKind] = None) -> List[MachineRecord]:
        """Return every machine, or only those of the given kind."""
        stmt = select(Machine)
        if kind is not None:
            stmt = stmt.where(Machine.kind == kind)
        try:
            with self.db.get_session() as session:
                return [_to_record(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            self._log_failure("list", e)
            raise StoreError("failed to list machines") from e

    def update(self, record: MachineRecord) -> MachineRecord:
        """Replace every mutable field of an existing machine. Never inserts."""
        values = _column_values(record)
        stmt = (
            update(Machine)
            .where(Machine.id == record.id)
            .values({column: values[column] for column in _MUTABLE_COLUMNS})
        )
        try:
            with self.db.get_session() as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    raise MachineNotFoundError(record.id)
        except SQLAlchemyError as e:
            self._log_failure("update", e, machine_id=record.id)
            raise StoreError("failed to update machine") from e
        return record

    def delete(self, machine_id: str) -> None:
        """Remove a machine or raise MachineNotFoundError."""
        try:
            with self.db.get_session() as session:
                result = session.execute(delete(Machine).where(Machine.id == machine_id))
                if result.rowcount == 0:
                    raise MachineNotFoundError(machine_id)
        except SQLAlchemyError as e:
            self._log_failure("delete", e, machine_id=machine_id)
            raise StoreError("failed to delete machine") from e

    def _log_failure(self, operation: str, error: Exception, machine_id: Optional[str] = None):
        self.logger.error(
            f"Store {operation} failed",
            event_type=EventType.STORE_ERROR,
            machine_id=machine_id,
            metadata={"operation": operation, "error": str(error), "error_type": type(error).__name__},
        )
