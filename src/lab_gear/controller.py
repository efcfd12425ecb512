"""
Resource controller for declared machines.

Reconciles a declared machine (what the operator wrote down) against the
authoritative record held by the inventory API. One MachineResource handles
any number of declarations; every call works on the declaration and tracked
state it is given and performs its remote calls strictly in sequence.

Identity (``id``) and ``created_at`` are server-assigned. They are always
taken from the remote record or the tracked state, never from a declaration.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .client import LabGearClient
from .errors import LabClientError, ReconcileError, ValidationFailedError
from .logging import EventType, get_logger
from .models import MachineKind, MachineRecord, parse_kind
from .models.inventory import MAX_SQLITE_INT


class MachineDeclaration(BaseModel):
    """Desired state of one machine. Optional attributes left as None are undeclared."""

    name: str = Field(..., min_length=1)
    kind: MachineKind
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    cpu: Optional[str] = None
    ram_gb: Optional[int] = Field(default=None, ge=0, le=MAX_SQLITE_INT)
    storage_tb: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    location: Optional[str] = None
    serial: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def declared_fields(self) -> Dict[str, Any]:
        """Only the attributes the operator actually set."""
        return self.model_dump(mode="json", exclude_none=True)


class MachineState(MachineRecord):
    """Tracked projection of the remote record, including server-computed fields."""

    @classmethod
    def from_record(cls, record: MachineRecord) -> "MachineState":
        return cls.model_validate(record.model_dump())


class ReconcileAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class ReconcileResult:
    action: ReconcileAction
    state: MachineState
    changes: Dict[str, Tuple[Any, Any]]


class MachineResource:
    """Create/read/update/delete/import state machine for declared machines."""

    def __init__(self, client: LabGearClient):
        self.client = client
        self.logger = get_logger("lab_gear.controller")

    async def create(self, declaration: MachineDeclaration) -> MachineState:
        """Absent -> Created. Server defaults for undeclared fields become tracked state."""
        try:
            record = await self.client.create_machine(declaration.declared_fields())
        except LabClientError as e:
            raise ReconcileError(f"error creating machine {declaration.name!r}: {e}") from e

        state = MachineState.from_record(record)
        self.logger.log_reconcile(EventType.RECONCILE_CREATE, state.id, state.name)
        return state

    async def read(self, state: MachineState) -> Optional[MachineState]:
        """Refresh tracked state. Returns None when the remote record no longer exists."""
        try:
            record = await self.client.get_machine(state.id)
        except LabClientError as e:
            raise ReconcileError(f"error reading machine {state.id!r}: {e}") from e

        if record is None:
            self.logger.log_drift(state.id, "removed outside of the controller")
            return None
        return MachineState.from_record(record)

    async def update(self, declaration: MachineDeclaration, state: MachineState) -> MachineState:
        """Full-replacement update of the tracked machine.

        Undeclared optional attributes are sent with their tracked value so an
        update never clears something the operator did not mention.
        """
        payload = state.mutable_fields()
        payload.update(declaration.declared_fields())

        try:
            record = await self.client.update_machine(state.id, payload)
        except LabClientError as e:
            raise ReconcileError(f"error updating machine {state.id!r}: {e}") from e

        new_state = MachineState.from_record(record).model_copy(
            update={"id": state.id, "created_at": state.created_at}
        )
        self.logger.log_reconcile(EventType.RECONCILE_UPDATE, new_state.id, new_state.name)
        return new_state

    async def delete(self, state: MachineState) -> None:
        """Created -> Absent. A machine that is already gone counts as deleted."""
        try:
            await self.client.delete_machine(state.id)
        except LabClientError as e:
            raise ReconcileError(f"error deleting machine {state.id!r}: {e}") from e
        self.logger.log_reconcile(EventType.RECONCILE_DELETE, state.id, state.name)

    async def import_state(self, machine_id: str) -> MachineState:
        """Adopt an existing remote machine by id."""
        try:
            record = await self.client.get_machine(machine_id)
        except LabClientError as e:
            raise ReconcileError(f"error importing machine {machine_id!r}: {e}") from e

        if record is None:
            raise ReconcileError(f"no machine with ID {machine_id!r} exists in the inventory")

        state = MachineState.from_record(record)
        self.logger.log_reconcile(EventType.RECONCILE_IMPORT, state.id, state.name)
        return state

    @staticmethod
    def diff(declaration: MachineDeclaration, state: MachineState) -> Dict[str, Tuple[Any, Any]]:
        """Declared attributes whose value differs from state, as (tracked, declared)."""
        tracked = state.mutable_fields()
        return {
            field: (tracked[field], value)
            for field, value in declaration.declared_fields().items()
            if tracked.get(field) != value
        }

    async def reconcile(
        self, declaration: MachineDeclaration, state: Optional[MachineState] = None
    ) -> ReconcileResult:
        """Run one read-compare-act pass for a single declared machine."""
        if state is not None:
            state = await self.read(state)

        if state is None:
            created = await self.create(declaration)
            return ReconcileResult(ReconcileAction.CREATED, created, {})

        changes = self.diff(declaration, state)
        if not changes:
            return ReconcileResult(ReconcileAction.UNCHANGED, state, {})

        updated = await self.update(declaration, state)
        return ReconcileResult(ReconcileAction.UPDATED, updated, changes)


class MachineDataSource:
    """Read-only listing of inventory machines for other definitions to reference."""

    def __init__(self, client: LabGearClient):
        self.client = client

    async def read(self, kind: Optional[str] = None) -> List[MachineState]:
        try:
            kind_filter = parse_kind(kind).value if kind else None
        except ValidationFailedError as e:
            raise ReconcileError(f"error listing machines: {e}: {kind!r}") from e
        try:
            records = await self.client.list_machines(kind_filter)
        except LabClientError as e:
            raise ReconcileError(f"error listing machines: {e}") from e
        return [MachineState.from_record(record) for record in records]
