"""
Wire models for the machine inventory API.

MachineInput is what a client may send on create/update; MachineRecord is
the stored record as it is echoed back. Both the API and the remote client
share these shapes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from lab_gear.errors import ValidationFailedError

REQUIRED_FIELDS = ("name", "kind", "make", "model")

# Largest integer a SQLite INTEGER column can hold
MAX_SQLITE_INT = 2**63 - 1


class MachineKind(str, Enum):
    """Closed set of machine kinds the inventory accepts."""

    PROXMOX = "proxmox"
    NAS = "nas"
    SBC = "sbc"
    BARE_METAL = "bare_metal"
    WORKSTATION = "workstation"
    LAPTOP = "laptop"

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]


def parse_kind(value: Any) -> MachineKind:
    """Return the MachineKind for value or raise ValidationFailedError.

    Create, update and the list filter all go through here so they agree on
    what a valid kind is.
    """
    if isinstance(value, MachineKind):
        return value
    if isinstance(value, str):
        try:
            return MachineKind(value)
        except ValueError:
            pass
    raise ValidationFailedError("invalid kind")


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MachineInput(BaseModel):
    """Validated create/update body. Unknown keys (id, timestamps) are ignored."""

    name: str = Field(..., min_length=1)
    kind: MachineKind
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    cpu: str = ""
    ram_gb: int = Field(default=0, ge=0, le=MAX_SQLITE_INT)
    storage_tb: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    location: str = ""
    serial: str = ""
    notes: str = ""

    model_config = ConfigDict(extra="ignore")


class MachineRecord(MachineInput):
    """A machine as persisted by the record store."""

    id: str = Field(..., min_length=1)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_serializer("created_at", "updated_at")
    def serialize_timestamp(self, v: datetime) -> str:
        return v.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    def mutable_fields(self) -> dict:
        """Fields a full-replacement update may change."""
        return self.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})


def validate_machine_input(data: Any) -> MachineInput:
    """Validate a decoded JSON body against the create/update rules.

    Required fields are checked before the kind so the error messages match
    what clients expect: a missing field wins over an invalid kind.
    """
    if not isinstance(data, dict):
        raise ValidationFailedError("request body must be a JSON object")

    if any(not data.get(field) for field in REQUIRED_FIELDS):
        raise ValidationFailedError("name, kind, make, and model are required")

    parse_kind(data["kind"])

    try:
        return MachineInput.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise ValidationFailedError(f"invalid {location}: {first.get('msg', 'invalid value')}")


def build_record(
    machine_input: MachineInput,
    machine_id: str,
    created_at: datetime,
    updated_at: Optional[datetime] = None,
) -> MachineRecord:
    """Combine a validated body with server-owned identity and timestamps."""
    return MachineRecord(
        **machine_input.model_dump(),
        id=machine_id,
        created_at=created_at,
        updated_at=updated_at or created_at,
    )
