from .base import Base
from .inventory import MachineInput, MachineKind, MachineRecord, parse_kind, validate_machine_input
from .machine import Machine

__all__ = [
    "Base",
    "Machine",
    "MachineInput",
    "MachineKind",
    "MachineRecord",
    "parse_kind",
    "validate_machine_input",
]
