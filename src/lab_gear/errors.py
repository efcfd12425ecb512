"""
Error taxonomy for lab_gear.

Server-side errors map onto HTTP statuses in the inventory API; client-side
errors carry enough of the remote response to diagnose a failed call.
"""

from typing import Optional


class LabGearError(Exception):
    """Base class for all lab_gear exceptions."""


class ValidationFailedError(LabGearError):
    """Raised when a request body or query value fails validation."""


class PayloadTooLargeError(LabGearError):
    """Raised when a request body exceeds the configured size bound."""


class ConfigError(LabGearError):
    """Raised when required configuration is missing or unusable."""


class AuthenticationError(LabGearError):
    """Raised when a request does not carry the expected bearer credential."""


class StoreError(LabGearError):
    """Raised when the record store cannot complete an operation."""


class MachineNotFoundError(StoreError):
    """Raised when no machine exists for the given identifier."""

    def __init__(self, machine_id: str):
        super().__init__(f"machine not found: {machine_id}")
        self.machine_id = machine_id


class DuplicateMachineError(StoreError):
    """Raised when inserting a machine whose identifier is already taken."""

    def __init__(self, machine_id: str):
        super().__init__(f"machine already exists: {machine_id}")
        self.machine_id = machine_id


class LabClientError(LabGearError):
    """Base error for outbound calls made by the API client."""


class LabAPIError(LabClientError):
    """The inventory API answered with an unexpected status."""

    def __init__(self, status_code: int, body: str, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"lab_gear API returned status {status_code}: {body}")


class LabRequestError(LabClientError):
    """The request never produced a response (connect, timeout, protocol)."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class ReconcileError(LabGearError):
    """Raised when a controller operation cannot reach its target state."""
