"""Error taxonomy for governance operations."""

from __future__ import annotations

from typing import Any, Optional


class GovernanceError(Exception):
    """Base class for all governance failures surfaced to callers."""


class NotFoundError(GovernanceError):
    """A referenced account, project, folder, or rule does not exist."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        super().__init__(f"{resource_type.capitalize()} '{resource_id}' not found")
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(GovernanceError):
    """A uniqueness constraint (e.g. project slug) would be violated."""


class InvalidStateError(GovernanceError):
    """A transition was requested from a folder state that does not permit it."""

    def __init__(self, message: str, current: Optional[str] = None) -> None:
        super().__init__(message)
        self.current = current


class InvalidModeError(GovernanceError):
    """A non-invocable or unknown inheritance mode was requested."""


class ConfirmationRequiredError(GovernanceError):
    """A destructive transition was invoked without caller confirmation."""


class BackendError(GovernanceError):
    """The persistence backend rejected or failed an operation."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(BackendError):
    """The persistence backend could not be reached."""


class AuditWriteError(GovernanceError):
    """An audit entry could not be persisted."""


class PartialFailure(GovernanceError):
    """State was committed but its audit entry could not be written.

    The mutation is not rolled back; ``result`` holds what the operation
    would have returned and ``cause`` the underlying audit failure.
    """

    def __init__(self, result: Any, cause: Exception) -> None:
        super().__init__(f"Change applied but audit trail is incomplete: {cause}")
        self.result = result
        self.cause = cause
