"""
Error types for Cellar Sync.

This module defines the exceptions surfaced to callers of the core:
- CellarError: Base exception
- ConfigurationError: Store never configured; synchronization refused
- ValidationError: Invalid input, rejected before any network call
- RoomNotFoundError: Target room is not in the local mirror
- AccessDeniedError: Role is not permitted to perform an action
- WriteError: Store rejected or failed a write; no audit entry was appended
- AuditAppendError: Write committed but the audit append failed

Invariants:
    - All errors inherit from CellarError
    - Every error carries a stable code for programmatic handling
    - Nothing in the core retries; errors propagate to the caller
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CellarError(Exception):
    """Base exception for all Cellar Sync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CELLAR_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "error_code": self.code, "details": self.details}


class ConfigurationError(CellarError):
    """The remote store is not configured.

    Raised when synchronization is requested but the store reports that it
    has no connection settings. Callers should present a blocking setup
    notice rather than retrying.
    """

    def __init__(self, message: str, backend: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"backend": backend},
        )
        self.backend = backend


class ValidationError(CellarError):
    """Input validation failed.

    Raised when:
    - Room name is empty
    - Temperature or stock delta is not a finite number
    - Material name is empty
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class RoomNotFoundError(CellarError):
    """Target room does not exist in the local mirror."""

    def __init__(self, room_id: str) -> None:
        super().__init__(
            f"Room not found: {room_id}",
            code="NOT_FOUND",
            details={"room_id": room_id},
        )
        self.room_id = room_id


class AccessDeniedError(CellarError):
    """Role lacks permission for the requested action."""

    def __init__(self, role: str, action: str) -> None:
        super().__init__(
            f"Access denied: {role} may not perform '{action}'",
            code="ACCESS_DENIED",
            details={"role": role, "action": action},
        )
        self.role = role
        self.action = action


class WriteError(CellarError):
    """A store write failed; the mutation was aborted before auditing."""

    def __init__(
        self,
        message: str,
        action: str,
        room_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="WRITE_FAILED",
            details={"action": action, "room_id": room_id},
        )
        self.action = action
        self.room_id = room_id


class AuditAppendError(CellarError):
    """The state change was written but its audit entry could not be appended."""

    def __init__(
        self,
        message: str,
        action: str,
        room_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="AUDIT_FAILED",
            details={"action": action, "room_id": room_id},
        )
        self.action = action
        self.room_id = room_id
