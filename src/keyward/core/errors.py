# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Typed failures raised by the key lifecycle and authorization core.

Expected outcomes (a credential that does not validate, a scope that is not
granted) are returned as values. The exceptions below are reserved for
malformed input, missing resources on the administrative surface and backend
faults, and propagate to the caller's boundary.
"""

from typing import Any

from beartype import beartype


class KeywardError(Exception):
    """Base class for every failure raised by Keyward."""

    code: str = "keyward_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, **details: Any) -> None:
        """Initialize the error with a message and optional details."""
        self.message = message
        self.details = details
        super().__init__(message)

    @beartype
    def to_dict(self) -> dict[str, Any]:
        """Convert to an error payload for the administrative surface."""
        payload: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(KeywardError):
    """Requested key or record does not exist."""

    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: str) -> None:
        """Initialize with the resource type and identifier."""
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class InactiveError(KeywardError):
    """Key exists but is not usable for the requested operation."""

    code = "inactive"
    status_code = 409

    def __init__(self, key_id: str, status: str) -> None:
        """Initialize with the key id and its current status."""
        self.key_id = key_id
        self.status = status
        super().__init__(f"API key {key_id} is {status}", status=status)


class ExpiredError(KeywardError):
    """Key passed its expiry and has been revoked as a side effect."""

    code = "expired"
    status_code = 409

    def __init__(self, key_id: str, expires_at: int) -> None:
        """Initialize with the key id and its expiry timestamp."""
        self.key_id = key_id
        self.expires_at = expires_at
        super().__init__(f"API key {key_id} has expired", expires_at=expires_at)


class InsufficientScopeError(KeywardError):
    """Principal lacks one or more required permission scopes."""

    code = "insufficient_scope"
    status_code = 403

    def __init__(
        self,
        missing: list[str],
        provided: list[str] | None = None,
    ) -> None:
        """Initialize with the missing scopes and the granted ones."""
        self.missing = list(missing)
        self.provided = list(provided or [])
        super().__init__(
            f"You do not have permission: {', '.join(self.missing)}",
            missing=self.missing,
        )


class InvalidInputError(KeywardError):
    """Schema or range violation in caller input."""

    code = "invalid_input"
    status_code = 400

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        """Initialize with a summary message and per-field errors."""
        self.errors = dict(errors or {})
        super().__init__(message, errors=self.errors)


class UnauthenticatedError(KeywardError):
    """Credential could not be used to authenticate an administrator."""

    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        """Initialize with a deliberately generic message."""
        super().__init__(message)


class StorageUnavailableError(KeywardError):
    """Backend store failed; the operation may be retried."""

    code = "storage_unavailable"
    status_code = 503
    retryable = True

    def __init__(self, operation: str, key: str | None = None, reason: str = "") -> None:
        """Initialize with the store operation and the affected key."""
        self.operation = operation
        self.key = key
        message = f"Store {operation} failed"
        if key is not None:
            message = f"{message} for {key}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DeadlineExceededError(StorageUnavailableError):
    """Caller-supplied deadline elapsed before a store call completed."""

    code = "deadline_exceeded"
    status_code = 504

    def __init__(self, operation: str, key: str | None = None) -> None:
        """Initialize with the store operation that ran out of time."""
        super().__init__(operation, key, reason="deadline exceeded")


__all__ = [
    "KeywardError",
    "NotFoundError",
    "InactiveError",
    "ExpiredError",
    "InsufficientScopeError",
    "InvalidInputError",
    "UnauthenticatedError",
    "StorageUnavailableError",
    "DeadlineExceededError",
]
