"""Request and response schemas for the key lifecycle core."""

from .audit import AuditPage, RequestContext
from .keys import (
    CleanupReport,
    CreateKeyRequest,
    KeyCursorPage,
    KeyFailureReason,
    KeyPage,
    PublicValidationResult,
    RevocationResult,
    RotateKeyOptions,
    RotationNotice,
    RotationResult,
    ValidationResult,
    parse_request,
)

__all__ = [
    "AuditPage",
    "RequestContext",
    "CleanupReport",
    "CreateKeyRequest",
    "KeyCursorPage",
    "KeyFailureReason",
    "KeyPage",
    "PublicValidationResult",
    "RevocationResult",
    "RotateKeyOptions",
    "RotationNotice",
    "RotationResult",
    "ValidationResult",
    "parse_request",
]
