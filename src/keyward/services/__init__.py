"""Service layer: audit trail and privileged key operations."""

from .audit_trail import AuditTrail
from .key_operations import (
    CleanupExpiredKeys,
    CreateAdminKey,
    CreateKey,
    GetKey,
    KeyOperation,
    KeyOperationService,
    ListKeys,
    ListKeysWithCursor,
    QueryAuditLog,
    RevokeKey,
    RevokeKeysByOwner,
    RotateKey,
    ValidateKey,
)

__all__ = [
    "AuditTrail",
    "KeyOperation",
    "KeyOperationService",
    "CreateKey",
    "CreateAdminKey",
    "GetKey",
    "ListKeys",
    "ListKeysWithCursor",
    "RevokeKey",
    "RevokeKeysByOwner",
    "RotateKey",
    "ValidateKey",
    "CleanupExpiredKeys",
    "QueryAuditLog",
]
