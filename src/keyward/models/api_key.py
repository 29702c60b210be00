# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""API key domain model and its status state machine."""

from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig


class KeyStatus(str, Enum):
    """Lifecycle status of an API key."""

    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"

    @beartype
    def can_transition_to(self, target: "KeyStatus") -> bool:
        """Check whether moving to ``target`` respects the monotonic order."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[KeyStatus, frozenset[KeyStatus]] = {
    KeyStatus.ACTIVE: frozenset({KeyStatus.ROTATED, KeyStatus.REVOKED}),
    KeyStatus.ROTATED: frozenset({KeyStatus.REVOKED}),
    KeyStatus.REVOKED: frozenset(),
}


class RevocationReason(str, Enum):
    """Well-known revocation reasons written by the core itself."""

    EXPIRED = "expired"
    ROTATION_EXPIRED = "rotation_expired"
    ADMINISTRATIVE = "Administrative action"


class ApiKey(BaseModelConfig):
    """Persisted API key record. Never carries the secret."""

    id: str = Field(..., min_length=1, description="Immutable key identifier")
    name: str = Field(..., min_length=1, description="Human-readable name")
    owner: str = Field(..., min_length=1, description="Owner of the key")
    email: str | None = Field(default=None, description="Contact email")
    scopes: list[str] = Field(..., min_length=1, description="Granted scopes")
    status: KeyStatus = Field(default=KeyStatus.ACTIVE)
    created_at: int = Field(..., ge=0, description="Creation time (ms)")
    expires_at: int = Field(default=0, ge=0, description="Expiry time (ms), 0 = never")
    last_used_at: int = Field(default=0, ge=0, description="Last validation (ms)")
    created_by: str | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Rotation linkage
    successor_id: str | None = Field(default=None)
    predecessor_id: str | None = Field(default=None)
    grace_expires_at: int | None = Field(default=None, ge=0)
    rotated_at: int | None = Field(default=None, ge=0)
    rotated_by: str | None = Field(default=None)

    # Revocation
    revoked_at: int | None = Field(default=None, ge=0)
    revoked_by: str | None = Field(default=None)
    revoked_reason: str | None = Field(default=None)

    @beartype
    def is_expired(self, now: int) -> bool:
        """Whether a non-zero expiry has elapsed at ``now``."""
        return self.expires_at != 0 and self.expires_at <= now

    @beartype
    def in_grace_window(self, now: int) -> bool:
        """Whether a rotated key is still inside its dual-validity window."""
        return (
            self.status is KeyStatus.ROTATED
            and self.grace_expires_at is not None
            and now < self.grace_expires_at
        )

    @beartype
    def grace_elapsed(self, now: int) -> bool:
        """Whether a rotated key's grace window is over."""
        return self.status is KeyStatus.ROTATED and not self.in_grace_window(now)

    @beartype
    def is_admin(self, admin_prefix: str = "admin:") -> bool:
        """Whether any scope is in the reserved administrative namespace."""
        prefix = admin_prefix.lower()
        return any(scope.lower().startswith(prefix) for scope in self.scopes)

    @beartype
    def touched(self, now: int) -> "ApiKey":
        """Copy with ``last_used_at`` advanced, never moved backwards."""
        if now <= self.last_used_at:
            return self
        return self.model_copy(update={"last_used_at": now})

    @beartype
    def revoked(self, now: int, reason: str, revoked_by: str | None = None) -> "ApiKey":
        """Copy transitioned to ``revoked``."""
        if not self.status.can_transition_to(KeyStatus.REVOKED):
            raise ValueError(f"Cannot revoke a key in status {self.status.value}")
        return self.model_copy(
            update={
                "status": KeyStatus.REVOKED,
                "revoked_at": now,
                "revoked_by": revoked_by,
                "revoked_reason": reason,
            }
        )

    @beartype
    def rotated(
        self,
        now: int,
        successor_id: str,
        grace_expires_at: int,
        rotated_by: str | None = None,
    ) -> "ApiKey":
        """Copy transitioned to ``rotated`` and linked to its successor."""
        if not self.status.can_transition_to(KeyStatus.ROTATED):
            raise ValueError(f"Cannot rotate a key in status {self.status.value}")
        return self.model_copy(
            update={
                "status": KeyStatus.ROTATED,
                "successor_id": successor_id,
                "grace_expires_at": grace_expires_at,
                "rotated_at": now,
                "rotated_by": rotated_by,
            }
        )

    @beartype
    def to_record(self) -> dict[str, Any]:
        """Serialize for the key-value store."""
        return self.model_dump(mode="json")


class IssuedApiKey(ApiKey):
    """Freshly created key; the only place the secret is ever exposed."""

    secret: str = Field(..., min_length=1, description="One-time bearer secret")
