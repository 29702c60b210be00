"""Audit trail entry model and the action vocabulary."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig


class AuditAction(str, Enum):
    """Administrative actions written by the core."""

    SYSTEM_SETUP = "system_setup"
    SYSTEM_CONFIG_CHANGE = "system_config_change"
    SYSTEM_ROTATE_KEYS = "system_rotate_keys"
    SYSTEM_MAINTENANCE = "system_maintenance"
    CREATE_KEY = "create_key"
    CREATE_ADMIN = "create_admin"
    REVOKE_KEY = "revoke_key"
    REVOKE_ADMIN = "revoke_admin"
    REVOKE_KEY_BATCH = "revoke_key_batch"
    UPDATE_ADMIN_PERMISSIONS = "update_admin_permissions"
    KEY_ROTATION = "key_rotation"


CRITICAL_ACTIONS: frozenset[str] = frozenset(
    {
        AuditAction.SYSTEM_SETUP.value,
        AuditAction.SYSTEM_CONFIG_CHANGE.value,
        AuditAction.SYSTEM_ROTATE_KEYS.value,
        AuditAction.CREATE_ADMIN.value,
        AuditAction.REVOKE_ADMIN.value,
        AuditAction.UPDATE_ADMIN_PERMISSIONS.value,
        AuditAction.REVOKE_KEY_BATCH.value,
        AuditAction.KEY_ROTATION.value,
    }
)


@beartype
def is_critical_action(action: str) -> bool:
    """Whether ``action`` gets the extra ``critical`` index entry."""
    return action in CRITICAL_ACTIONS


class AuditEntry(BaseModelConfig):
    """Immutable record of one administrative action."""

    id: str = Field(..., min_length=1)
    timestamp: int = Field(..., ge=0, description="Time of the action (ms)")
    admin_id: str = Field(
        ..., min_length=1, pattern=r"^[^:]+$", description="Acting administrator"
    )
    action: str = Field(..., min_length=1, pattern=r"^[^:]+$")
    details: dict[str, Any] = Field(default_factory=dict)
    ip: str = Field(default="unknown")
    user_agent: str = Field(default="unknown")

    @property
    def date_key(self) -> str:
        """UTC calendar date of the entry, ``yyyy-mm-dd``."""
        moment = datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)
        return moment.strftime("%Y-%m-%d")

    @property
    def time_key(self) -> str:
        """Fixed-width timestamp joined to the id; sorts chronologically."""
        return f"{self.timestamp:016d}_{self.id}"

    @property
    def is_critical(self) -> bool:
        """Whether the action is in the critical table."""
        return is_critical_action(self.action)
