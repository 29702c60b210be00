"""Administrative roles and the permission scopes they grant."""

from enum import Enum

from attrs import field, frozen
from beartype import beartype


class Permission(str, Enum):
    """Permission scopes checked by privileged operations."""

    KEYS_CREATE = "admin:keys:create"
    KEYS_READ = "admin:keys:read"
    KEYS_UPDATE = "admin:keys:update"
    KEYS_REVOKE = "admin:keys:revoke"
    USERS_CREATE = "admin:users:create"
    USERS_READ = "admin:users:read"
    USERS_REVOKE = "admin:users:revoke"
    SYSTEM_LOGS = "admin:system:logs"
    SYSTEM_CONFIG = "admin:system:config"
    SYSTEM_MAINTENANCE = "admin:system:maintenance"


PERMISSION_SCOPES: dict[str, str] = {
    "admin:keys:create": "Create new API keys",
    "admin:keys:read": "View API keys",
    "admin:keys:update": "Update and rotate API keys",
    "admin:keys:revoke": "Revoke API keys",
    "admin:keys:*": "Full access to key management",
    "admin:users:create": "Create new admin keys",
    "admin:users:read": "View admin keys",
    "admin:users:update": "Update admin key properties",
    "admin:users:revoke": "Revoke admin keys",
    "admin:users:*": "Full access to admin management",
    "admin:system:logs": "View the audit trail",
    "admin:system:config": "Modify system configuration",
    "admin:system:maintenance": "Run maintenance sweeps",
    "admin:system:*": "Full access to system management",
}


@frozen
class AdminRole:
    """Named bundle of administrative scopes."""

    name: str = field()
    description: str = field()
    scopes: tuple[str, ...] = field(factory=tuple)


ADMIN_ROLES: dict[str, AdminRole] = {
    "SUPER_ADMIN": AdminRole(
        "Super Admin",
        "Full system access with all permissions",
        ("admin:keys:*", "admin:users:*", "admin:system:*"),
    ),
    "KEY_ADMIN": AdminRole(
        "Key Administrator",
        "Can create, view, rotate and revoke API keys",
        ("admin:keys:create", "admin:keys:read", "admin:keys:update", "admin:keys:revoke"),
    ),
    "KEY_VIEWER": AdminRole(
        "Key Viewer",
        "Can only view API keys",
        ("admin:keys:read",),
    ),
    "USER_ADMIN": AdminRole(
        "User Administrator",
        "Can manage admin keys",
        ("admin:users:create", "admin:users:read", "admin:users:revoke"),
    ),
    "AUDITOR": AdminRole(
        "Auditor",
        "Read-only access to keys and the audit trail",
        ("admin:keys:read", "admin:system:logs"),
    ),
    "SUPPORT": AdminRole(
        "Support",
        "Limited access for support staff",
        ("admin:keys:read", "admin:users:read"),
    ),
}


@beartype
def get_role_scopes(role: str) -> list[str]:
    """Scopes granted by ``role``; empty for unknown roles."""
    admin_role = ADMIN_ROLES.get(role.upper())
    return list(admin_role.scopes) if admin_role else []
