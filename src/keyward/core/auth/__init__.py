"""Key lifecycle, rotation, scope matching and authorization."""

from .api_keys import KeyLifecycleManager
from .gate import AdminPrincipal, AuthorizationGate
from .roles import ADMIN_ROLES, PERMISSION_SCOPES, AdminRole, Permission, get_role_scopes
from .rotation import RotationManager
from .scopes import GrantedScopes, ScopePattern, grants, parse_scope

__all__ = [
    "KeyLifecycleManager",
    "RotationManager",
    "AuthorizationGate",
    "AdminPrincipal",
    "ADMIN_ROLES",
    "PERMISSION_SCOPES",
    "AdminRole",
    "Permission",
    "get_role_scopes",
    "GrantedScopes",
    "ScopePattern",
    "grants",
    "parse_scope",
]
