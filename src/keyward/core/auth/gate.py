"""Authorization gate for privileged operations."""

import logging

from attrs import field, frozen
from beartype import beartype

from ..config import Settings
from ..errors import InsufficientScopeError, UnauthenticatedError
from .api_keys import KeyLifecycleManager
from .scopes import GrantedScopes

logger = logging.getLogger(__name__)


@frozen
class AdminPrincipal:
    """An authenticated administrator and the scopes it holds."""

    key_id: str = field()
    name: str = field()
    owner: str = field()
    granted: GrantedScopes = field(eq=False)

    @classmethod
    def from_scopes(
        cls,
        key_id: str,
        scopes: list[str],
        *,
        name: str | None = None,
        owner: str | None = None,
    ) -> "AdminPrincipal":
        """Build a principal directly from a scope list."""
        return cls(
            key_id=key_id,
            name=name or key_id,
            owner=owner or key_id,
            granted=GrantedScopes(scopes),
        )

    @property
    def scopes(self) -> list[str]:
        """Granted scopes in wire form."""
        return self.granted.scopes


class AuthorizationGate:
    """Check principals against required permission scopes."""

    def __init__(self, lifecycle: KeyLifecycleManager, settings: Settings) -> None:
        """Initialize the gate."""
        self._lifecycle = lifecycle
        self._settings = settings

    @staticmethod
    @beartype
    def has_permission(principal: AdminPrincipal, scope: str) -> bool:
        """Whether ``principal`` holds ``scope``."""
        return principal.granted.grants(scope)

    @staticmethod
    @beartype
    def require_permission(principal: AdminPrincipal, scope: str) -> None:
        """Raise :class:`InsufficientScopeError` unless ``principal`` holds ``scope``."""
        if not principal.granted.grants(scope):
            logger.info("Permission %s denied for %s", scope, principal.key_id)
            raise InsufficientScopeError([scope], principal.scopes)

    @beartype
    async def authenticate(self, secret: str) -> AdminPrincipal:
        """Resolve a secret into an administrative principal.

        The secret must validate and carry at least one scope in the admin
        namespace. Every failure raises the same generic error.
        """
        result = await self._lifecycle.validate_key(secret)
        if not result.valid or result.key_id is None:
            raise UnauthenticatedError("Invalid API key")

        prefix = self._settings.admin_scope_prefix.lower()
        if not any(scope.lower().startswith(prefix) for scope in result.scopes):
            logger.warning("Non-admin key %s attempted admin access", result.key_id)
            raise UnauthenticatedError("Invalid API key")

        return AdminPrincipal.from_scopes(
            result.key_id, result.scopes, name=result.name, owner=result.owner
        )
