"""Privileged key operations: permission guard, dispatch and audit.

Every administrative request is one of a closed set of operation kinds.
:meth:`KeyOperationService.execute` checks the caller's permission for the
kind, runs it against the lifecycle core and records mutations in the audit
trail.
"""

import logging
from typing import Any, assert_never

from attrs import field, frozen
from beartype import beartype

from ..core.auth.api_keys import KeyLifecycleManager
from ..core.auth.gate import AdminPrincipal, AuthorizationGate
from ..core.auth.roles import Permission
from ..core.auth.rotation import RotationManager
from ..core.errors import NotFoundError
from ..models.api_key import ApiKey, IssuedApiKey, KeyStatus
from ..models.audit import AuditAction
from ..schemas.audit import AuditPage, RequestContext
from ..schemas.keys import (
    CleanupReport,
    CreateKeyRequest,
    KeyCursorPage,
    KeyPage,
    RevocationResult,
    RotateKeyOptions,
    RotationResult,
    ValidationResult,
)
from .audit_trail import AuditTrail

logger = logging.getLogger(__name__)


@frozen
class CreateKey:
    request: CreateKeyRequest | dict[str, Any] = field()


@frozen
class CreateAdminKey:
    name: str = field()
    email: str = field()
    role: str | None = field(default=None)
    scopes: list[str] | None = field(default=None)
    owner: str | None = field(default=None)
    metadata: dict[str, Any] | None = field(default=None)


@frozen
class GetKey:
    key_id: str = field()


@frozen
class ListKeys:
    limit: int | None = field(default=None)
    offset: int | None = field(default=0)


@frozen
class ListKeysWithCursor:
    limit: int | None = field(default=None)
    cursor: str | None = field(default=None)
    include_rotated: bool = field(default=False)


@frozen
class RevokeKey:
    key_id: str = field()
    reason: str | None = field(default=None)


@frozen
class RevokeKeysByOwner:
    owner: str = field()
    reason: str | None = field(default=None)


@frozen
class RotateKey:
    key_id: str = field()
    options: RotateKeyOptions | dict[str, Any] | None = field(default=None)


@frozen
class ValidateKey:
    secret: str = field(repr=False)
    required_scopes: list[str] | None = field(default=None)


@frozen
class CleanupExpiredKeys:
    pass


@frozen
class QueryAuditLog:
    """Exactly one of ``admin_id``, ``action``, ``date`` or ``critical``."""

    admin_id: str | None = field(default=None)
    action: str | None = field(default=None)
    date: str | None = field(default=None)
    critical: bool = field(default=False)
    limit: int | None = field(default=None)
    cursor: str | None = field(default=None)


KeyOperation = (
    CreateKey
    | CreateAdminKey
    | GetKey
    | ListKeys
    | ListKeysWithCursor
    | RevokeKey
    | RevokeKeysByOwner
    | RotateKey
    | ValidateKey
    | CleanupExpiredKeys
    | QueryAuditLog
)

OperationResult = (
    IssuedApiKey
    | ApiKey
    | KeyPage
    | KeyCursorPage
    | RevocationResult
    | list[RevocationResult]
    | RotationResult
    | ValidationResult
    | CleanupReport
    | AuditPage
)


class KeyOperationService:
    """Run operations on behalf of an authenticated administrator."""

    def __init__(
        self,
        lifecycle: KeyLifecycleManager,
        rotation: RotationManager,
        audit: AuditTrail,
        gate: AuthorizationGate,
    ) -> None:
        """Initialize the service with its collaborators."""
        self._lifecycle = lifecycle
        self._rotation = rotation
        self._audit = audit
        self._gate = gate

    def _require(self, principal: AdminPrincipal, permission: Permission) -> None:
        self._gate.require_permission(principal, permission.value)

    def _is_admin(self, key: ApiKey) -> bool:
        return key.is_admin(self._lifecycle.settings.admin_scope_prefix)

    @beartype
    async def execute(
        self,
        operation: KeyOperation,
        principal: AdminPrincipal,
        context: RequestContext | None = None,
    ) -> OperationResult:
        """Check permission, run ``operation`` and audit it when it mutates.

        Raises:
            InsufficientScopeError: The principal lacks the permission
            KeywardError: Whatever the underlying operation raises
        """
        context = context or RequestContext()
        actor = principal.key_id

        match operation:
            case CreateKey(request=request):
                self._require(principal, Permission.KEYS_CREATE)
                created = await self._lifecycle.create_key(request, created_by=actor)
                await self._audit.append(
                    actor,
                    AuditAction.CREATE_KEY,
                    {
                        "key_id": created.id,
                        "name": created.name,
                        "owner": created.owner,
                        "scopes": list(created.scopes),
                    },
                    context,
                )
                return created

            case CreateAdminKey():
                self._require(principal, Permission.USERS_CREATE)
                created = await self._lifecycle.create_admin_key(
                    operation.name,
                    operation.email,
                    role=operation.role,
                    scopes=operation.scopes,
                    owner=operation.owner,
                    created_by=actor,
                    metadata=operation.metadata,
                )
                await self._audit.append(
                    actor,
                    AuditAction.CREATE_ADMIN,
                    {
                        "key_id": created.id,
                        "name": created.name,
                        "role": created.metadata.get("role"),
                        "scopes": list(created.scopes),
                    },
                    context,
                )
                return created

            case GetKey(key_id=key_id):
                self._require(principal, Permission.KEYS_READ)
                key = await self._lifecycle.get_key(key_id)
                if key is None:
                    raise NotFoundError("API key", key_id)
                return key

            case ListKeys(limit=limit, offset=offset):
                self._require(principal, Permission.KEYS_READ)
                return await self._lifecycle.list_keys(limit, offset)

            case ListKeysWithCursor(limit=limit, cursor=cursor, include_rotated=include_rotated):
                self._require(principal, Permission.KEYS_READ)
                return await self._lifecycle.list_keys_with_cursor(limit, cursor, include_rotated)

            case RevokeKey(key_id=key_id, reason=reason):
                self._require(principal, Permission.KEYS_REVOKE)
                target = await self._lifecycle.get_key(key_id)
                admin_target = target is not None and self._is_admin(target)
                if admin_target:
                    self._require(principal, Permission.USERS_REVOKE)
                result = await self._lifecycle.revoke_key(key_id, reason, actor)
                if not result.already_revoked:
                    await self._audit.append(
                        actor,
                        AuditAction.REVOKE_ADMIN if admin_target else AuditAction.REVOKE_KEY,
                        {"key_id": result.id, "name": result.name, "reason": result.revoked_reason},
                        context,
                    )
                return result

            case RevokeKeysByOwner(owner=owner, reason=reason):
                self._require(principal, Permission.KEYS_REVOKE)
                admin_ids = {
                    key.id
                    for key in await self._lifecycle.list_keys_by_owner(owner)
                    if key.status is not KeyStatus.REVOKED and self._is_admin(key)
                }
                if admin_ids:
                    self._require(principal, Permission.USERS_REVOKE)
                results = await self._lifecycle.revoke_keys_by_owner(owner, reason, actor)
                if results:
                    await self._audit.append(
                        actor,
                        AuditAction.REVOKE_KEY_BATCH,
                        {"owner": owner, "key_ids": [result.id for result in results]},
                        context,
                    )
                for result in results:
                    if result.id in admin_ids:
                        await self._audit.append(
                            actor,
                            AuditAction.REVOKE_ADMIN,
                            {
                                "key_id": result.id,
                                "name": result.name,
                                "reason": result.revoked_reason,
                            },
                            context,
                        )
                return results

            case RotateKey(key_id=key_id, options=options):
                self._require(principal, Permission.KEYS_UPDATE)
                if isinstance(options, RotateKeyOptions):
                    options = options.model_copy(update={"rotated_by": actor})
                else:
                    options = {**(options or {}), "rotated_by": actor}
                rotated = await self._rotation.rotate_key(key_id, options)
                await self._audit.append(
                    actor,
                    AuditAction.KEY_ROTATION,
                    {
                        "old_key_id": rotated.old_key.id,
                        "new_key_id": rotated.new_key.id,
                        "grace_period_days": rotated.grace_period_days,
                        "grace_expires_at": rotated.grace_expires_at,
                    },
                    context,
                )
                return rotated

            case ValidateKey(secret=secret, required_scopes=required_scopes):
                self._require(principal, Permission.KEYS_READ)
                return await self._lifecycle.validate_key(secret, required_scopes)

            case CleanupExpiredKeys():
                self._require(principal, Permission.SYSTEM_MAINTENANCE)
                report = await self._lifecycle.cleanup_expired_keys()
                await self._audit.append(
                    actor,
                    AuditAction.SYSTEM_MAINTENANCE,
                    {"operation": "cleanup_expired_keys", **report.model_dump()},
                    context,
                )
                return report

            case QueryAuditLog():
                self._require(principal, Permission.SYSTEM_LOGS)
                return await self._audit.query(
                    admin_id=operation.admin_id,
                    action=operation.action,
                    date=operation.date,
                    critical=operation.critical,
                    limit=operation.limit,
                    cursor=operation.cursor,
                )

            case _:
                assert_never(operation)
