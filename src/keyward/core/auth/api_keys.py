# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""API key lifecycle: issue, look up, list, validate, revoke and sweep."""

import asyncio
import logging
from typing import Any

from beartype import beartype
from pydantic import ValidationError

from ...models.api_key import ApiKey, IssuedApiKey, KeyStatus, RevocationReason
from ...schemas.keys import (
    CleanupReport,
    CreateKeyRequest,
    KeyCursorPage,
    KeyFailureReason,
    KeyPage,
    RevocationResult,
    RotationNotice,
    ValidationResult,
    parse_request,
)
from ..config import Settings
from ..errors import (
    InvalidInputError,
    KeywardError,
    NotFoundError,
    StorageUnavailableError,
)
from ..logging_utils import redact_secret
from ..pagination import resolve_cursor, resolve_limit, resolve_offset
from ..result_types import Err, Ok, Result
from ..security import (
    Clock,
    IdFactory,
    SecretGenerator,
    is_valid_key_id,
    new_key_id,
    system_clock,
)
from ..storage import layout
from ..storage.client import StoreClient
from .roles import get_role_scopes
from .scopes import GrantedScopes, is_well_formed

logger = logging.getLogger(__name__)

_IDENTITY_ATTEMPTS = 3


class KeyLifecycleManager:
    """Manage API keys stored in a key-value backend."""

    def __init__(
        self,
        store: StoreClient,
        settings: Settings,
        *,
        clock: Clock = system_clock,
        secret_generator: SecretGenerator | None = None,
        id_factory: IdFactory = new_key_id,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Store client shared with the rest of the core
            settings: Limits and defaults
            clock: Millisecond wall clock
            secret_generator: Source of bearer secrets
            id_factory: Source of key identifiers
        """
        self._store = store
        self._settings = settings
        self._clock = clock
        self._secrets = secret_generator or SecretGenerator(
            prefix=settings.key_prefix, num_bytes=settings.secret_bytes
        )
        self._id_factory = id_factory
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def settings(self) -> Settings:
        """Active settings."""
        return self._settings

    @beartype
    def now(self) -> int:
        """Current time from the injected clock (ms)."""
        return self._clock()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def _load(self, key_id: str) -> ApiKey | None:
        name = layout.key_record(key_id)
        raw = await self._store.get(name)
        if raw is None:
            return None
        try:
            return ApiKey.model_validate(raw)
        except ValidationError as exc:
            logger.error("Corrupt key record %s: %s", name, exc)
            raise StorageUnavailableError("decode", name, reason="corrupt record") from exc

    @beartype
    async def save_key(self, key: ApiKey) -> None:
        """Persist an updated key record (last write wins)."""
        await self._store.put(layout.key_record(key.id), key.to_record())

    @beartype
    def _require_valid_id(self, key_id: str) -> str:
        if not is_valid_key_id(key_id):
            raise InvalidInputError(
                "Invalid API key ID format", {"key_id": "Key ID must be a UUID"}
            )
        return key_id

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _limit_errors(self, request: CreateKeyRequest, now: int, check_horizon: bool) -> dict[str, str]:
        settings = self._settings
        errors: dict[str, str] = {}
        if len(request.name) > settings.max_name_length:
            errors["name"] = f"Name must be at most {settings.max_name_length} characters"
        if len(request.owner) > settings.max_owner_length:
            errors["owner"] = f"Owner must be at most {settings.max_owner_length} characters"
        if len(request.scopes) > settings.max_scopes:
            errors["scopes"] = f"At most {settings.max_scopes} scopes are allowed"
        else:
            invalid = [
                scope
                for scope in request.scopes
                if len(scope) > settings.max_scope_length or not is_well_formed(scope)
            ]
            if invalid:
                errors["scopes"] = f"Malformed scopes: {', '.join(invalid)}"
        if check_horizon and request.expires_at:
            if request.expires_at < now + settings.min_expiration_ms:
                errors["expires_at"] = (
                    f"expires_at must be at least {settings.min_expiration_seconds} "
                    "seconds in the future"
                )
        return errors

    async def _allocate_identity(self) -> tuple[str, str]:
        for _ in range(_IDENTITY_ATTEMPTS):
            key_id = self._id_factory()
            secret = self._secrets.generate()
            if await self._store.get(layout.key_record(key_id)) is not None:
                continue
            if await self._store.get(layout.lookup_record(secret)) is not None:
                continue
            return key_id, secret
        raise KeywardError("Could not allocate a unique key identity")

    @beartype
    async def create_key(
        self,
        request: CreateKeyRequest | dict[str, Any],
        *,
        created_by: str | None = None,
        predecessor_id: str | None = None,
        enforce_expiry_horizon: bool = True,
    ) -> IssuedApiKey:
        """Create a new API key.

        Args:
            request: Key creation data
            created_by: ID of the admin creating the key
            predecessor_id: Key this one supersedes (rotation only)
            enforce_expiry_horizon: Whether ``expires_at`` must respect the
                minimum horizon (inherited expiries during rotation do not)

        Returns:
            The stored record plus the one-time secret

        Raises:
            InvalidInputError: Missing or malformed fields
            StorageUnavailableError: Backend failure
        """
        request = parse_request(CreateKeyRequest, request)
        now = self._clock()
        errors = self._limit_errors(request, now, enforce_expiry_horizon)
        if errors:
            raise InvalidInputError("Invalid key data", errors)

        key_id, secret = await self._allocate_identity()
        record = ApiKey(
            id=key_id,
            name=request.name,
            owner=request.owner,
            email=request.email,
            scopes=list(request.scopes),
            status=KeyStatus.ACTIVE,
            created_at=now,
            expires_at=request.expires_at,
            last_used_at=0,
            created_by=created_by,
            metadata=dict(request.metadata),
            predecessor_id=predecessor_id,
        )

        items: dict[str, Any] = {
            layout.key_record(key_id): record.to_record(),
            layout.lookup_record(secret): key_id,
            layout.owner_index(record.owner, key_id): key_id,
        }
        if record.is_admin(self._settings.admin_scope_prefix):
            items[layout.admin_index(key_id)] = key_id

        atomic = await self._store.put_many(items)
        if not atomic:
            logger.debug("Key %s written without a transaction", key_id)
        logger.info("Created API key %s for owner %s", key_id, record.owner)

        return IssuedApiKey(**record.model_dump(), secret=secret)

    @beartype
    async def create_admin_key(
        self,
        name: str,
        email: str,
        *,
        role: str | None = None,
        scopes: list[str] | None = None,
        owner: str | None = None,
        created_by: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IssuedApiKey:
        """Create a key in the administrative namespace.

        Either a predefined ``role`` or explicit ``scopes`` (all under the
        admin namespace) must be supplied.
        """
        prefix = self._settings.admin_scope_prefix
        if role and role.upper() != "CUSTOM":
            admin_scopes = get_role_scopes(role)
            if not admin_scopes:
                raise InvalidInputError("Invalid role", {"role": f"Unknown role: {role}"})
            role_name = role.upper()
        elif scopes:
            outside = [scope for scope in scopes if not scope.lower().startswith(prefix)]
            if outside:
                raise InvalidInputError(
                    "Invalid admin scopes",
                    {"scopes": f"Invalid admin scopes: {', '.join(outside)}"},
                )
            admin_scopes = list(scopes)
            role_name = "CUSTOM"
        else:
            raise InvalidInputError(
                "Either a valid role or custom scopes must be provided",
                {"role": "Required when scopes are not given"},
            )

        return await self.create_key(
            {
                "name": name,
                "owner": owner or name,
                "email": email,
                "scopes": admin_scopes,
                "metadata": {"is_admin": True, "role": role_name, **(metadata or {})},
            },
            created_by=created_by,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @beartype
    async def get_key(self, key_id: str) -> ApiKey | None:
        """Get a key by ID, or ``None`` when it does not exist."""
        return await self._load(self._require_valid_id(key_id))

    async def _load_many(self, key_ids: list[str]) -> list[ApiKey]:
        records = await asyncio.gather(*(self._load(key_id) for key_id in key_ids))
        return [record for record in records if record is not None]

    @beartype
    async def list_keys(self, limit: int | None = None, offset: int | None = 0) -> KeyPage:
        """List keys newest first with offset pagination."""
        limit = resolve_limit(
            limit, self._settings.default_page_limit, self._settings.max_page_limit
        )
        offset = resolve_offset(offset)

        names = await self._store.collect_keys(
            layout.KEY_PREFIX, page_size=self._settings.cleanup_batch_size
        )
        keys = await self._load_many([layout.key_id_from_record(name) for name in names])
        keys.sort(key=lambda key: (key.created_at, key.id), reverse=True)

        return KeyPage(
            items=keys[offset : offset + limit],
            total_items=len(keys),
            limit=limit,
            offset=offset,
        )

    @beartype
    async def list_keys_with_cursor(
        self,
        limit: int | None = None,
        cursor: str | None = None,
        include_rotated: bool = False,
    ) -> KeyCursorPage:
        """List keys with an opaque cursor (the last store key visited)."""
        limit = resolve_limit(
            limit, self._settings.default_page_limit, self._settings.max_page_limit
        )
        cursor = resolve_cursor(cursor, layout.KEY_PREFIX)

        page = await self._store.list(prefix=layout.KEY_PREFIX, cursor=cursor, limit=limit)
        keys = await self._load_many([layout.key_id_from_record(name) for name in page.keys])
        if not include_rotated:
            keys = [key for key in keys if key.status is not KeyStatus.ROTATED]

        return KeyCursorPage(
            items=keys,
            limit=limit,
            cursor=page.cursor,
            has_more=page.has_more,
        )

    async def _keys_from_index(self, prefix: str) -> list[ApiKey]:
        names = await self._store.collect_keys(prefix, page_size=self._settings.cleanup_batch_size)
        key_ids = await asyncio.gather(*(self._store.get(name) for name in names))
        return await self._load_many([key_id for key_id in key_ids if isinstance(key_id, str)])

    @beartype
    async def list_keys_by_owner(self, owner: str) -> list[ApiKey]:
        """Every key issued to ``owner``, via the owner index."""
        keys = await self._keys_from_index(layout.owner_index_prefix(owner))
        return [key for key in keys if key.owner == owner]

    @beartype
    async def list_admin_keys(self) -> list[ApiKey]:
        """Every key holding an administrative scope, via the admin index."""
        return await self._keys_from_index(layout.ADMIN_INDEX_PREFIX)

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    @beartype
    async def revoke_key(
        self,
        key_id: str,
        reason: str | None = None,
        revoked_by: str | None = None,
    ) -> RevocationResult:
        """Revoke a key. Revoking an already revoked key changes nothing.

        Raises:
            InvalidInputError: Malformed key ID
            NotFoundError: Unknown key
        """
        key = await self._load(self._require_valid_id(key_id))
        if key is None:
            raise NotFoundError("API key", key_id)

        if key.status is KeyStatus.REVOKED:
            return RevocationResult(
                id=key.id,
                name=key.name,
                already_revoked=True,
                revoked_at=key.revoked_at,
                revoked_reason=key.revoked_reason,
            )

        revoked = key.revoked(
            self._clock(), reason or RevocationReason.ADMINISTRATIVE.value, revoked_by
        )
        await self.save_key(revoked)
        logger.info("Revoked API key %s (%s)", key.id, revoked.revoked_reason)

        return RevocationResult(
            id=revoked.id,
            name=revoked.name,
            revoked_at=revoked.revoked_at,
            revoked_reason=revoked.revoked_reason,
        )

    @beartype
    async def revoke_keys_by_owner(
        self,
        owner: str,
        reason: str | None = None,
        revoked_by: str | None = None,
    ) -> list[RevocationResult]:
        """Revoke every non-revoked key issued to ``owner``."""
        results: list[RevocationResult] = []
        for key in await self.list_keys_by_owner(owner):
            if key.status is KeyStatus.REVOKED:
                continue
            results.append(await self.revoke_key(key.id, reason, revoked_by))
        return results

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def _resolve(self, secret: str) -> Result[ApiKey, KeyFailureReason]:
        if not self._secrets.looks_valid(secret):
            return Err(KeyFailureReason.NOT_FOUND)

        key_id = await self._store.get(layout.lookup_record(secret))
        if not isinstance(key_id, str):
            logger.debug("No key for secret %s", redact_secret(secret))
            return Err(KeyFailureReason.NOT_FOUND)

        key = await self._load(key_id)
        if key is None:
            logger.warning("Lookup entry points at missing key %s", key_id)
            return Err(KeyFailureReason.NOT_FOUND)
        return Ok(key)

    async def _expire(self, key: ApiKey, now: int) -> None:
        await self.save_key(key.revoked(now, RevocationReason.EXPIRED.value))
        logger.info("API key %s expired and was revoked", key.id)

    @beartype
    async def validate_key(
        self,
        secret: str,
        required_scopes: list[str] | None = None,
    ) -> ValidationResult:
        """Validate a secret and check it against ``required_scopes``.

        Expected failures are returned, never raised. An expired key is
        revoked as a side effect. Every missing scope is reported. On success
        the ``last_used_at`` update is scheduled without being awaited.
        """
        required = list(required_scopes or [])
        resolved = await self._resolve(secret)
        if resolved.is_err():
            return ValidationResult.failure(resolved.unwrap_err())

        key = resolved.unwrap()
        now = self._clock()

        rotation: RotationNotice | None = None
        if key.status is not KeyStatus.ACTIVE:
            if not key.in_grace_window(now):
                return ValidationResult.failure(KeyFailureReason.INACTIVE, key_id=key.id)
            rotation = RotationNotice(
                successor_id=key.successor_id or "",
                grace_expires_at=key.grace_expires_at or 0,
            )

        if key.is_expired(now):
            await self._expire(key, now)
            return ValidationResult.failure(KeyFailureReason.EXPIRED, key_id=key.id)

        missing = GrantedScopes(key.scopes).missing(required)
        if missing:
            return ValidationResult.failure(
                KeyFailureReason.INSUFFICIENT_SCOPE,
                key_id=key.id,
                required_scopes=required,
                provided_scopes=list(key.scopes),
                missing_scopes=missing,
            )

        self._schedule_touch(key.id, now)
        return ValidationResult.success(key, rotation)

    def _schedule_touch(self, key_id: str, now: int) -> None:
        task = asyncio.create_task(self._touch(key_id, now))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _touch(self, key_id: str, now: int) -> None:
        try:
            key = await self._load(key_id)
            if key is None or key.status is KeyStatus.REVOKED:
                return
            touched = key.touched(now)
            if touched is key:
                return
            await self.save_key(touched)
        except Exception as exc:
            logger.warning("Failed to update lastUsedAt for %s: %s", key_id, exc)

    async def drain_pending_updates(self) -> None:
        """Wait for every scheduled ``last_used_at`` update to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @beartype
    async def cleanup_expired_keys(self) -> CleanupReport:
        """Revoke expired keys and elapsed rotations; drop dangling lookups.

        Runs page by page alongside regular traffic; concurrent writers on
        the same record resolve last-write-wins.
        """
        now = self._clock()
        batch = self._settings.cleanup_batch_size
        expired = rotations_expired = stale = failed = 0

        cursor: str | None = None
        while True:
            page = await self._store.list(prefix=layout.KEY_PREFIX, cursor=cursor, limit=batch)
            for name in page.keys:
                key_id = layout.key_id_from_record(name)
                try:
                    key = await self._load(key_id)
                    if key is None:
                        continue
                    if key.status is KeyStatus.ACTIVE and key.is_expired(now):
                        await self.save_key(key.revoked(now, RevocationReason.EXPIRED.value))
                        expired += 1
                    elif key.status is KeyStatus.ROTATED and key.grace_elapsed(now):
                        await self.save_key(
                            key.revoked(now, RevocationReason.ROTATION_EXPIRED.value)
                        )
                        rotations_expired += 1
                except StorageUnavailableError as exc:
                    failed += 1
                    logger.error("Cleanup failed for key %s: %s", key_id, exc)
            if not page.has_more:
                break
            cursor = page.cursor

        cursor = None
        while True:
            page = await self._store.list(prefix=layout.LOOKUP_PREFIX, cursor=cursor, limit=batch)
            for name in page.keys:
                try:
                    key_id = await self._store.get(name)
                    if isinstance(key_id, str) and await self._store.get(
                        layout.key_record(key_id)
                    ) is not None:
                        continue
                    await self._store.delete(name)
                    stale += 1
                except StorageUnavailableError as exc:
                    failed += 1
                    logger.error("Cleanup failed for lookup %s: %s", name, exc)
            if not page.has_more:
                break
            cursor = page.cursor

        report = CleanupReport(
            expired=expired,
            rotations_expired=rotations_expired,
            stale_lookups=stale,
            failed=failed,
            timestamp=now,
        )
        logger.info(
            "Cleanup revoked %d expired keys and %d rotated keys, removed %d stale lookups",
            expired,
            rotations_expired,
            stale,
        )
        return report
