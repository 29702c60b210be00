"""Key rotation with a dual-validity grace window."""

import logging
from typing import Any

from beartype import beartype

from ...models.api_key import KeyStatus, RevocationReason
from ...schemas.keys import RotateKeyOptions, RotationResult, parse_request
from ..config import Settings
from ..errors import ExpiredError, InactiveError, InvalidInputError, NotFoundError
from ..security import Clock, system_clock
from .api_keys import KeyLifecycleManager

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class RotationManager:
    """Issue a successor key and keep the old secret valid for a while."""

    def __init__(
        self,
        lifecycle: KeyLifecycleManager,
        settings: Settings,
        *,
        clock: Clock = system_clock,
    ) -> None:
        """Initialize the rotation manager."""
        self._lifecycle = lifecycle
        self._settings = settings
        self._clock = clock

    @beartype
    def _grace_days(self, requested: int | None) -> int:
        settings = self._settings
        days = settings.default_grace_period_days if requested is None else requested
        if not settings.min_grace_period_days <= days <= settings.max_grace_period_days:
            raise InvalidInputError(
                "Invalid grace period",
                {
                    "grace_period_days": (
                        f"Grace period must be between {settings.min_grace_period_days} "
                        f"and {settings.max_grace_period_days} days"
                    )
                },
            )
        return days

    @beartype
    async def rotate_key(
        self,
        key_id: str,
        options: RotateKeyOptions | dict[str, Any] | None = None,
    ) -> RotationResult:
        """Rotate an active key.

        The successor inherits every field of the old key unless overridden.
        The old key moves to ``rotated`` and keeps validating until its grace
        window closes; the sweep then revokes it.

        Raises:
            InvalidInputError: Malformed ID or options
            NotFoundError: Unknown key, or a key already revoked
            InactiveError: The key was already rotated
            ExpiredError: The key passed its expiry (it is revoked as well)
        """
        options = parse_request(RotateKeyOptions, options or {})
        grace_days = self._grace_days(options.grace_period_days)

        old = await self._lifecycle.get_key(key_id)
        if old is None or old.status is KeyStatus.REVOKED:
            raise NotFoundError("API key", key_id)
        if old.status is not KeyStatus.ACTIVE:
            raise InactiveError(old.id, old.status.value)
        if old.is_expired(self._clock()):
            await self._lifecycle.revoke_key(old.id, RevocationReason.EXPIRED.value)
            raise ExpiredError(old.id, old.expires_at)

        successor = await self._lifecycle.create_key(
            {
                "name": options.name or old.name,
                "owner": old.owner,
                "email": old.email,
                "scopes": list(options.scopes or old.scopes),
                "expires_at": old.expires_at if options.expires_at is None else options.expires_at,
                "metadata": dict(old.metadata),
            },
            created_by=options.rotated_by,
            predecessor_id=old.id,
            enforce_expiry_horizon=options.expires_at is not None,
        )

        now = self._clock()
        grace_expires_at = now + grace_days * DAY_MS
        rotated = old.rotated(now, successor.id, grace_expires_at, options.rotated_by)
        await self._lifecycle.save_key(rotated)

        logger.info(
            "Rotated API key %s -> %s (grace %d days)", old.id, successor.id, grace_days
        )
        return RotationResult(
            new_key=successor,
            old_key=rotated,
            grace_period_days=grace_days,
            grace_expires_at=grace_expires_at,
        )
