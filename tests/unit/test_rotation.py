"""Unit tests for key rotation and the grace window."""

from typing import Any

import pytest

from keyward.core.errors import ExpiredError, InactiveError, InvalidInputError, NotFoundError
from keyward.dependencies import KeywardServices
from keyward.models.api_key import KeyStatus
from keyward.schemas.keys import KeyFailureReason, RotateKeyOptions
from tests.conftest import DAY_MS, MINUTE_MS, FakeClock


class TestRotateKey:
    """Rotation issues a successor and keeps the old secret briefly valid."""

    @pytest.mark.asyncio
    async def test_successor_inherits_and_links(
        self, services: KeywardServices, clock: FakeClock, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key({**key_data, "metadata": {"team": "ar"}})
        clock.advance(MINUTE_MS)

        result = await services.rotation.rotate_key(old.id, {"rotated_by": "admin-1"})

        new = result.new_key
        assert new.id != old.id
        assert new.secret != old.secret
        assert (new.name, new.owner, new.email) == (old.name, old.owner, old.email)
        assert new.scopes == old.scopes
        assert new.metadata == {"team": "ar"}
        assert new.predecessor_id == old.id
        assert new.created_by == "admin-1"

        assert result.grace_period_days == 7
        assert result.grace_expires_at == clock.now + 7 * DAY_MS
        assert result.old_key.status is KeyStatus.ROTATED
        assert result.old_key.successor_id == new.id
        assert result.old_key.rotated_at == clock.now
        assert result.old_key.rotated_by == "admin-1"

        stored = await services.lifecycle.get_key(old.id)
        assert stored.status is KeyStatus.ROTATED
        assert stored.grace_expires_at == result.grace_expires_at

    @pytest.mark.asyncio
    async def test_overrides(self, services: KeywardServices, key_data: dict[str, Any]) -> None:
        old = await services.lifecycle.create_key(key_data)
        result = await services.rotation.rotate_key(
            old.id,
            RotateKeyOptions(scopes=["read:invoices"], name="Billing v2", grace_period_days=0),
        )
        assert result.new_key.scopes == ["read:invoices"]
        assert result.new_key.name == "Billing v2"
        assert result.grace_period_days == 0

    @pytest.mark.asyncio
    async def test_both_secrets_valid_during_grace(
        self, services: KeywardServices, clock: FakeClock, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        result = await services.rotation.rotate_key(old.id, {"grace_period_days": 2})

        clock.advance(DAY_MS)
        old_check = await services.lifecycle.validate_key(old.secret, ["read:invoices"])
        assert old_check.valid
        assert old_check.rotation is not None
        assert old_check.rotation.successor_id == result.new_key.id
        assert old_check.rotation.grace_expires_at == result.grace_expires_at
        assert old_check.public_view().rotation == old_check.rotation

        new_check = await services.lifecycle.validate_key(result.new_key.secret)
        assert new_check.valid
        assert new_check.rotation is None

    @pytest.mark.asyncio
    async def test_old_secret_rejected_after_grace(
        self, services: KeywardServices, clock: FakeClock, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        await services.rotation.rotate_key(old.id, {"grace_period_days": 1})

        clock.advance(DAY_MS)
        result = await services.lifecycle.validate_key(old.secret)
        assert not result.valid
        assert result.reason is KeyFailureReason.INACTIVE

    @pytest.mark.asyncio
    async def test_zero_grace_invalidates_immediately(
        self, services: KeywardServices, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        await services.rotation.rotate_key(old.id, {"grace_period_days": 0})
        assert not (await services.lifecycle.validate_key(old.secret)).valid

    @pytest.mark.asyncio
    async def test_inherited_expiry_skips_horizon_check(
        self, services: KeywardServices, clock: FakeClock, key_data: dict[str, Any]
    ) -> None:
        expires_at = clock.now + 10 * MINUTE_MS
        old = await services.lifecycle.create_key({**key_data, "expires_at": expires_at})
        clock.advance(8 * MINUTE_MS)

        result = await services.rotation.rotate_key(old.id)
        assert result.new_key.expires_at == expires_at

    @pytest.mark.asyncio
    async def test_explicit_expiry_respects_horizon(
        self, services: KeywardServices, clock: FakeClock, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        with pytest.raises(InvalidInputError):
            await services.rotation.rotate_key(old.id, {"expires_at": clock.now + MINUTE_MS})
        assert (await services.lifecycle.get_key(old.id)).status is KeyStatus.ACTIVE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", [-1, 91])
    async def test_grace_out_of_range(
        self, services: KeywardServices, key_data: dict[str, Any], days: int
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        with pytest.raises(InvalidInputError) as exc_info:
            await services.rotation.rotate_key(old.id, {"grace_period_days": days})
        assert "grace_period_days" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_rotated_key_cannot_rotate_again(
        self, services: KeywardServices, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        await services.rotation.rotate_key(old.id)
        with pytest.raises(InactiveError):
            await services.rotation.rotate_key(old.id)

    @pytest.mark.asyncio
    async def test_revoked_or_unknown_key(
        self, services: KeywardServices, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        await services.lifecycle.revoke_key(old.id)
        with pytest.raises(NotFoundError):
            await services.rotation.rotate_key(old.id)
        with pytest.raises(NotFoundError):
            await services.rotation.rotate_key("00000000-0000-0000-0000-0000000000ff")

    @pytest.mark.asyncio
    async def test_revoking_rotated_key_ends_grace(
        self, services: KeywardServices, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(key_data)
        await services.rotation.rotate_key(old.id)
        await services.lifecycle.revoke_key(old.id)
        assert not (await services.lifecycle.validate_key(old.secret)).valid

    @pytest.mark.asyncio
    async def test_expired_key_is_revoked_instead_of_rotated(
        self, services: KeywardServices, clock: FakeClock, key_data: dict[str, Any]
    ) -> None:
        old = await services.lifecycle.create_key(
            {**key_data, "expires_at": clock.now + 10 * MINUTE_MS}
        )
        clock.advance(10 * MINUTE_MS)

        with pytest.raises(ExpiredError):
            await services.rotation.rotate_key(old.id)

        stored = await services.lifecycle.get_key(old.id)
        assert stored.status is KeyStatus.REVOKED
        assert stored.revoked_reason == "expired"
        assert (await services.lifecycle.list_keys()).total_items == 1
