"""Unit tests for guarded, audited key operations."""

from typing import Any

import pytest

from keyward.core.auth.gate import AdminPrincipal
from keyward.core.errors import InsufficientScopeError, NotFoundError
from keyward.dependencies import KeywardServices
from keyward.models.api_key import IssuedApiKey, KeyStatus
from keyward.schemas.audit import RequestContext
from keyward.services.key_operations import (
    CleanupExpiredKeys,
    CreateAdminKey,
    CreateKey,
    GetKey,
    ListKeys,
    ListKeysWithCursor,
    QueryAuditLog,
    RevokeKey,
    RevokeKeysByOwner,
    RotateKey,
    ValidateKey,
)


@pytest.fixture
def viewer() -> AdminPrincipal:
    return AdminPrincipal.from_scopes("viewer-1", ["admin:keys:read"])


class TestExecute:
    """Dispatch, guard and audit for every operation kind."""

    @pytest.mark.asyncio
    async def test_create_key_is_audited(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        context = RequestContext(ip="192.0.2.1", user_agent="pytest")
        created = await services.operations.execute(CreateKey(key_data), super_principal, context)

        assert created.created_by == super_principal.key_id
        page = await services.audit.by_action("create_key")
        assert len(page.entries) == 1
        entry = page.entries[0]
        assert entry.admin_id == super_principal.key_id
        assert entry.details["key_id"] == created.id
        assert entry.ip == "192.0.2.1"
        assert "secret" not in entry.details

    @pytest.mark.asyncio
    async def test_denied_operation_has_no_effect(
        self, services: KeywardServices, viewer: AdminPrincipal, key_data: dict[str, Any]
    ) -> None:
        with pytest.raises(InsufficientScopeError) as exc_info:
            await services.operations.execute(CreateKey(key_data), viewer)
        assert exc_info.value.missing == ["admin:keys:create"]

        assert (await services.lifecycle.list_keys()).total_items == 0
        assert (await services.audit.by_admin("viewer-1")).entries == []

    @pytest.mark.asyncio
    async def test_create_admin_key_is_critical(
        self, services: KeywardServices, super_principal: AdminPrincipal
    ) -> None:
        created = await services.operations.execute(
            CreateAdminKey("Support desk", "desk@example.com", role="SUPPORT"), super_principal
        )
        assert created.metadata["role"] == "SUPPORT"
        critical = await services.audit.critical()
        assert [entry.action for entry in critical.entries] == ["create_admin"]

    @pytest.mark.asyncio
    async def test_read_operations(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        viewer: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        created = await services.operations.execute(CreateKey(key_data), super_principal)

        fetched = await services.operations.execute(GetKey(created.id), viewer)
        assert fetched.id == created.id
        assert not hasattr(fetched, "secret")

        page = await services.operations.execute(ListKeys(limit=10), viewer)
        assert page.total_items == 2

        cursor_page = await services.operations.execute(ListKeysWithCursor(limit=10), viewer)
        assert len(cursor_page.items) == 2

        validation = await services.operations.execute(
            ValidateKey(created.secret, ["read:invoices"]), viewer
        )
        assert validation.valid

        with pytest.raises(NotFoundError):
            await services.operations.execute(
                GetKey("00000000-0000-0000-0000-0000000000ff"), viewer
            )
        assert (await services.audit.by_admin("viewer-1")).entries == []

    @pytest.mark.asyncio
    async def test_revoke_audits_only_first_revocation(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        created = await services.lifecycle.create_key(key_data)
        first = await services.operations.execute(
            RevokeKey(created.id, "leaked"), super_principal
        )
        second = await services.operations.execute(RevokeKey(created.id), super_principal)

        assert not first.already_revoked
        assert second.already_revoked
        entries = (await services.audit.by_action("revoke_key")).entries
        assert len(entries) == 1
        assert entries[0].details["reason"] == "leaked"

        stored = await services.lifecycle.get_key(created.id)
        assert stored.revoked_by == super_principal.key_id

    @pytest.mark.asyncio
    async def test_revoke_by_owner_is_batch_audited(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        first = await services.lifecycle.create_key(key_data)
        second = await services.lifecycle.create_key(key_data)

        results = await services.operations.execute(
            RevokeKeysByOwner("billing-team"), super_principal
        )
        assert {result.id for result in results} == {first.id, second.id}

        entries = (await services.audit.critical()).entries
        assert [entry.action for entry in entries] == ["revoke_key_batch"]
        assert set(entries[0].details["key_ids"]) == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_admin_revocation_needs_user_scope_and_is_critical(
        self,
        services: KeywardServices,
        super_admin: IssuedApiKey,
        super_principal: AdminPrincipal,
    ) -> None:
        key_admin = AdminPrincipal.from_scopes(
            "key-admin-1",
            ["admin:keys:create", "admin:keys:read", "admin:keys:update", "admin:keys:revoke"],
        )
        with pytest.raises(InsufficientScopeError) as exc_info:
            await services.operations.execute(RevokeKey(super_admin.id), key_admin)
        assert exc_info.value.missing == ["admin:users:revoke"]
        assert (await services.lifecycle.get_key(super_admin.id)).status is KeyStatus.ACTIVE

        desk = await services.lifecycle.create_admin_key(
            "Support desk", "desk@example.com", role="SUPPORT"
        )
        await services.operations.execute(RevokeKey(desk.id, "offboarded"), super_principal)

        entries = (await services.audit.critical()).entries
        assert [entry.action for entry in entries] == ["revoke_admin"]
        assert entries[0].details["key_id"] == desk.id
        assert (await services.audit.by_action("revoke_key")).entries == []

    @pytest.mark.asyncio
    async def test_owner_revocation_covering_admin_keys(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        plain = await services.lifecycle.create_key({**key_data, "owner": "ops"})
        admin = await services.lifecycle.create_admin_key(
            "Ops admin", "ops@example.com", role="KEY_VIEWER", owner="ops"
        )
        key_admin = AdminPrincipal.from_scopes("key-admin-1", ["admin:keys:revoke"])
        with pytest.raises(InsufficientScopeError):
            await services.operations.execute(RevokeKeysByOwner("ops"), key_admin)
        assert (await services.lifecycle.get_key(plain.id)).status is KeyStatus.ACTIVE

        await services.operations.execute(RevokeKeysByOwner("ops"), super_principal)

        entries = (await services.audit.critical()).entries
        assert sorted(entry.action for entry in entries) == ["revoke_admin", "revoke_key_batch"]
        revoke_admin = next(entry for entry in entries if entry.action == "revoke_admin")
        assert revoke_admin.details["key_id"] == admin.id

    @pytest.mark.asyncio
    async def test_rotate_records_actor(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        created = await services.lifecycle.create_key(key_data)
        result = await services.operations.execute(
            RotateKey(created.id, {"grace_period_days": 3}), super_principal
        )

        assert result.old_key.rotated_by == super_principal.key_id
        assert result.new_key.created_by == super_principal.key_id
        entries = (await services.audit.by_action("key_rotation")).entries
        assert entries[0].details["new_key_id"] == result.new_key.id
        assert entries[0].details["grace_period_days"] == 3

    @pytest.mark.asyncio
    async def test_rotate_requires_update_permission(
        self,
        services: KeywardServices,
        key_data: dict[str, Any],
    ) -> None:
        created = await services.lifecycle.create_key(key_data)
        principal = AdminPrincipal.from_scopes(
            "admin-2", ["admin:keys:create", "admin:keys:read", "admin:keys:revoke"]
        )
        with pytest.raises(InsufficientScopeError):
            await services.operations.execute(RotateKey(created.id), principal)

    @pytest.mark.asyncio
    async def test_cleanup_requires_maintenance(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        viewer: AdminPrincipal,
    ) -> None:
        with pytest.raises(InsufficientScopeError):
            await services.operations.execute(CleanupExpiredKeys(), viewer)

        report = await services.operations.execute(CleanupExpiredKeys(), super_principal)
        assert report.revoked_total == 0
        entries = (await services.audit.by_action("system_maintenance")).entries
        assert entries[0].details["operation"] == "cleanup_expired_keys"

    @pytest.mark.asyncio
    async def test_audit_query_requires_logs_permission(
        self,
        services: KeywardServices,
        super_principal: AdminPrincipal,
        viewer: AdminPrincipal,
        key_data: dict[str, Any],
    ) -> None:
        await services.operations.execute(CreateKey(key_data), super_principal)

        with pytest.raises(InsufficientScopeError):
            await services.operations.execute(QueryAuditLog(action="create_key"), viewer)

        auditor = AdminPrincipal.from_scopes("auditor-1", ["admin:system:logs"])
        page = await services.operations.execute(QueryAuditLog(action="create_key"), auditor)
        assert len(page.entries) == 1
