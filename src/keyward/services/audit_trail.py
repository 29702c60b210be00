"""Administrative audit trail with secondary indexes."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from beartype import beartype
from pydantic import ValidationError

from ..core.config import Settings
from ..core.errors import InvalidInputError, StorageUnavailableError
from ..core.pagination import resolve_cursor, resolve_limit
from ..core.security import Clock, IdFactory, new_key_id, system_clock
from ..core.storage import layout
from ..core.storage.client import StoreClient
from ..models.audit import AuditAction, AuditEntry
from ..schemas.audit import AuditPage, RequestContext
from ..schemas.keys import parse_request

logger = logging.getLogger(__name__)


class AuditTrail:
    """Append-only log of administrative actions.

    Each entry is written once under ``log:admin:<id>``; index pointers for
    actor, action, UTC date and (for critical actions) the critical feed are
    written afterwards on a best-effort basis. Index keys end in a fixed-width
    time key so a prefix listing returns entries in chronological order.
    """

    def __init__(
        self,
        store: StoreClient,
        settings: Settings,
        *,
        clock: Clock = system_clock,
        id_factory: IdFactory = new_key_id,
    ) -> None:
        """Initialize the audit trail."""
        self._store = store
        self._settings = settings
        self._clock = clock
        self._id_factory = id_factory

    @beartype
    async def append(
        self,
        admin_id: str,
        action: AuditAction | str,
        details: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> AuditEntry:
        """Record an administrative action.

        Args:
            admin_id: Acting administrator (key ID)
            action: Action performed
            details: Action-specific payload
            context: Client metadata of the originating request

        Returns:
            The stored entry

        Raises:
            InvalidInputError: Empty or colon-bearing ``admin_id`` or ``action``
            StorageUnavailableError: The canonical entry could not be written
        """
        context = context or RequestContext()
        entry = parse_request(
            AuditEntry,
            {
                "id": self._id_factory(),
                "timestamp": self._clock(),
                "admin_id": admin_id,
                "action": action.value if isinstance(action, AuditAction) else action,
                "details": dict(details or {}),
                "ip": context.ip,
                "user_agent": context.user_agent,
            },
        )

        await self._store.put(layout.audit_record(entry.id), entry.model_dump(mode="json"))

        pointers = [
            layout.audit_by_admin_prefix(entry.admin_id) + entry.time_key,
            layout.audit_by_action_prefix(entry.action) + entry.time_key,
            layout.audit_by_date_prefix(entry.date_key) + entry.time_key,
        ]
        if entry.is_critical:
            pointers.append(layout.AUDIT_CRITICAL_PREFIX + entry.time_key)

        for pointer in pointers:
            try:
                await self._store.put(pointer, entry.id)
            except StorageUnavailableError as exc:
                logger.warning("Audit index write %s failed: %s", pointer, exc)

        logger.debug("Audit %s by %s (%s)", entry.action, entry.admin_id, entry.id)
        return entry

    @beartype
    async def get_entry(self, entry_id: str) -> AuditEntry | None:
        """Load one canonical entry."""
        raw = await self._store.get(layout.audit_record(entry_id))
        if raw is None:
            return None
        try:
            return AuditEntry.model_validate(raw)
        except ValidationError as exc:
            logger.error("Corrupt audit entry %s: %s", entry_id, exc)
            return None

    async def _page(self, prefix: str, limit: int | None, cursor: str | None) -> AuditPage:
        limit = resolve_limit(limit, self._settings.audit_page_limit, self._settings.max_page_limit)
        cursor = resolve_cursor(cursor, prefix)

        page = await self._store.list(prefix=prefix, cursor=cursor, limit=limit)
        entry_ids = await asyncio.gather(*(self._store.get(name) for name in page.keys))
        entries = await asyncio.gather(
            *(self.get_entry(entry_id) for entry_id in entry_ids if isinstance(entry_id, str))
        )

        return AuditPage(
            entries=[entry for entry in entries if entry is not None],
            cursor=page.cursor,
            has_more=page.has_more,
        )

    @beartype
    async def by_admin(
        self, admin_id: str, limit: int | None = None, cursor: str | None = None
    ) -> AuditPage:
        """Entries written by one administrator."""
        return await self._page(layout.audit_by_admin_prefix(admin_id), limit, cursor)

    @beartype
    async def by_action(
        self, action: AuditAction | str, limit: int | None = None, cursor: str | None = None
    ) -> AuditPage:
        """Entries of one action type."""
        name = action.value if isinstance(action, AuditAction) else action
        return await self._page(layout.audit_by_action_prefix(name), limit, cursor)

    @beartype
    async def by_date(
        self, date: str, limit: int | None = None, cursor: str | None = None
    ) -> AuditPage:
        """Entries written on one UTC date (``yyyy-mm-dd``)."""
        try:
            datetime.strptime(date, "%Y-%m-%d")
        except ValueError as exc:
            raise InvalidInputError(
                "Invalid date", {"date": "Date must use the yyyy-mm-dd format"}
            ) from exc
        return await self._page(layout.audit_by_date_prefix(date), limit, cursor)

    @beartype
    async def critical(self, limit: int | None = None, cursor: str | None = None) -> AuditPage:
        """Entries for critical actions only."""
        return await self._page(layout.AUDIT_CRITICAL_PREFIX, limit, cursor)

    @beartype
    async def query(
        self,
        *,
        admin_id: str | None = None,
        action: str | None = None,
        date: str | None = None,
        critical: bool = False,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> AuditPage:
        """Query exactly one index.

        Raises:
            InvalidInputError: No filter, or more than one
        """
        filters = [admin_id is not None, action is not None, date is not None, critical]
        if sum(filters) != 1:
            raise InvalidInputError(
                "Exactly one audit filter is required",
                {"filter": "Use one of admin_id, action, date or critical"},
            )
        if admin_id is not None:
            return await self.by_admin(admin_id, limit, cursor)
        if action is not None:
            return await self.by_action(action, limit, cursor)
        if date is not None:
            return await self.by_date(date, limit, cursor)
        return await self.critical(limit, cursor)
