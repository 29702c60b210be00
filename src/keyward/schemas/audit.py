"""Schemas for audit trail queries and request metadata."""

from pydantic import Field

from ..models.audit import AuditEntry
from ..models.base import BaseModelConfig


class RequestContext(BaseModelConfig):
    """Client metadata recorded with each audit entry."""

    ip: str = Field(default="unknown")
    user_agent: str = Field(default="unknown")


class AuditPage(BaseModelConfig):
    """One page of audit entries in chronological order."""

    entries: list[AuditEntry]
    cursor: str | None = None
    has_more: bool = False
