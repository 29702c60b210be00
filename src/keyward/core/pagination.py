"""Shared validation for page sizes and opaque cursors."""

from beartype import beartype

from .errors import InvalidInputError


@beartype
def resolve_limit(limit: int | None, default: int, maximum: int) -> int:
    """Apply the default page size and enforce ``1 <= limit <= maximum``."""
    if limit is None:
        return default
    if limit < 1 or limit > maximum:
        raise InvalidInputError(
            "Invalid page size",
            {"limit": f"Limit must be between 1 and {maximum}"},
        )
    return limit


@beartype
def resolve_offset(offset: int | None) -> int:
    """Enforce a non-negative offset."""
    if offset is None:
        return 0
    if offset < 0:
        raise InvalidInputError(
            "Invalid offset", {"offset": "Offset must be a non-negative integer"}
        )
    return offset


@beartype
def resolve_cursor(cursor: str | None, prefix: str) -> str | None:
    """Accept only cursors produced by a listing under ``prefix``."""
    if not cursor:
        return None
    if not cursor.startswith(prefix):
        raise InvalidInputError("Invalid cursor", {"cursor": "Cursor does not belong to this listing"})
    return cursor
