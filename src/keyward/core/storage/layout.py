"""Logical record layout shared by the lifecycle core and the audit trail."""

from beartype import beartype

from ..security import hash_secret

KEY_PREFIX = "key:"
LOOKUP_PREFIX = "lookup:"
OWNER_INDEX_PREFIX = "index:owner:"
ADMIN_INDEX_PREFIX = "index:admin:"

AUDIT_PREFIX = "log:admin:"
AUDIT_BY_ADMIN_PREFIX = "log:admin:by_admin:"
AUDIT_BY_ACTION_PREFIX = "log:admin:by_action:"
AUDIT_BY_DATE_PREFIX = "log:admin:by_date:"
AUDIT_CRITICAL_PREFIX = "log:admin:critical:"


@beartype
def key_record(key_id: str) -> str:
    """``key:<id>`` - key metadata."""
    return f"{KEY_PREFIX}{key_id}"


@beartype
def key_id_from_record(name: str) -> str:
    """Inverse of :func:`key_record`."""
    return name[len(KEY_PREFIX) :]


@beartype
def lookup_record(secret: str) -> str:
    """``lookup:<digest>`` - secret to id mapping, keyed by the secret digest."""
    return f"{LOOKUP_PREFIX}{hash_secret(secret)}"


@beartype
def owner_index_prefix(owner: str) -> str:
    """Prefix of every owner index entry for ``owner``."""
    return f"{OWNER_INDEX_PREFIX}{owner}:"


@beartype
def owner_index(owner: str, key_id: str) -> str:
    """``index:owner:<owner>:<id>``."""
    return f"{owner_index_prefix(owner)}{key_id}"


@beartype
def admin_index(key_id: str) -> str:
    """``index:admin:<id>``."""
    return f"{ADMIN_INDEX_PREFIX}{key_id}"


@beartype
def audit_record(entry_id: str) -> str:
    """``log:admin:<entryId>`` - canonical audit entry."""
    return f"{AUDIT_PREFIX}{entry_id}"


@beartype
def audit_by_admin_prefix(admin_id: str) -> str:
    """Index prefix for one actor."""
    return f"{AUDIT_BY_ADMIN_PREFIX}{admin_id}:"


@beartype
def audit_by_action_prefix(action: str) -> str:
    """Index prefix for one action type."""
    return f"{AUDIT_BY_ACTION_PREFIX}{action}:"


@beartype
def audit_by_date_prefix(date_key: str) -> str:
    """Index prefix for one UTC calendar date (``yyyy-mm-dd``)."""
    return f"{AUDIT_BY_DATE_PREFIX}{date_key}:"
