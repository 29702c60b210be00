"""Schemas for key creation, rotation, validation and listing."""

from enum import Enum
from typing import Any, TypeVar

from beartype import beartype
from pydantic import Field, ValidationError, field_validator

from ..core.errors import InvalidInputError
from ..models.api_key import ApiKey, IssuedApiKey
from ..models.base import BaseModelConfig

ModelT = TypeVar("ModelT", bound=BaseModelConfig)

GENERIC_INVALID_KEY = "Invalid API key"


@beartype
def parse_request(model: type[ModelT], data: ModelT | dict[str, Any]) -> ModelT:
    """Validate raw input into ``model``, raising :class:`InvalidInputError`."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = {
            ".".join(str(part) for part in error["loc"]) or "body": error["msg"]
            for error in exc.errors()
        }
        raise InvalidInputError(f"Invalid {model.__name__}", errors) from exc


def _normalize_scopes(scopes: list[str]) -> list[str]:
    normalized: list[str] = []
    seen: set[str] = set()
    for scope in scopes:
        cleaned = scope.strip()
        if not cleaned:
            raise ValueError("Each scope must be a non-empty string")
        if cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        normalized.append(cleaned)
    return normalized


class CreateKeyRequest(BaseModelConfig):
    """Input for issuing a new key."""

    name: str = Field(..., min_length=1, description="Human-readable name")
    owner: str = Field(..., min_length=1, description="Owner of the key")
    email: str | None = Field(default=None)
    scopes: list[str] = Field(..., min_length=1, description="Permission scopes")
    expires_at: int = Field(default=0, ge=0, description="Expiry (ms), 0 = never")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("scopes")
    @classmethod
    def validate_scopes(cls, v: list[str]) -> list[str]:
        """Strip, reject blanks and drop case-insensitive duplicates."""
        return _normalize_scopes(v)


class RotateKeyOptions(BaseModelConfig):
    """Input for rotating a key; unset fields are inherited."""

    grace_period_days: int | None = Field(default=None)
    scopes: list[str] | None = Field(default=None, min_length=1)
    name: str | None = Field(default=None, min_length=1)
    expires_at: int | None = Field(default=None, ge=0)
    rotated_by: str | None = Field(default=None)

    @field_validator("scopes")
    @classmethod
    def validate_scopes(cls, v: list[str] | None) -> list[str] | None:
        """Normalize override scopes the same way as creation."""
        return None if v is None else _normalize_scopes(v)


class KeyFailureReason(str, Enum):
    """Granular validation failure, shown on the administrative surface only."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    INSUFFICIENT_SCOPE = "insufficient_scope"

    @property
    def message(self) -> str:
        """Human-readable message for the reason."""
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES: dict[KeyFailureReason, str] = {
    KeyFailureReason.NOT_FOUND: GENERIC_INVALID_KEY,
    KeyFailureReason.INACTIVE: "API key is not active",
    KeyFailureReason.EXPIRED: "API key has expired",
    KeyFailureReason.INSUFFICIENT_SCOPE: "API key does not have the required scopes",
}


class RotationNotice(BaseModelConfig):
    """Advisory attached when a superseded secret is used during grace."""

    successor_id: str
    grace_expires_at: int
    message: str = "This API key has been rotated; switch to the new secret"


class PublicValidationResult(BaseModelConfig):
    """Validation outcome safe for unauthenticated callers."""

    valid: bool
    key_id: str | None = None
    owner: str | None = None
    scopes: list[str] = Field(default_factory=list)
    error: str | None = None
    rotation: RotationNotice | None = None


class ValidationResult(BaseModelConfig):
    """Full validation outcome for the administrative surface."""

    valid: bool
    key_id: str | None = None
    name: str | None = None
    owner: str | None = None
    email: str | None = None
    scopes: list[str] = Field(default_factory=list)
    reason: KeyFailureReason | None = None
    error: str | None = None
    required_scopes: list[str] = Field(default_factory=list)
    provided_scopes: list[str] = Field(default_factory=list)
    missing_scopes: list[str] = Field(default_factory=list)
    rotation: RotationNotice | None = None

    @classmethod
    @beartype
    def success(
        cls, key: ApiKey, rotation: RotationNotice | None = None
    ) -> "ValidationResult":
        """Build a successful result for ``key``."""
        return cls(
            valid=True,
            key_id=key.id,
            name=key.name,
            owner=key.owner,
            email=key.email,
            scopes=list(key.scopes),
            rotation=rotation,
        )

    @classmethod
    @beartype
    def failure(
        cls,
        reason: KeyFailureReason,
        key_id: str | None = None,
        required_scopes: list[str] | None = None,
        provided_scopes: list[str] | None = None,
        missing_scopes: list[str] | None = None,
    ) -> "ValidationResult":
        """Build a failed result carrying the granular reason."""
        return cls(
            valid=False,
            key_id=key_id,
            reason=reason,
            error=reason.message,
            required_scopes=list(required_scopes or []),
            provided_scopes=list(provided_scopes or []),
            missing_scopes=list(missing_scopes or []),
        )

    @beartype
    def public_view(self) -> PublicValidationResult:
        """Collapse every failure into one indistinguishable answer."""
        if not self.valid:
            return PublicValidationResult(valid=False, error=GENERIC_INVALID_KEY)
        return PublicValidationResult(
            valid=True,
            key_id=self.key_id,
            owner=self.owner,
            scopes=list(self.scopes),
            rotation=self.rotation,
        )


class KeyPage(BaseModelConfig):
    """Offset-paginated listing, newest first."""

    items: list[ApiKey]
    total_items: int = Field(..., ge=0)
    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)


class KeyCursorPage(BaseModelConfig):
    """Cursor-paginated listing."""

    items: list[ApiKey]
    limit: int = Field(..., ge=1)
    cursor: str | None = None
    has_more: bool = False


class RevocationResult(BaseModelConfig):
    """Outcome of revoking a key."""

    id: str
    name: str
    already_revoked: bool = False
    revoked_at: int | None = None
    revoked_reason: str | None = None

    @property
    def message(self) -> str:
        """Summary line for the caller."""
        if self.already_revoked:
            return "API key is already revoked"
        return "API key revoked successfully"


class RotationResult(BaseModelConfig):
    """Outcome of rotating a key."""

    new_key: IssuedApiKey
    old_key: ApiKey
    grace_period_days: int = Field(..., ge=0)
    grace_expires_at: int = Field(..., ge=0)


class CleanupReport(BaseModelConfig):
    """Per-category counts from one cleanup sweep."""

    expired: int = Field(default=0, ge=0)
    rotations_expired: int = Field(default=0, ge=0)
    stale_lookups: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    timestamp: int = Field(..., ge=0)

    @property
    def revoked_total(self) -> int:
        """Keys revoked by the sweep."""
        return self.expired + self.rotations_expired
