"""Unit tests for domain models, settings, errors and result types.

Tests verify:
- Model immutability (frozen=True) and strict validation (extra="forbid")
- The key status state machine
- Settings validation
- Error payloads
"""

import pytest
from beartype import beartype
from pydantic import ValidationError

from keyward.core.config import Settings, get_settings
from keyward.core.errors import (
    DeadlineExceededError,
    InvalidInputError,
    NotFoundError,
    StorageUnavailableError,
)
from keyward.core.result_types import Err, Ok
from keyward.core.security import SecretGenerator, hash_secret, is_valid_key_id
from keyward.models.api_key import ApiKey, IssuedApiKey, KeyStatus
from keyward.models.base import BaseModelConfig
from keyward.schemas.keys import CreateKeyRequest, parse_request

NOW = 1_700_000_000_000


def make_key(**overrides) -> ApiKey:
    data = {
        "id": "00000000-0000-0000-0000-000000000001",
        "name": "k",
        "owner": "o",
        "scopes": ["read:a"],
        "created_at": NOW,
    }
    data.update(overrides)
    return ApiKey(**data)


class TestBaseModelConfig:
    """Base model configuration."""

    def test_model_is_frozen(self) -> None:
        @beartype
        class Sample(BaseModelConfig):
            value: str

        instance = Sample(value="test")
        with pytest.raises(ValidationError) as exc_info:
            instance.value = "new_value"
        assert "frozen" in str(exc_info.value).lower()

    def test_no_extra_fields_allowed(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            make_key(unexpected=True)
        assert "Extra inputs are not permitted" in str(exc_info.value)

    def test_whitespace_stripping(self) -> None:
        assert make_key(name="  padded  ").name == "padded"


class TestKeyStatus:
    @pytest.mark.parametrize(
        "source,target,allowed",
        [
            (KeyStatus.ACTIVE, KeyStatus.ROTATED, True),
            (KeyStatus.ACTIVE, KeyStatus.REVOKED, True),
            (KeyStatus.ROTATED, KeyStatus.REVOKED, True),
            (KeyStatus.ROTATED, KeyStatus.ACTIVE, False),
            (KeyStatus.REVOKED, KeyStatus.ACTIVE, False),
            (KeyStatus.REVOKED, KeyStatus.ROTATED, False),
        ],
    )
    def test_transitions_are_monotonic(
        self, source: KeyStatus, target: KeyStatus, allowed: bool
    ) -> None:
        assert source.can_transition_to(target) is allowed

    def test_revoked_key_cannot_be_rotated(self) -> None:
        revoked = make_key().revoked(NOW, "test")
        with pytest.raises(ValueError):
            revoked.rotated(NOW, "00000000-0000-0000-0000-000000000002", NOW + 1)
        with pytest.raises(ValueError):
            revoked.revoked(NOW, "again")


class TestApiKey:
    def test_zero_expiry_never_expires(self) -> None:
        assert not make_key().is_expired(NOW * 10)

    def test_expiry_boundary(self) -> None:
        key = make_key(expires_at=NOW + 1000)
        assert not key.is_expired(NOW + 999)
        assert key.is_expired(NOW + 1000)

    def test_grace_window_boundary(self) -> None:
        rotated = make_key().rotated(NOW, "00000000-0000-0000-0000-000000000002", NOW + 1000)
        assert rotated.in_grace_window(NOW + 999)
        assert not rotated.in_grace_window(NOW + 1000)
        assert rotated.grace_elapsed(NOW + 1000)

    def test_touched_is_monotonic(self) -> None:
        key = make_key(last_used_at=NOW)
        assert key.touched(NOW - 1) is key
        assert key.touched(NOW + 5).last_used_at == NOW + 5

    def test_admin_detection(self) -> None:
        assert make_key(scopes=["Admin:keys:read"]).is_admin()
        assert not make_key(scopes=["read:admin"]).is_admin()

    def test_issued_key_exposes_secret_once(self) -> None:
        issued = IssuedApiKey(**make_key().model_dump(), secret="km_x")
        assert issued.secret == "km_x"
        assert "secret" not in ApiKey.model_fields


class TestCreateKeyRequest:
    def test_parse_request_maps_errors(self) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            parse_request(CreateKeyRequest, {"name": "x", "owner": "o", "scopes": "read"})
        assert "scopes" in exc_info.value.errors

    def test_parse_request_passes_models_through(self) -> None:
        request = CreateKeyRequest(name="x", owner="o", scopes=["a"])
        assert parse_request(CreateKeyRequest, request) is request


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()
        assert settings.key_prefix == "km_"
        assert settings.min_expiration_ms == 300_000
        assert settings.default_grace_period_days == 7
        assert not settings.is_production

    def test_grace_bounds_must_contain_default(self) -> None:
        with pytest.raises(ValidationError):
            Settings(min_grace_period_days=10, max_grace_period_days=5)
        with pytest.raises(ValidationError):
            Settings(default_grace_period_days=30, max_grace_period_days=14)

    def test_extra_settings_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            Settings(unknown_option=True)

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEYWARD_DEFAULT_GRACE_PERIOD_DAYS", "3")
        assert get_settings().default_grace_period_days == 3
        assert get_settings() is get_settings()


class TestErrors:
    def test_payload(self) -> None:
        error = NotFoundError("API key", "abc")
        assert error.to_dict() == {
            "error": "API key not found: abc",
            "code": "not_found",
            "retryable": False,
        }

    def test_deadline_is_retryable_storage_error(self) -> None:
        error = DeadlineExceededError("get", "key:1")
        assert isinstance(error, StorageUnavailableError)
        assert error.retryable
        assert error.code == "deadline_exceeded"


class TestSecurity:
    def test_secret_generator_uses_injected_source(self) -> None:
        generator = SecretGenerator(random_source=lambda n: b"\x01" * n)
        secret = generator.generate()
        assert secret == "km_" + "01" * 32
        assert generator.looks_valid(secret)
        assert not generator.looks_valid(secret.upper())

    def test_key_id_format(self) -> None:
        assert is_valid_key_id("00000000-0000-0000-0000-000000000001")
        assert not is_valid_key_id("key:1")

    def test_hash_is_stable_and_hides_secret(self) -> None:
        digest = hash_secret("km_abc")
        assert digest == hash_secret("km_abc")
        assert "km_abc" not in digest


class TestResultTypes:
    def test_ok_and_err(self) -> None:
        assert Ok(1).unwrap() == 1
        assert not Ok(1).is_err()
        assert Err("boom").is_err()
        assert Err("boom").unwrap_err() == "boom"
        with pytest.raises(ValueError):
            Err("boom").unwrap()
        with pytest.raises(ValueError):
            Ok(1).unwrap_err()
