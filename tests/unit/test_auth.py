"""Unit tests for credential parsing, JWT decoding and authorization."""

import time
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import UUID

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from storefront.api.middleware.auth import (
    LEGACY_ADMIN_USER_ID,
    AuthError,
    AuthErrorCode,
    SessionCredential,
    StaticSecretCredential,
    authorize_credential,
    decode_jwt,
    get_signing_key,
    parse_authorization_header,
    parse_credential,
)

USER_ID = "550e8400-e29b-41d4-a716-446655440000"

SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())
OTHER_SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())


def create_test_token(
    sub: str | None = USER_ID,
    email: str | None = "test@example.com",
    app_role: str | None = None,
    exp_offset: int = 3600,
    key: Any = SIGNING_KEY,
) -> str:
    """Create a test ES256 JWT.

    Args:
        sub: Subject (user ID); omitted when None.
        email: User email.
        app_role: Application role placed in app_metadata.
        exp_offset: Seconds from now for expiration (negative for expired).
        key: Private key used to sign.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload: dict[str, Any] = {
        "email": email,
        "role": "authenticated",
        "app_metadata": {"role": app_role} if app_role else {},
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test.supabase.co/auth/v1",
    }
    if sub is not None:
        payload["sub"] = sub
    return jwt.encode(payload, key, algorithm="ES256")


@pytest.fixture
def signing_key() -> Generator[MagicMock, None, None]:
    with patch(
        "storefront.api.middleware.auth.get_signing_key", return_value=SIGNING_KEY.public_key()
    ) as mock_key:
        yield mock_key


@pytest.fixture
def legacy_settings() -> Generator[MagicMock, None, None]:
    with patch("storefront.api.middleware.auth.get_settings") as mock_settings:
        mock_settings.return_value.legacy_admin_token = "legacy-admin-secret"
        yield mock_settings


class TestDecodeJWT:
    """Tests for decode_jwt function."""

    def test_decode_jwt_with_valid_token(self, signing_key: MagicMock) -> None:
        """Test decode_jwt successfully decodes a valid token."""
        payload = decode_jwt(create_test_token())

        assert payload.sub == USER_ID
        assert payload.email == "test@example.com"
        assert payload.role == "authenticated"
        assert payload.application_role == "user"

    def test_decode_jwt_reads_app_metadata_role(self, signing_key: MagicMock) -> None:
        """Test that the admin role comes from app_metadata."""
        payload = decode_jwt(create_test_token(app_role="admin"))

        assert payload.app_metadata == {"role": "admin"}
        assert payload.application_role == "admin"

    def test_decode_jwt_with_expired_token(self, signing_key: MagicMock) -> None:
        """Test decode_jwt raises AuthError for expired token."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(exp_offset=-3600))

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED
        assert "expired" in exc_info.value.message.lower()

    def test_decode_jwt_with_invalid_signature(self, signing_key: MagicMock) -> None:
        """Test decode_jwt raises AuthError for a token signed by another key."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(key=OTHER_SIGNING_KEY))

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_decode_jwt_with_malformed_token(self, signing_key: MagicMock) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not-a-valid-jwt-token")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_decode_jwt_missing_sub_claim(self, signing_key: MagicMock) -> None:
        """Test decode_jwt raises AuthError when sub claim is missing."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(sub=None))

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN
        assert "sub" in exc_info.value.message

    def test_decode_jwt_without_signing_key(self) -> None:
        """Test that an unconfigured signing key rejects every token."""
        with patch("storefront.api.middleware.auth.get_settings") as mock_settings:
            mock_settings.return_value.supabase_signing_key_jwk = ""
            get_signing_key.cache_clear()
            try:
                with pytest.raises(AuthError) as exc_info:
                    decode_jwt(create_test_token())
            finally:
                get_signing_key.cache_clear()

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN


class TestParseCredential:
    """Tests for credential classification."""

    def test_three_segments_is_session(self) -> None:
        assert parse_credential("aaa.bbb.ccc") == SessionCredential(token="aaa.bbb.ccc")

    def test_anything_else_is_static_secret(self) -> None:
        credential = parse_credential("legacy-admin-secret")

        assert isinstance(credential, StaticSecretCredential)
        assert credential.kind == "static_secret"

    def test_empty_is_rejected(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            parse_credential("   ")

        assert exc_info.value.code == AuthErrorCode.UNAUTHORIZED

    def test_bearer_header(self) -> None:
        assert parse_authorization_header("Bearer aaa.bbb.ccc") == SessionCredential(token="aaa.bbb.ccc")

    @pytest.mark.parametrize("header", ["aaa.bbb.ccc", "Basic dXNlcjpwYXNz", "Bearer a b"])
    def test_malformed_header(self, header: str) -> None:
        """Test that only "Bearer <token>" is accepted."""
        with pytest.raises(AuthError, match="Expected: Bearer <token>"):
            parse_authorization_header(header)


class TestAuthorizeCredential:
    """Tests for authorize_credential."""

    def test_session_user(self, signing_key: MagicMock) -> None:
        user = authorize_credential(SessionCredential(token=create_test_token()))

        assert user.user_id == UUID(USER_ID)
        assert user.role == "user"
        assert not user.is_admin

    def test_session_admin_passes_admin_check(self, signing_key: MagicMock) -> None:
        user = authorize_credential(
            SessionCredential(token=create_test_token(app_role="admin")), require_admin=True
        )

        assert user.is_admin

    def test_non_admin_is_forbidden(self, signing_key: MagicMock) -> None:
        """Test that a verified non-admin gets FORBIDDEN, not an auth failure."""
        with pytest.raises(AuthError) as exc_info:
            authorize_credential(SessionCredential(token=create_test_token()), require_admin=True)

        assert exc_info.value.code == AuthErrorCode.FORBIDDEN

    def test_static_secret_is_admin(self, legacy_settings: MagicMock) -> None:
        """Test that the legacy secret authenticates as an admin."""
        user = authorize_credential(StaticSecretCredential(secret="legacy-admin-secret"), require_admin=True)

        assert user.user_id == LEGACY_ADMIN_USER_ID
        assert user.role == "admin"

    def test_static_secret_logs_deprecation(
        self, legacy_settings: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level("WARNING", logger="storefront.api.middleware.auth"):
            authorize_credential(StaticSecretCredential(secret="legacy-admin-secret"))

        assert "deprecated" in caplog.text

    def test_wrong_static_secret(self, legacy_settings: MagicMock) -> None:
        with pytest.raises(AuthError) as exc_info:
            authorize_credential(StaticSecretCredential(secret="guess"))

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_static_secret_disabled_when_unset(self, legacy_settings: MagicMock) -> None:
        """Test that an empty configured secret never matches."""
        legacy_settings.return_value.legacy_admin_token = ""

        with pytest.raises(AuthError):
            authorize_credential(StaticSecretCredential(secret=""))
