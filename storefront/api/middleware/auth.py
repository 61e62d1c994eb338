"""Credential parsing and verification for REST and WebSocket clients."""

import json
import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Union
from uuid import UUID

import jwt
from jwt import PyJWK

from storefront.core.config import get_settings
from storefront.schemas.auth import TokenPayload, UserContext

logger = logging.getLogger(__name__)

# Identity attached to requests made with the legacy admin secret
LEGACY_ADMIN_USER_ID = UUID(int=0)


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    FORBIDDEN = "FORBIDDEN"


class AuthError(Exception):
    """Authentication error with specific error code.

    Raised when a credential cannot be verified, or when a verified
    caller lacks the role an operation needs (FORBIDDEN).
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        """Initialize authentication error.

        Args:
            message: Human-readable error description.
            code: Specific error code for programmatic handling.
        """
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass(frozen=True)
class SessionCredential:
    """A signed session token (JWT) issued by Supabase Auth."""

    token: str
    kind: str = "session"


@dataclass(frozen=True)
class StaticSecretCredential:
    """Deprecated shared admin secret sent in place of a session token."""

    secret: str
    kind: str = "static_secret"


Credential = Union[SessionCredential, StaticSecretCredential]


@lru_cache
def get_signing_key() -> Any:
    """Load the public key from the signing key JWK environment variable.

    Returns:
        Public key for JWT verification.
    """
    settings = get_settings()
    jwk_json = settings.supabase_signing_key_jwk

    if not jwk_json:
        raise AuthError(
            "Signing key not configured",
            AuthErrorCode.INVALID_TOKEN,
        )

    try:
        jwk_data = json.loads(jwk_json)
    except json.JSONDecodeError as e:
        raise AuthError(
            f"Invalid signing key JWK format: {e}",
            AuthErrorCode.INVALID_TOKEN,
        )

    return PyJWK.from_dict(jwk_data).key


def decode_jwt(token: str) -> TokenPayload:
    """Decode and validate a session token.

    Validates signature (ES256), expiration and required claims.

    Args:
        token: The JWT token string to decode.

    Returns:
        TokenPayload: Validated token payload.

    Raises:
        AuthError: If token is invalid, expired, or has wrong signature.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            get_signing_key(),
            algorithms=["ES256"],
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": False,
                "require": ["exp", "iat", "sub"],
            },
        )

        return TokenPayload(
            sub=payload["sub"],
            email=payload.get("email"),
            role=payload.get("role"),
            app_metadata=payload.get("app_metadata") or {},
            exp=payload["exp"],
            iat=payload["iat"],
            aud=payload.get("aud"),
            iss=payload.get("iss"),
        )

    except AuthError:
        raise

    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED) from e

    except jwt.InvalidSignatureError as e:
        raise AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE) from e

    except jwt.MissingRequiredClaimError as e:
        raise AuthError(f"Token missing required claim: {e}", AuthErrorCode.INVALID_TOKEN) from e

    except jwt.DecodeError as e:
        raise AuthError(f"Invalid token format: {e}", AuthErrorCode.INVALID_TOKEN) from e

    except Exception as e:
        raise AuthError(f"Token validation failed: {e}", AuthErrorCode.INVALID_TOKEN) from e


def parse_credential(token: str) -> Credential:
    """Classify a raw bearer value.

    Three dot-separated segments make a JWT; anything else is treated as
    the legacy static secret.
    """
    token = token.strip()
    if not token:
        raise AuthError("Credential required", AuthErrorCode.UNAUTHORIZED)
    if token.count(".") == 2:
        return SessionCredential(token=token)
    return StaticSecretCredential(secret=token)


def parse_authorization_header(authorization: str) -> Credential:
    """Parse an ``Authorization: Bearer <token>`` header value."""
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError(
            "Invalid authorization header format. Expected: Bearer <token>",
            AuthErrorCode.UNAUTHORIZED,
        )
    return parse_credential(parts[1])


def authorize_credential(credential: Credential, require_admin: bool = False) -> UserContext:
    """Resolve a credential to a user and check its role.

    Args:
        credential: Session token or legacy static secret.
        require_admin: Reject verified non-admin callers.

    Returns:
        UserContext: The caller.

    Raises:
        AuthError: Unverifiable credential, or FORBIDDEN for a non-admin
            when require_admin is set.
    """
    if isinstance(credential, StaticSecretCredential):
        user = _authorize_static_secret(credential)
    else:
        user = decode_jwt(credential.token).to_user_context()

    if require_admin and not user.is_admin:
        raise AuthError("Admin access required", AuthErrorCode.FORBIDDEN)
    return user


def _authorize_static_secret(credential: StaticSecretCredential) -> UserContext:
    expected = get_settings().legacy_admin_token
    if not expected or not secrets.compare_digest(
        credential.secret.encode("utf-8"), expected.encode("utf-8")
    ):
        raise AuthError("Invalid credential", AuthErrorCode.INVALID_TOKEN)

    logger.warning(
        "Request authenticated with the deprecated static admin token; "
        "switch the client to an admin session token"
    )
    return UserContext(user_id=LEGACY_ADMIN_USER_ID, email=None, role="admin")
