"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ADMIN_ROLE = "admin"


class UserContext(BaseModel):
    """Authenticated user context for the current request or socket."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'user', 'admin')")

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Supabase puts "authenticated" in the top-level role claim; the
    application role lives in app_metadata.role.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Postgres role claim")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    @property
    def application_role(self) -> str:
        role = self.app_metadata.get("role") or self.role
        return ADMIN_ROLE if role == ADMIN_ROLE else "user"

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.application_role,
        )
