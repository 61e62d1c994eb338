"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from storefront.api.middleware.auth import (
    AuthError,
    AuthErrorCode,
    authorize_credential,
    parse_authorization_header,
)
from storefront.schemas.auth import UserContext
from storefront.services.notification_service import NotificationService


def _to_http_exception(error: AuthError) -> HTTPException:
    if error.code == AuthErrorCode.FORBIDDEN:
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=error.message)
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=error.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _resolve_user(authorization: str, require_admin: bool) -> UserContext:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        credential = parse_authorization_header(authorization)
        return authorize_credential(credential, require_admin=require_admin)
    except AuthError as e:
        raise _to_http_exception(e) from e


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if the credential is missing, invalid, or expired.
    """
    return _resolve_user(authorization, require_admin=False)


async def require_admin(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Like get_current_user, but only admins pass.

    Raises:
        HTTPException: 401 for a bad credential, 403 for a non-admin caller.
    """
    return _resolve_user(authorization, require_admin=True)


def get_notification_service(request: Request) -> NotificationService:
    """The NotificationService created by create_app()."""
    return request.app.state.notifier


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
AdminUser = Annotated[UserContext, Depends(require_admin)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]
