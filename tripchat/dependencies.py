"""
Authentication Dependencies

FastAPI dependencies for authentication and chat access.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from tripchat.services.auth_service import AuthService

auth_service = AuthService()


async def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> str:
    """
    Get the authenticated user id from a bearer token.

    SECURITY: This is the primary authentication gate for REST.
    Expects Authorization: Bearer <token>; falls back to the auth cookie.
    """
    token = None

    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authorization format. Use: Bearer <token>",
                headers={"WWW-Authenticate": "Bearer"}
            )
        token = authorization[7:]  # Remove "Bearer " prefix
    else:
        token = auth_service.token_from_cookie_header(request.headers.get("cookie"))

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id, _ = auth_service.verify_token(token)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    # Rate limiter keys authenticated requests by user
    request.state.user_id = user_id
    return user_id


def get_chat_gateway(request: Request):
    """The running ChatGateway, if the socket layer is up."""
    return getattr(request.app.state, "chat_gateway", None)
