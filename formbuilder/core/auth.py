import uuid

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from formbuilder.core.config import settings
from formbuilder.core.database import get_db
from formbuilder.services.auth import Principal, decode_token, get_user_by_id

security = HTTPBearer(auto_error=False)

NO_SESSION_MESSAGE = "Unauthorized - No active session"


def _unauthorized(detail: str = NO_SESSION_MESSAGE) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    """Resolve the authenticated user for this request.

    A ``Bearer`` Authorization header wins over the session cookie so
    non-browser clients can act without cookies.
    """
    if credentials is not None:
        token = credentials.credentials
    else:
        token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise _unauthorized()

    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Session has expired")
    except jwt.PyJWTError:
        raise _unauthorized("Invalid session")

    if payload.get("type") != "session":
        raise _unauthorized("Invalid session")

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise _unauthorized("Invalid session")

    user = get_user_by_id(db, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return Principal.from_user(user)


def get_admin_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Require the current user to have the admin role."""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - Insufficient permissions",
        )
    return principal
