import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from formbuilder.core.auth import get_current_principal
from formbuilder.core.config import settings
from formbuilder.core.database import get_db
from formbuilder.models.user import User
from formbuilder.schemas.auth import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SessionResponse,
    UserOut,
)
from formbuilder.services.auth import (
    Principal,
    authenticate,
    create_session_token,
    create_user,
    get_user_by_username,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CREDENTIALS_REQUIRED = "Username and password are required"


def _start_session(response: Response, user: User) -> SessionResponse:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(user),
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        path="/",
    )
    return SessionResponse(user=UserOut.model_validate(user))


@router.post("/register", response_model=SessionResponse, status_code=201)
def register(body: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    username = body.username.strip()
    if not username or not body.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CREDENTIALS_REQUIRED)
    if get_user_by_username(db, username):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username already exists",
        )

    user = create_user(db, username=username, password=body.password, role=body.role)
    logger.info("Registered user %s (%s)", user.username, user.role)
    return _start_session(response, user)


@router.post("/login", response_model=SessionResponse)
def login(body: LoginRequest, response: Response, db: Session = Depends(get_db)):
    if not body.username or not body.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=CREDENTIALS_REQUIRED)

    user = authenticate(db, body.username.strip(), body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    return _start_session(response, user)


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response):
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserOut)
def me(principal: Principal = Depends(get_current_principal)):
    return UserOut(id=principal.id, username=principal.username, role=principal.role)
