import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

UserRole = Literal["admin", "user"]


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    username: str = Field("", max_length=150)
    password: str = Field("", max_length=128)
    role: UserRole = "user"


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    role: UserRole


class SessionResponse(BaseModel):
    success: bool = True
    user: UserOut


class MessageResponse(BaseModel):
    success: bool = True
    message: str
