"""
API request and response models for stormstarter REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

USERNAME_PATTERN = r"^[A-Za-z0-9_-]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v0/auth/register.

    max_length=72 on the password keeps inputs inside bcrypt's 72-byte window.
    """

    username: str = Field(min_length=3, max_length=32, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=72)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes the secret or the password hash."""

    model_config = ConfigDict(frozen=True)

    snowflake: str
    username: str
    created_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(snowflake=user.snowflake, username=user.username, created_at=user.created_at)


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"


class RegisterResponse(BaseModel):
    user: UserResponse
    token: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    routes: int
    users: int
