"""Authentication schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login request, used for both the admin and end-user logins."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=200)


class LoginResponse(BaseModel):
    """Successful login."""

    success: bool = True
    username: str


class CurrentUserResponse(BaseModel):
    """The signed-in end user."""

    id: str
    username: str
    email: str
    scopes: list[str]
