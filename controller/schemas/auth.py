"""Pydantic schemas for account endpoints."""

from pydantic import BaseModel, Field


class Credentials(BaseModel):
    """Username and password pair sent to /auth/register and /auth/login."""
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)


class RegisterRequest(Credentials):
    pass


class LoginRequest(Credentials):
    pass


class RegisterResponse(BaseModel):
    api_key: str
    user_id: str


class LoginResponse(BaseModel):
    """The freshly issued key replaces any previous one."""
    api_key: str
