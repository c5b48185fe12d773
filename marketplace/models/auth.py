"""Authentication models."""

from pydantic import BaseModel, Field

from .user_profile import ProfileCreate


class AuthUser(BaseModel):
    """The signed-in identity passed explicitly into every service call."""

    uid: str
    email: str | None = None


class AuthSession(BaseModel):
    token: str
    user: AuthUser


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)


class SignUpRequest(LoginRequest):
    """Credentials plus the profile created alongside the account."""

    profile: ProfileCreate
