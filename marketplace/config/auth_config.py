from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

DEVELOPMENT_JWT_SECRET = "marketplace-development-secret-change-me"


class AuthConfig(BaseSettings):
    """Token signing and password hashing settings."""

    app_env: str = Field("development")
    jwt_secret: Optional[str] = Field(None)
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60)
    bcrypt_rounds: int = Field(12)

    @field_validator("access_token_expire_minutes")
    def validate_expiry(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("ACCESS_TOKEN_EXPIRE_MINUTES must be positive")
        return value

    @field_validator("bcrypt_rounds")
    def validate_bcrypt_rounds(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return value

    @property
    def signing_key(self) -> str:
        """The JWT secret; only development may fall back to a built-in key."""
        if self.jwt_secret:
            return self.jwt_secret
        if self.app_env == "development":
            return DEVELOPMENT_JWT_SECRET
        raise RuntimeError("JWT_SECRET must be set outside development")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_auth_config() -> AuthConfig:
    """Return a cached authentication configuration."""

    return AuthConfig()
