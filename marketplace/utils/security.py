"""Password hashing and access token helpers."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt
from passlib.context import CryptContext

from ..config.auth_config import AuthConfig


class TokenCodec:
    """Hashes passwords with bcrypt and signs access tokens as JWTs."""

    def __init__(self, auth_config: AuthConfig) -> None:
        self.auth_config = auth_config
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=auth_config.bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return self.pwd_context.verify(plain_password, hashed_password)

    def create_access_token(self, subject: str, expires_delta: timedelta | None = None) -> str:
        """Signed token for ``subject``; ``jti`` makes every token revocable on its own."""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=self.auth_config.access_token_expire_minutes)
        )
        to_encode = {"exp": expire, "sub": subject, "jti": uuid.uuid4().hex}
        return jwt.encode(to_encode, self.auth_config.signing_key, algorithm=self.auth_config.jwt_algorithm)

    def decode_token(self, token: str) -> dict[str, Any]:
        """Verify signature and expiry; raises ``jose.JWTError`` otherwise."""
        return jwt.decode(
            token, self.auth_config.signing_key, algorithms=[self.auth_config.jwt_algorithm]
        )
