"""In-process authentication collaborator.

Accounts live in memory with bcrypt password hashes (passlib).  Signing in
issues a JWT access token (python-jose) whose ``sub`` is the user's uid;
signing out revokes that token's ``jti``.  Listeners registered with
:meth:`AuthService.on_auth_change` are told about every sign-in and
sign-out.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from jose import JWTError
from loguru import logger

from ..config.auth_config import AuthConfig, get_auth_config
from ..models.auth import AuthSession, AuthUser
from ..models.enums import AuthEvent
from ..utils.error_handler import EmailAlreadyRegistered, InvalidCredentials
from ..utils.security import TokenCodec

AuthListener = Callable[[AuthEvent, AuthUser], None]

MIN_PASSWORD_LENGTH = 6


@dataclass
class _Account:
    user: AuthUser
    hashed_password: str


class AuthService:
    def __init__(self, auth_config: AuthConfig | None = None) -> None:
        self.codec = TokenCodec(auth_config or get_auth_config())
        self._accounts: dict[str, _Account] = {}
        self._users: dict[str, AuthUser] = {}
        self._revoked: set[str] = set()
        self._listeners: list[AuthListener] = []

    async def sign_up(self, email: str, password: str) -> AuthUser:
        """Register a new account and return its identity."""
        normalised = email.strip().lower()
        if normalised in self._accounts:
            raise EmailAlreadyRegistered(f"{normalised} is already registered")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidCredentials(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )
        user = AuthUser(uid=uuid.uuid4().hex, email=normalised)
        self._accounts[normalised] = _Account(user, self.codec.hash_password(password))
        self._users[user.uid] = user
        logger.info("Registered account {}", user.uid)
        return user

    async def delete_account(self, uid: str) -> None:
        """Remove an account; tokens already issued for it stop resolving."""
        user = self._users.pop(uid, None)
        if user is not None and user.email:
            self._accounts.pop(user.email, None)
            logger.info("Deleted account {}", uid)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        account = self._accounts.get(email.strip().lower())
        if account is None or not self.codec.verify_password(password, account.hashed_password):
            raise InvalidCredentials("Invalid email or password")
        token = self.codec.create_access_token(account.user.uid)
        logger.info("User {} signed in", account.user.uid)
        self._emit(AuthEvent.SIGNED_IN, account.user)
        return AuthSession(token=token, user=account.user)

    async def sign_out(self, token: str) -> None:
        claims = self._claims(token)
        if claims is None or claims["jti"] in self._revoked:
            return
        self._revoked.add(claims["jti"])
        user = self._users.get(claims["sub"])
        if user is not None:
            logger.info("User {} signed out", user.uid)
            self._emit(AuthEvent.SIGNED_OUT, user)

    async def current_user(self, token: str | None) -> AuthUser | None:
        if not token:
            return None
        claims = self._claims(token)
        if claims is None or claims["jti"] in self._revoked:
            return None
        return self._users.get(claims["sub"])

    def _claims(self, token: str) -> dict | None:
        try:
            claims = self.codec.decode_token(token)
        except JWTError as exc:
            logger.debug("Rejected access token: {}", exc)
            return None
        if not claims.get("sub") or not claims.get("jti"):
            return None
        return claims

    def on_auth_change(self, listener: AuthListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent, user: AuthUser) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, user)
            except Exception:
                logger.exception("Auth listener failed for {}", event.value)


@lru_cache()
def get_auth_service() -> AuthService:
    return AuthService()
