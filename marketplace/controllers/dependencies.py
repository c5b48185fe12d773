"""FastAPI dependencies shared by the controllers."""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..models.auth import AuthUser
from ..services.auth_service import AuthService, get_auth_service
from ..utils.error_handler import AuthenticationRequired

# auto_error is off so a missing token is reported as AuthenticationRequired
bearer_scheme = HTTPBearer(auto_error=False)


def bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    return credentials.credentials if credentials is not None else None


async def get_current_user(
    token: str | None = Depends(bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> AuthUser:
    """Resolve the ``Authorization: Bearer`` token to the signed-in user."""
    user = await auth.current_user(token)
    if user is None:
        raise AuthenticationRequired("Sign in to continue")
    return user
