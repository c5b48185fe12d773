"""Controllers for sign up, sign in and sign out."""

from fastapi import APIRouter, Depends, status
from loguru import logger

from ..models.auth import AuthSession, LoginRequest, SignUpRequest
from ..services.auth_service import AuthService, get_auth_service
from ..services.profile_service import ProfileService, get_profile_service
from ..utils.error_handler import MarketplaceError
from .dependencies import bearer_token

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
async def signup_endpoint(
    request: SignUpRequest,
    auth: AuthService = Depends(get_auth_service),
    profiles: ProfileService = Depends(get_profile_service),
) -> AuthSession:
    """Create an account and its profile, then sign the new user in.

    If the profile cannot be written the account is removed again, so the
    same signup can simply be retried.
    """
    user = await auth.sign_up(request.email, request.password)
    try:
        await profiles.create_profile(user, request.profile)
    except MarketplaceError as exc:
        logger.warning("Profile for {} not created, rolling back account: {}", user.uid, exc)
        await auth.delete_account(user.uid)
        raise
    logger.info("Signed up user {}", user.uid)
    return await auth.sign_in(request.email, request.password)


@router.post("/login", response_model=AuthSession)
async def login_endpoint(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> AuthSession:
    return await auth.sign_in(request.email, request.password)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout_endpoint(
    token: str | None = Depends(bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> None:
    if token:
        await auth.sign_out(token)
    return None
