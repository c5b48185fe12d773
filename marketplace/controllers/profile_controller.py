"""Controllers for user profiles."""

from fastapi import APIRouter, Depends

from ..models.auth import AuthUser
from ..models.product import Product
from ..models.user_profile import ProfileUpdate, UserProfile
from ..services.catalog_service import CatalogService, get_catalog_service
from ..services.profile_service import ProfileService, get_profile_service
from .dependencies import get_current_user

router = APIRouter(prefix="/profiles", tags=["Profiles"])


@router.get("/me", response_model=UserProfile)
async def get_my_profile_endpoint(
    user: AuthUser = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    return await profiles.require_profile(user.uid)


@router.patch("/me", response_model=UserProfile)
async def update_my_profile_endpoint(
    request: ProfileUpdate,
    user: AuthUser = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    return await profiles.update_profile(user.uid, request)


@router.get("/me/products", response_model=list[Product])
async def list_my_products_endpoint(
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> list[Product]:
    """Listings owned by the signed-in seller, newest first."""
    return await catalog.list_seller_products(user.uid)


@router.get("/{uid}", response_model=UserProfile)
async def get_profile_endpoint(
    uid: str,
    _: AuthUser = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    return await profiles.require_profile(uid)
