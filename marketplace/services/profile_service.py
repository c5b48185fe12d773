"""Profile directory backed by the ``users`` collection."""

from __future__ import annotations

from functools import lru_cache

from loguru import logger

from ..models.auth import AuthUser
from ..models.user_profile import ProfileCreate, ProfileUpdate, UserProfile
from ..store.base import SERVER_TIMESTAMP
from ..utils.error_handler import CollaboratorUnavailable, ProfileNotFound
from .base import StoreBackedService

USERS = "users"


class ProfileService(StoreBackedService):
    """Reads and writes user profiles keyed by uid."""

    async def get_profile(self, uid: str) -> UserProfile | None:
        snapshot = await self._call(self.store.get(USERS, uid))
        if snapshot is None:
            return None
        return UserProfile.model_validate({"uid": uid, **snapshot.data})

    async def require_profile(self, uid: str) -> UserProfile:
        profile = await self.get_profile(uid)
        if profile is None:
            raise ProfileNotFound(f"Profile {uid} not found")
        return profile

    async def lookup(self, uid: str) -> UserProfile | None:
        """Best-effort profile read for denormalised caches.

        A missing profile or an unreachable store yields ``None`` so callers
        can fall back to placeholder data instead of failing.
        """
        try:
            profile = await self.get_profile(uid)
        except CollaboratorUnavailable as exc:
            logger.warning("Profile lookup for {} failed, using fallback: {}", uid, exc)
            return None
        if profile is None:
            logger.warning("Profile {} not found, using fallback", uid)
        return profile

    async def create_profile(self, user: AuthUser, data: ProfileCreate) -> UserProfile:
        """Create the profile for ``user``, overwriting profile fields if one exists."""
        document = {
            **data.model_dump(),
            "email": user.email or "",
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }
        created = await self._call(self.store.create_if_absent(USERS, user.uid, document))
        if not created:
            fields = {**data.model_dump(), "updated_at": SERVER_TIMESTAMP}
            await self._call(self.store.update(USERS, user.uid, fields))
        logger.info("Profile {} {}", user.uid, "created" if created else "replaced")
        return await self.require_profile(user.uid)

    async def update_profile(self, uid: str, data: ProfileUpdate) -> UserProfile:
        await self.require_profile(uid)
        fields = data.model_dump(exclude_unset=True)
        fields["updated_at"] = SERVER_TIMESTAMP
        await self._call(self.store.update(USERS, uid, fields))
        logger.info("Profile {} updated: {}", uid, sorted(fields))
        return await self.require_profile(uid)


@lru_cache()
def get_profile_service() -> ProfileService:
    return ProfileService()
