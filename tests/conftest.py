from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from marketplace.config.app_config import AppConfig
from marketplace.models.auth import AuthUser
from marketplace.models.user_profile import ProfileCreate
from marketplace.services.conversation_service import ConversationService
from marketplace.services.profile_service import ProfileService
from marketplace.store.memory_store import InMemoryDocumentStore


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self) -> None:
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(collaborator_timeout=2.0)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=TickingClock())


@pytest.fixture
def profiles(store: InMemoryDocumentStore, app_config: AppConfig) -> ProfileService:
    return ProfileService(store=store, app_config=app_config)


@pytest.fixture
def conversations(
    store: InMemoryDocumentStore, profiles: ProfileService, app_config: AppConfig
) -> ConversationService:
    return ConversationService(store=store, profile_service=profiles, app_config=app_config)


def make_user(uid: str) -> AuthUser:
    return AuthUser(uid=uid, email=f"{uid}@example.com")


async def seed_profile(profiles: ProfileService, uid: str, username: str | None = None) -> None:
    await profiles.create_profile(
        make_user(uid),
        ProfileCreate(
            first_name=uid.capitalize(),
            last_name="Tester",
            username=username or f"{uid}_name",
            profile_image_url=f"https://img.example.com/{uid}.png",
        ),
    )
