"""Models for user profiles."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    uid: str
    first_name: str
    last_name: str
    username: str
    email: str
    profile_image_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str | None:
        """Username, else full name, else ``None``."""
        if self.username.strip():
            return self.username.strip()
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or None


class ProfileCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=60)
    last_name: str = Field(..., min_length=1, max_length=60)
    username: str = Field(..., min_length=3, max_length=30)
    profile_image_url: Optional[str] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=60)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=60)
    username: Optional[str] = Field(default=None, min_length=3, max_length=30)
    profile_image_url: Optional[str] = None
