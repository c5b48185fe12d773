"""Models representing a conversation between two marketplace users."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .enums import ResolutionOutcome

NO_PRODUCT_KEY = "none"


class ParticipantInfo(BaseModel):
    """Denormalised snapshot of a participant's public profile.

    Cached on the conversation so conversation lists render without a
    profile lookup per row.  Refreshed whenever the conversation is
    resolved again and backfilled on message send.
    """

    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ProductContext(BaseModel):
    """The listing a conversation was opened about."""

    product_id: str
    product_name: str
    product_image_url: Optional[str] = None
    seller_id: Optional[str] = None


class LastMessage(BaseModel):
    text: str
    sender_id: str
    timestamp: datetime


class Conversation(BaseModel):
    """A two-party conversation, optionally scoped to one product.

    ``participants`` is always the sorted pair of user ids and
    ``conversation_key`` combines that pair with the product id (or
    ``"none"``), so at most one conversation exists per key.
    """

    id: str = Field(..., description="Unique identifier for the conversation.")
    participants: List[str] = Field(..., min_length=2, max_length=2)
    participant_info: Dict[str, ParticipantInfo] = Field(default_factory=dict)
    product_context: Optional[ProductContext] = None
    conversation_key: str
    created_at: datetime
    updated_at: datetime
    last_message: Optional[LastMessage] = None

    @field_validator("participants")
    def validate_participants(cls, value: List[str]) -> List[str]:
        if value[0] == value[1]:
            raise ValueError("participants must be two distinct users")
        return sorted(value)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str | None:
        """Return the participant that is not ``user_id``."""
        if not self.has_participant(user_id):
            return None
        return self.participants[1] if self.participants[0] == user_id else self.participants[0]


class ParticipantSummary(BaseModel):
    uid: str
    display_name: str
    avatar_url: Optional[str] = None


class ConversationView(Conversation):
    """A conversation as seen by one participant."""

    counterpart: ParticipantSummary


class ConversationResolution(BaseModel):
    conversation_id: str
    outcome: ResolutionOutcome

    @property
    def created(self) -> bool:
        return self.outcome is ResolutionOutcome.CREATED


def canonical_pair(first: str, second: str) -> list[str]:
    """Return the two user ids in canonical (sorted) order."""
    return sorted([first, second])


def conversation_key(first: str, second: str, product_id: str | None = None) -> str:
    """Build the lookup key shared by ``(first, second)`` and ``(second, first)``."""
    low, high = canonical_pair(first, second)
    return f"{low}|{high}|{product_id or NO_PRODUCT_KEY}"


class ResolveConversationResponse(BaseModel):
    created: bool
    conversation: ConversationView
