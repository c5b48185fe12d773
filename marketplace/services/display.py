"""How one participant sees the other in a conversation."""

from __future__ import annotations

from ..models.conversation import Conversation, ConversationView, ParticipantSummary
from ..models.user_profile import UserProfile

DEFAULT_DISPLAY_NAME = "Other user"


def other_participant_display_name(
    conversation: Conversation,
    viewer_id: str,
    other_profile: UserProfile | None = None,
) -> str:
    """Fresh username, then cached display name, then cached or profile email."""
    other_id = conversation.other_participant(viewer_id)
    if other_id is None:
        return DEFAULT_DISPLAY_NAME
    cached = conversation.participant_info.get(other_id)
    if other_profile is not None and other_profile.display_name:
        return other_profile.display_name
    if cached is not None and cached.display_name:
        return cached.display_name
    if cached is not None and cached.email:
        return cached.email
    if other_profile is not None and other_profile.email:
        return other_profile.email
    return DEFAULT_DISPLAY_NAME


def other_participant_avatar(
    conversation: Conversation,
    viewer_id: str,
    other_profile: UserProfile | None = None,
) -> str | None:
    """Product image when talking to its seller, then profile image, then cached avatar."""
    other_id = conversation.other_participant(viewer_id)
    if other_id is None:
        return None
    context = conversation.product_context
    if context is not None and context.seller_id == other_id and context.product_image_url:
        return context.product_image_url
    if other_profile is not None and other_profile.profile_image_url:
        return other_profile.profile_image_url
    cached = conversation.participant_info.get(other_id)
    return cached.avatar_url if cached is not None else None


def conversation_view(
    conversation: Conversation,
    viewer_id: str,
    other_profile: UserProfile | None = None,
) -> ConversationView:
    other_id = conversation.other_participant(viewer_id) or ""
    return ConversationView(
        **conversation.model_dump(),
        counterpart=ParticipantSummary(
            uid=other_id,
            display_name=other_participant_display_name(conversation, viewer_id, other_profile),
            avatar_url=other_participant_avatar(conversation, viewer_id, other_profile),
        ),
    )
