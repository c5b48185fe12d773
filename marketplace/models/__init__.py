"""Expose commonly used model classes at the package level.

Importing these classes here allows consumers to write concise imports like::

    from marketplace.models import Conversation, ChatMessage, Product

These names refer to the underlying Pydantic models defined in their
respective modules.
"""

from .auth import AuthSession, AuthUser  # noqa: F401
from .chat_message import ChatMessage  # noqa: F401
from .chat_request import ResolveConversationRequest, SendMessageRequest  # noqa: F401
from .conversation import (  # noqa: F401
    Conversation,
    ConversationResolution,
    LastMessage,
    ParticipantInfo,
    ProductContext,
)
from .enums import AuthEvent, ResolutionOutcome  # noqa: F401
from .product import Product, ProductCreate, ProductFilter, ProductUpdate  # noqa: F401
from .user_profile import UserProfile  # noqa: F401
