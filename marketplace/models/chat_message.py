"""Models representing chat messages."""

from datetime import datetime

from pydantic import BaseModel


class ChatMessage(BaseModel):
    """A single immutable message in a conversation.

    ``created_at`` is assigned by the document store when the message is
    committed.  Readers order messages by that timestamp, never by the
    order in which they arrive at the client.
    """

    id: str
    conversation_id: str
    sender_id: str
    text: str
    created_at: datetime
