"""Request models for the conversation API."""

from pydantic import BaseModel, Field, model_validator


class ResolveConversationRequest(BaseModel):
    """Payload for opening (or reopening) a conversation.

    Either ``counterpart_id`` or ``product_id`` must be supplied.  With only
    a ``product_id`` the conversation is opened with the product's seller,
    which is how "contact seller" works on a product page.  Without a
    ``product_id`` the conversation is a general one between the two users.
    """

    counterpart_id: str | None = Field(
        default=None,
        description="User to converse with.  Defaults to the product's seller.",
    )
    product_id: str | None = Field(
        default=None,
        description="Optional listing the conversation is about.",
    )

    @model_validator(mode="after")
    def _require_target(self) -> "ResolveConversationRequest":
        if not self.counterpart_id and not self.product_id:
            raise ValueError("counterpart_id or product_id is required")
        return self


class SendMessageRequest(BaseModel):
    """Payload for appending a message.

    Length is bounded here; blank text is rejected by the service so the
    same rule applies to every caller.
    """

    text: str = Field(..., max_length=2000, description="The message content.")
