"""Enumerations used across models."""

from enum import Enum


class AuthEvent(str, Enum):
    """Kinds of authentication state change reported to listeners."""

    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


class ResolutionOutcome(str, Enum):
    """How :meth:`ConversationService.resolve_conversation` satisfied a request.

    ``CREATED`` means a new conversation record was written; ``EXISTING``
    means a matching conversation was reused (including the case where a
    concurrent caller created it first).
    """

    CREATED = "created"
    EXISTING = "existing"
