"""Error handling utilities and custom exceptions."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from ..store.base import StoreError

T = TypeVar("T")


class MarketplaceError(Exception):
    """Base class for every error surfaced by the marketplace services.

    ``status_code`` is the HTTP status the API layer answers with and
    ``error_type`` a stable machine-readable tag for clients.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "marketplace"


class InvalidParticipants(MarketplaceError):
    """A conversation was requested between a user and themselves."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "invalid_participants"


class NotAParticipant(MarketplaceError):
    """The acting user is not one of the conversation's two participants."""

    status_code = status.HTTP_403_FORBIDDEN
    error_type = "not_a_participant"


class EmptyMessage(MarketplaceError):
    """Message text is blank after trimming."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "empty_message"


class ConversationAmbiguous(MarketplaceError):
    """More than one conversation matches a canonical key."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conversation_ambiguous"

    def __init__(self, conversation_key: str, conversation_ids: list[str]) -> None:
        self.conversation_key = conversation_key
        self.conversation_ids = conversation_ids
        super().__init__(
            f"{len(conversation_ids)} conversations match key {conversation_key!r}"
        )


class ConversationNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "conversation_not_found"


class ProductNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "product_not_found"


class ProfileNotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "profile_not_found"


class NotProductOwner(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "not_product_owner"


class AuthenticationRequired(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication_required"


class InvalidCredentials(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "invalid_credentials"


class EmailAlreadyRegistered(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "email_already_registered"


class CollaboratorUnavailable(MarketplaceError):
    """An external collaborator (store, auth, model) could not serve a request.

    ``code`` carries the underlying error code when one is known, so callers
    can tell a permission problem from a transient network failure.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = "collaborator_unavailable"

    def __init__(self, collaborator: str, code: str | None = None, detail: str | None = None) -> None:
        self.collaborator = collaborator
        self.code = code
        self.detail = detail
        message = f"{collaborator} unavailable"
        if code:
            message += f" ({code})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


async def collaborator_call(
    awaitable: Awaitable[T],
    *,
    collaborator: str = "document_store",
    timeout: float | None = None,
) -> T:
    """Await a collaborator request, normalising its failures.

    Store errors and timeouts become :class:`CollaboratorUnavailable`;
    marketplace errors pass through untouched.
    """
    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)
    except MarketplaceError:
        raise
    except StoreError as exc:
        logger.error("{} request failed: {}", collaborator, exc)
        raise CollaboratorUnavailable(collaborator, exc.code.value, exc.message) from exc
    except asyncio.TimeoutError as exc:
        logger.error("{} request timed out after {}s", collaborator, timeout)
        raise CollaboratorUnavailable(collaborator, "deadline-exceeded") from exc


async def marketplace_exception_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Convert a MarketplaceError into a JSON error response."""
    if exc.status_code >= 500:
        logger.error("{} on {}: {}", type(exc).__name__, request.url.path, exc)
    else:
        logger.info("{} on {}: {}", type(exc).__name__, request.url.path, exc)
    content: dict[str, object] = {"detail": str(exc), "error_type": exc.error_type}
    if isinstance(exc, CollaboratorUnavailable) and exc.code:
        content["code"] = exc.code
    return JSONResponse(status_code=exc.status_code, content=content)
