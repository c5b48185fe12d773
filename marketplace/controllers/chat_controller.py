"""Controllers for conversations and their messages.

REST routes resolve conversations and append messages.  The two WebSocket
routes push the live read model: every frame is the full, ordered list for
the view, so a client only ever renders the latest frame.
"""

import asyncio
from contextlib import suppress
from typing import Any, Callable

from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from loguru import logger

from ..models.auth import AuthUser
from ..models.chat_message import ChatMessage
from ..models.chat_request import ResolveConversationRequest, SendMessageRequest
from ..models.conversation import Conversation, ConversationView, ResolveConversationResponse
from ..services.auth_service import AuthService, get_auth_service
from ..services.catalog_service import CatalogService, build_product_context, get_catalog_service
from ..services.conversation_service import ConversationService, get_conversation_service
from ..services.display import conversation_view
from ..services.profile_service import ProfileService, get_profile_service
from ..services.streams import SnapshotStream
from ..utils.error_handler import InvalidParticipants, MarketplaceError
from .dependencies import get_current_user

router = APIRouter(prefix="/conversations", tags=["Chat"])
ws_router = APIRouter(prefix="/ws", tags=["Chat"])


async def _view(
    conversation: Conversation,
    viewer_id: str,
    profiles: ProfileService,
) -> ConversationView:
    other_id = conversation.other_participant(viewer_id)
    other_profile = await profiles.lookup(other_id) if other_id else None
    return conversation_view(conversation, viewer_id, other_profile)


@router.post("", response_model=ResolveConversationResponse)
async def resolve_conversation_endpoint(
    request: ResolveConversationRequest,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
    catalog: CatalogService = Depends(get_catalog_service),
    profiles: ProfileService = Depends(get_profile_service),
) -> ResolveConversationResponse:
    """Open the conversation with a user, optionally about one of the listings.

    With only a ``product_id`` the counterpart is the product's seller.
    Responds ``201`` when the conversation was created and ``200`` when an
    existing one was reused.
    """
    context = None
    counterpart_id = request.counterpart_id
    if request.product_id:
        product = await catalog.get_product(request.product_id)
        context = build_product_context(product)
        counterpart_id = counterpart_id or product.seller_id
    if not counterpart_id:
        raise InvalidParticipants("No counterpart to converse with")

    resolution = await service.resolve_conversation(user, counterpart_id, context)
    conversation = await service.get_conversation(resolution.conversation_id, user.uid)
    if resolution.created:
        response.status_code = status.HTTP_201_CREATED
    return ResolveConversationResponse(
        created=resolution.created,
        conversation=await _view(conversation, user.uid, profiles),
    )


@router.get("", response_model=list[ConversationView])
async def list_conversations_endpoint(
    user: AuthUser = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> list[ConversationView]:
    """The signed-in user's conversations, most recently active first."""
    conversations = await service.list_conversations(user.uid)
    return [conversation_view(conversation, user.uid) for conversation in conversations]


@router.get("/{conversation_id}", response_model=ConversationView)
async def get_conversation_endpoint(
    conversation_id: str,
    user: AuthUser = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
    profiles: ProfileService = Depends(get_profile_service),
) -> ConversationView:
    conversation = await service.get_conversation(conversation_id, user.uid)
    return await _view(conversation, user.uid, profiles)


@router.get("/{conversation_id}/messages", response_model=list[ChatMessage])
async def list_messages_endpoint(
    conversation_id: str,
    user: AuthUser = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> list[ChatMessage]:
    return await service.list_messages(conversation_id, user.uid)


@router.post(
    "/{conversation_id}/messages",
    response_model=ChatMessage,
    status_code=status.HTTP_201_CREATED,
)
async def send_message_endpoint(
    conversation_id: str,
    request: SendMessageRequest,
    user: AuthUser = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ChatMessage:
    return await service.append_message(conversation_id, user.uid, request.text)


async def _authenticate(websocket: WebSocket, token: str | None, auth: AuthService) -> AuthUser | None:
    user = await auth.current_user(token)
    if user is None:
        logger.info("Rejected unauthenticated socket on {}", websocket.url.path)
        await websocket.close(code=4401)
    return user


async def _pump(
    websocket: WebSocket,
    stream: SnapshotStream[Any],
    render: Callable[[list[Any]], Any],
) -> None:
    """Forward stream snapshots to the socket until either side goes away."""

    async def watch_disconnect() -> None:
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            stream.cancel()

    watcher = asyncio.create_task(watch_disconnect())
    try:
        async for items in stream:
            await websocket.send_json(jsonable_encoder(render(items)))
    except WebSocketDisconnect:
        logger.debug("Socket on {} went away mid-send", websocket.url.path)
    finally:
        stream.cancel()
        watcher.cancel()
        with suppress(asyncio.CancelledError, WebSocketDisconnect):
            await watcher


@ws_router.websocket("/conversations")
async def conversations_socket(
    websocket: WebSocket,
    token: str | None = Query(default=None),
    auth: AuthService = Depends(get_auth_service),
    service: ConversationService = Depends(get_conversation_service),
) -> None:
    """Push the user's conversation list whenever it changes."""
    user = await _authenticate(websocket, token, auth)
    if user is None:
        return
    await websocket.accept()
    logger.info("Streaming conversations for {}", user.uid)
    stream = service.stream_conversations(user.uid)
    await _pump(
        websocket,
        stream,
        lambda conversations: [conversation_view(item, user.uid) for item in conversations],
    )


@ws_router.websocket("/conversations/{conversation_id}/messages")
async def messages_socket(
    websocket: WebSocket,
    conversation_id: str,
    token: str | None = Query(default=None),
    auth: AuthService = Depends(get_auth_service),
    service: ConversationService = Depends(get_conversation_service),
) -> None:
    """Push a conversation's messages, oldest first, whenever they change."""
    user = await _authenticate(websocket, token, auth)
    if user is None:
        return
    try:
        await service.get_conversation(conversation_id, user.uid)
    except MarketplaceError as exc:
        logger.info("Rejected socket for {} on {}: {}", user.uid, conversation_id, exc)
        await websocket.close(code=4000 + exc.status_code)
        return
    await websocket.accept()
    logger.info("Streaming messages of {} for {}", conversation_id, user.uid)
    stream = service.stream_messages(conversation_id)
    await _pump(websocket, stream, lambda messages: messages)
