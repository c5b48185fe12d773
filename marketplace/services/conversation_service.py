"""Conversation resolution, message append and the live read model.

The ConversationService owns the ``conversations`` collection and each
conversation's ``messages`` sub-collection.  Nothing else writes them.

Resolution is "find or create": the canonical key (sorted participant pair
plus product id, or ``"none"``) is looked up first; when nothing matches,
the conversation is created with a document id derived from that key, so two
callers racing on first contact converge on one record instead of creating
two.  Any lookup that still returns more than one match is reported as
:class:`ConversationAmbiguous` rather than resolved by picking one.

Message append validates before touching the store and then writes the
message, the conversation's ``last_message`` cache and ``updated_at`` in a
single atomic batch, so readers never see one without the other.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache

from loguru import logger

from ..config.app_config import AppConfig
from ..models.auth import AuthUser
from ..models.chat_message import ChatMessage
from ..models.conversation import (
    Conversation,
    ConversationResolution,
    ParticipantInfo,
    ProductContext,
    canonical_pair,
    conversation_key,
)
from ..models.enums import ResolutionOutcome
from ..models.user_profile import UserProfile
from ..store.base import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, FieldFilter, OrderBy
from ..utils.error_handler import (
    CollaboratorUnavailable,
    ConversationAmbiguous,
    ConversationNotFound,
    EmptyMessage,
    InvalidParticipants,
    NotAParticipant,
)
from .base import StoreBackedService
from .profile_service import ProfileService, get_profile_service
from .streams import SnapshotStream

CONVERSATIONS = "conversations"
UNKNOWN_EMAIL = "Unknown user"


def messages_collection(conversation_id: str) -> str:
    return f"{CONVERSATIONS}/{conversation_id}/messages"


def conversation_document_id(key: str) -> str:
    """Deterministic document id for a canonical key."""
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:20]


def participant_info_from_profile(profile: UserProfile) -> ParticipantInfo:
    return ParticipantInfo(
        email=profile.email,
        display_name=profile.display_name,
        avatar_url=profile.profile_image_url,
    )


def fallback_participant_info(uid: str, requester: AuthUser) -> ParticipantInfo:
    """Placeholder metadata for a participant whose profile is unavailable."""
    if uid == requester.uid and requester.email:
        return ParticipantInfo(email=requester.email)
    return ParticipantInfo(email=UNKNOWN_EMAIL)


def _to_conversation(snapshot: DocumentSnapshot) -> Conversation:
    return Conversation.model_validate(snapshot.to_dict())


def _to_message(snapshot: DocumentSnapshot) -> ChatMessage:
    return ChatMessage.model_validate(snapshot.to_dict())


class ConversationService(StoreBackedService):
    """Resolves conversations between two users and appends their messages."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        profile_service: ProfileService | None = None,
        app_config: AppConfig | None = None,
    ) -> None:
        super().__init__(store=store, app_config=app_config)
        self.profiles = profile_service or ProfileService(store=self.store, app_config=self.app_config)

    # ------------------------------------------------------------------
    # Resolution

    async def resolve_conversation(
        self,
        requester: AuthUser,
        counterpart_id: str,
        product_context: ProductContext | None = None,
    ) -> ConversationResolution:
        """Return the one conversation ``requester`` and ``counterpart_id`` share.

        The conversation is scoped to ``product_context.product_id`` when a
        context is given.  It is created when absent; when present its
        participant metadata is refreshed and ``updated_at`` bumped.

        Raises
        ------
        InvalidParticipants
            If the requester tries to open a conversation with themselves.
        ConversationAmbiguous
            If more than one conversation already matches the key.
        CollaboratorUnavailable
            If the store cannot be reached.
        """
        if not counterpart_id or requester.uid == counterpart_id:
            raise InvalidParticipants("A conversation needs two distinct participants")

        product_id = product_context.product_id if product_context else None
        key = conversation_key(requester.uid, counterpart_id, product_id)
        logger.info("Resolving conversation {}", key)

        profiles = {
            requester.uid: await self.profiles.lookup(requester.uid),
            counterpart_id: await self.profiles.lookup(counterpart_id),
        }

        matches = await self._call(
            self.store.query(CONVERSATIONS, filters=[FieldFilter("conversation_key", "==", key)])
        )
        if len(matches) > 1:
            ids = [snapshot.id for snapshot in matches]
            logger.error("Conversation key {} matches {} records: {}", key, len(ids), ids)
            raise ConversationAmbiguous(key, ids)
        if matches:
            await self._refresh_participant_info(matches[0], profiles, requester)
            return ConversationResolution(conversation_id=matches[0].id, outcome=ResolutionOutcome.EXISTING)

        document = {
            "participants": canonical_pair(requester.uid, counterpart_id),
            "participant_info": {
                uid: (
                    participant_info_from_profile(profile)
                    if profile is not None
                    else fallback_participant_info(uid, requester)
                ).model_dump()
                for uid, profile in profiles.items()
            },
            "product_context": product_context.model_dump() if product_context else None,
            "conversation_key": key,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
            "last_message": None,
        }
        doc_id = conversation_document_id(key)
        created = await self._call(self.store.create_if_absent(CONVERSATIONS, doc_id, document))
        if created:
            logger.info("Created conversation {} for {}", doc_id, key)
            return ConversationResolution(conversation_id=doc_id, outcome=ResolutionOutcome.CREATED)

        logger.warning("Conversation {} was created concurrently; reusing it", doc_id)
        existing = await self._call(self.store.get(CONVERSATIONS, doc_id))
        if existing is not None:
            await self._refresh_participant_info(existing, profiles, requester)
        return ConversationResolution(conversation_id=doc_id, outcome=ResolutionOutcome.EXISTING)

    async def _refresh_participant_info(
        self,
        snapshot: DocumentSnapshot,
        profiles: dict[str, UserProfile | None],
        requester: AuthUser,
    ) -> None:
        """Overwrite cached metadata from fresh profiles; keep the cache otherwise.

        Failure is logged and swallowed: the conversation still exists and
        is returned to the caller.
        """
        cached = snapshot.data.get("participant_info") or {}
        updates: dict[str, object] = {"updated_at": SERVER_TIMESTAMP}
        for uid, profile in profiles.items():
            if profile is not None:
                updates[f"participant_info.{uid}"] = participant_info_from_profile(profile).model_dump()
            elif uid not in cached:
                updates[f"participant_info.{uid}"] = fallback_participant_info(uid, requester).model_dump()
        try:
            await self._call(self.store.update(CONVERSATIONS, snapshot.id, updates))
        except CollaboratorUnavailable as exc:
            logger.warning("Could not refresh conversation {}: {}", snapshot.id, exc)

    # ------------------------------------------------------------------
    # Messages

    async def append_message(self, conversation_id: str, sender_id: str, text: str) -> ChatMessage:
        """Append a message and update the conversation's caches atomically."""
        body = (text or "").strip()
        if not body:
            raise EmptyMessage("Message text must not be empty")

        conversation = await self._load(conversation_id)
        if not conversation.has_participant(sender_id):
            raise NotAParticipant(f"{sender_id} is not a participant of {conversation_id}")

        batch = self.store.batch()
        message_id = batch.create(
            messages_collection(conversation_id),
            {
                "conversation_id": conversation_id,
                "sender_id": sender_id,
                "text": body,
                "created_at": SERVER_TIMESTAMP,
            },
        )
        updates: dict[str, object] = {
            "updated_at": SERVER_TIMESTAMP,
            "last_message": {"text": body, "sender_id": sender_id, "timestamp": SERVER_TIMESTAMP},
        }
        cached = conversation.participant_info.get(sender_id)
        if cached is None or not cached.display_name:
            profile = await self.profiles.lookup(sender_id)
            if profile is not None:
                backfilled = participant_info_from_profile(profile)
                if cached is not None and not backfilled.avatar_url:
                    backfilled.avatar_url = cached.avatar_url
                updates[f"participant_info.{sender_id}"] = backfilled.model_dump()
        batch.update(CONVERSATIONS, conversation_id, updates)

        created_at = await self._call(batch.commit())
        logger.info("Message {} appended to {} by {}", message_id, conversation_id, sender_id)
        return ChatMessage(
            id=message_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=body,
            created_at=created_at,
        )

    # ------------------------------------------------------------------
    # Reads

    async def get_conversation(self, conversation_id: str, viewer_id: str) -> Conversation:
        """Return a conversation the viewer takes part in."""
        conversation = await self._load(conversation_id)
        if not conversation.has_participant(viewer_id):
            raise NotAParticipant(f"{viewer_id} is not a participant of {conversation_id}")
        return conversation

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        snapshots = await self._call(
            self.store.query(
                CONVERSATIONS,
                filters=[FieldFilter("participants", "array_contains", user_id)],
                order_by=[OrderBy("updated_at", descending=True)],
            )
        )
        return [_to_conversation(snapshot) for snapshot in snapshots]

    async def list_messages(self, conversation_id: str, viewer_id: str) -> list[ChatMessage]:
        await self.get_conversation(conversation_id, viewer_id)
        snapshots = await self._call(
            self.store.query(messages_collection(conversation_id), order_by=[OrderBy("created_at")])
        )
        return [_to_message(snapshot) for snapshot in snapshots]

    def stream_messages(self, conversation_id: str) -> SnapshotStream[ChatMessage]:
        """Live, oldest-first view of a conversation's messages.

        Every subscription starts with the full current message list.
        Call ``cancel()`` before subscribing again for the same view.
        """
        subscription = self.store.watch(
            messages_collection(conversation_id), order_by=[OrderBy("created_at")]
        )
        return SnapshotStream(subscription, _to_message)

    def stream_conversations(self, user_id: str) -> SnapshotStream[Conversation]:
        """Live, most-recent-first view of a user's conversations.

        Snapshots that still carry unconfirmed local writes are skipped so a
        write is rendered once, after the store assigns its timestamps.
        """
        subscription = self.store.watch(
            CONVERSATIONS,
            filters=[FieldFilter("participants", "array_contains", user_id)],
            order_by=[OrderBy("updated_at", descending=True)],
        )
        return SnapshotStream(subscription, _to_conversation, skip_pending=True)

    async def _load(self, conversation_id: str) -> Conversation:
        snapshot = await self._call(self.store.get(CONVERSATIONS, conversation_id))
        if snapshot is None:
            raise ConversationNotFound(f"Conversation {conversation_id} not found")
        return _to_conversation(snapshot)


@lru_cache()
def get_conversation_service() -> ConversationService:
    """Dependency injector for the process-wide ConversationService."""
    return ConversationService(profile_service=get_profile_service())
