"""Shared plumbing for services backed by the document store."""

from __future__ import annotations

from typing import Awaitable, TypeVar

from ..config.app_config import AppConfig, get_app_config
from ..store.base import DocumentStore
from ..store.memory_store import get_document_store
from ..utils.error_handler import collaborator_call

T = TypeVar("T")


class StoreBackedService:
    """Holds the store and applies the caller-side timeout to each request."""

    collaborator = "document_store"

    def __init__(self, store: DocumentStore | None = None, app_config: AppConfig | None = None) -> None:
        self.app_config = app_config or get_app_config()
        self.store = store if store is not None else get_document_store()

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await collaborator_call(
            awaitable,
            collaborator=self.collaborator,
            timeout=self.app_config.collaborator_timeout,
        )
