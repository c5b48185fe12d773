"""In-process implementation of the document store collaborator.

``InMemoryDocumentStore`` mirrors the behaviour the services rely on from a
managed document database:

* server timestamps are resolved at commit time from a clock that never goes
  backwards, and every write in one batch receives the same value;
* query results are ordered by the requested fields with ties broken by
  creation order; documents missing an order field are left out;
* live queries replay the full current result set on subscription and then
  push a new snapshot whenever a commit changes that result set.  With
  ``latency_compensation`` enabled each change is first delivered flagged
  ``has_pending_writes`` and then again once "confirmed", the way a client
  SDK reports local writes before the backend acknowledges them.

Live query snapshots are delivered on the subscriber's event loop even when
the write happens on another loop or thread.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable

from loguru import logger

from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    FieldFilter,
    OrderBy,
    QuerySnapshot,
    StoreError,
    StoreErrorCode,
    get_path,
    matches,
    set_path,
)

_CLOSED = object()


@dataclass
class _Record:
    data: dict[str, Any]
    create_seq: int


@dataclass
class _WriteOp:
    kind: str
    collection: str
    doc_id: str
    data: dict[str, Any]


def _resolve_timestamps(value: Any, timestamp: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return timestamp
    if isinstance(value, dict):
        return {key: _resolve_timestamps(item, timestamp) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_timestamps(item, timestamp) for item in value]
    return copy.deepcopy(value)


class LiveQuery:
    """Subscription returned by :meth:`InMemoryDocumentStore.watch`."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        collection: str,
        filters: list[FieldFilter],
        order_by: list[OrderBy],
    ) -> None:
        self._store = store
        self.collection = collection
        self.filters = filters
        self.order_by = order_by
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        self._closed = False
        self._last_fingerprint: list[tuple[str, dict[str, Any]]] | None = None

    @property
    def cancelled(self) -> bool:
        return self._closed

    def cancel(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._unregister(self)
        self._put(_CLOSED)

    def _deliver(self, documents: list[DocumentSnapshot], with_pending: bool = False) -> None:
        fingerprint = [(doc.id, doc.data) for doc in documents]
        if fingerprint == self._last_fingerprint:
            return
        self._last_fingerprint = fingerprint
        flags = (True, False) if with_pending else (False,)
        for pending in flags:
            self._put(
                QuerySnapshot(
                    documents=copy.deepcopy(documents),
                    has_pending_writes=pending,
                    read_time=self._store.last_commit_time,
                )
            )

    def _put(self, item: Any) -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        loop = self._loop
        if loop is None or loop is current or loop.is_closed():
            self._queue.put_nowait(item)
        else:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def __aiter__(self) -> "LiveQuery":
        return self

    async def __anext__(self) -> QuerySnapshot:
        if self._closed:
            raise StopAsyncIteration
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "LiveQuery":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()


class InMemoryWriteBatch:
    """Collects writes and applies them atomically on :meth:`commit`."""

    def __init__(self, store: "InMemoryDocumentStore") -> None:
        self._store = store
        self._ops: list[_WriteOp] = []
        self._committed = False

    def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        doc_id = doc_id or self._store.new_id()
        self._ops.append(_WriteOp("create", collection, doc_id, data))
        return doc_id

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._ops.append(_WriteOp("update", collection, doc_id, data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(_WriteOp("delete", collection, doc_id, {}))

    async def commit(self) -> datetime:
        if self._committed:
            raise StoreError(StoreErrorCode.FAILED_PRECONDITION, "batch already committed")
        await asyncio.sleep(0)
        timestamp = self._store._apply(self._ops)
        self._committed = True
        return timestamp


class InMemoryDocumentStore:
    """Document store kept in process memory."""

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        latency_compensation: bool = True,
    ) -> None:
        self._collections: dict[str, dict[str, _Record]] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sequence = itertools.count(1)
        self._subscriptions: list[LiveQuery] = []
        self._lock = threading.RLock()
        self.latency_compensation = latency_compensation
        self.last_commit_time: datetime | None = None

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:20]

    # ------------------------------------------------------------------
    # Reads

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        await asyncio.sleep(0)
        with self._lock:
            record = self._collections.get(collection, {}).get(doc_id)
            if record is None:
                return None
            return DocumentSnapshot(doc_id, copy.deepcopy(record.data), record.create_seq)

    async def query(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: list[OrderBy] | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        with self._lock:
            documents = self._run_query(collection, filters or [], order_by or [])
        if limit is not None:
            documents = documents[:limit]
        return copy.deepcopy(documents)

    def watch(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: list[OrderBy] | None = None,
    ) -> LiveQuery:
        subscription = LiveQuery(self, collection, filters or [], order_by or [])
        with self._lock:
            self._subscriptions.append(subscription)
            subscription._deliver(
                self._run_query(collection, subscription.filters, subscription.order_by)
            )
        logger.debug("Live query registered on {} ({} active)", collection, len(self._subscriptions))
        return subscription

    def _unregister(self, subscription: LiveQuery) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        logger.debug("Live query on {} cancelled", subscription.collection)

    def _run_query(
        self,
        collection: str,
        filters: list[FieldFilter],
        order_by: list[OrderBy],
    ) -> list[DocumentSnapshot]:
        records = self._collections.get(collection, {})
        documents = [
            DocumentSnapshot(doc_id, record.data, record.create_seq)
            for doc_id, record in records.items()
            if matches(record.data, filters)
        ]
        documents.sort(key=lambda doc: doc.create_seq)
        for order in reversed(order_by):
            documents = [doc for doc in documents if get_path(doc.data, order.field) is not None]
            documents.sort(key=lambda doc: get_path(doc.data, order.field), reverse=order.descending)
        return documents

    # ------------------------------------------------------------------
    # Writes

    async def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        batch = self.batch()
        new_id = batch.create(collection, data, doc_id)
        await batch.commit()
        return new_id

    async def create_if_absent(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool:
        try:
            await self.create(collection, data, doc_id)
        except StoreError as exc:
            if exc.code is StoreErrorCode.ALREADY_EXISTS:
                return False
            raise
        return True

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        batch = self.batch()
        batch.update(collection, doc_id, data)
        await batch.commit()

    async def delete(self, collection: str, doc_id: str) -> None:
        batch = self.batch()
        batch.delete(collection, doc_id)
        await batch.commit()

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def _next_timestamp(self) -> datetime:
        timestamp = self._clock()
        if self.last_commit_time is not None and timestamp < self.last_commit_time:
            timestamp = self.last_commit_time
        self.last_commit_time = timestamp
        return timestamp

    def _apply(self, ops: list[_WriteOp]) -> datetime:
        with self._lock:
            staged = {name: dict(records) for name, records in self._collections.items()}
            timestamp = self._next_timestamp()
            for op in ops:
                records = staged.setdefault(op.collection, {})
                if op.kind == "create":
                    if op.doc_id in records:
                        raise StoreError(
                            StoreErrorCode.ALREADY_EXISTS,
                            f"{op.collection}/{op.doc_id} already exists",
                        )
                    records[op.doc_id] = _Record(
                        _resolve_timestamps(op.data, timestamp), next(self._sequence)
                    )
                elif op.kind == "update":
                    current = records.get(op.doc_id)
                    if current is None:
                        raise StoreError(
                            StoreErrorCode.NOT_FOUND,
                            f"{op.collection}/{op.doc_id} does not exist",
                        )
                    data = copy.deepcopy(current.data)
                    for path, value in op.data.items():
                        set_path(data, path, _resolve_timestamps(value, timestamp))
                    records[op.doc_id] = _Record(data, current.create_seq)
                elif op.kind == "delete":
                    records.pop(op.doc_id, None)
            self._collections = staged
            touched = {op.collection for op in ops}
            self._notify(touched)
        return timestamp

    def _notify(self, collections: set[str]) -> None:
        for subscription in list(self._subscriptions):
            if subscription.collection not in collections:
                continue
            documents = self._run_query(
                subscription.collection, subscription.filters, subscription.order_by
            )
            subscription._deliver(documents, with_pending=self.latency_compensation)


@lru_cache()
def get_document_store() -> InMemoryDocumentStore:
    """Return the process-wide document store."""
    from ..config.app_config import get_app_config

    config = get_app_config()
    logger.info("Initialising {} document store", config.store_type)
    return InMemoryDocumentStore(latency_compensation=config.store_latency_compensation)
