"""Typed wrappers over live store queries."""

from __future__ import annotations

from typing import Any, Callable, Generic, List, TypeVar

from ..store.base import DocumentSnapshot, QuerySnapshot, Subscription

T = TypeVar("T")


class SnapshotStream(Generic[T]):
    """Async iterator of model lists produced by a live query.

    Iteration ends once :meth:`cancel` is called, either directly or by
    leaving an ``async with`` block.  A confirmed snapshot whose documents
    match the pending one just delivered is not delivered again.
    """

    def __init__(
        self,
        subscription: Subscription,
        mapper: Callable[[DocumentSnapshot], T],
        skip_pending: bool = False,
    ) -> None:
        self._subscription = subscription
        self._mapper = mapper
        self._skip_pending = skip_pending
        self._iterator = subscription.__aiter__()
        self._pending: list[tuple[str, dict[str, Any]]] | None = None

    def cancel(self) -> None:
        self._subscription.cancel()

    def __aiter__(self) -> "SnapshotStream[T]":
        return self

    async def __anext__(self) -> List[T]:
        while True:
            snapshot: QuerySnapshot = await self._iterator.__anext__()
            if self._skip_pending and snapshot.has_pending_writes:
                continue
            fingerprint = [(document.id, document.data) for document in snapshot.documents]
            if not snapshot.has_pending_writes and fingerprint == self._pending:
                self._pending = None
                continue
            self._pending = fingerprint if snapshot.has_pending_writes else None
            return [self._mapper(document) for document in snapshot.documents]

    async def __aenter__(self) -> "SnapshotStream[T]":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()
