"""Document store collaborator interface.

The marketplace never talks to a concrete database directly.  Services
depend on :class:`DocumentStore`, a narrow interface modelled on managed
document databases: JSON-like documents grouped in collections (with
sub-collections addressed by path, e.g. ``conversations/<id>/messages``),
point lookups, filtered and ordered queries, live query subscriptions,
atomic write batches and a server timestamp sentinel resolved at commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Literal, Protocol


class StoreErrorCode(str, Enum):
    """Error codes reported by the document store."""

    NOT_FOUND = "not-found"
    ALREADY_EXISTS = "already-exists"
    PERMISSION_DENIED = "permission-denied"
    UNAVAILABLE = "unavailable"
    FAILED_PRECONDITION = "failed-precondition"
    DEADLINE_EXCEEDED = "deadline-exceeded"


class StoreError(Exception):
    """Raised by a document store when a request cannot be served."""

    def __init__(self, code: StoreErrorCode, message: str = "") -> None:
        self.code = code
        self.message = message or code.value
        super().__init__(f"[{code.value}] {self.message}")


class _ServerTimestamp:
    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder replaced by the store's clock when a write is committed.
SERVER_TIMESTAMP: Any = _ServerTimestamp()


@dataclass(frozen=True)
class FieldFilter:
    """A single query predicate on a (possibly dotted) field path."""

    field: str
    op: Literal["==", "array_contains"]
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass
class DocumentSnapshot:
    id: str
    data: dict[str, Any]
    # Commit sequence of the document's creation; breaks ordering ties.
    create_seq: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.data}


@dataclass
class QuerySnapshot:
    documents: list[DocumentSnapshot] = field(default_factory=list)
    has_pending_writes: bool = False
    read_time: datetime | None = None


class Subscription(Protocol):
    """A live query.  Iterating yields snapshots until :meth:`cancel` is called."""

    def cancel(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[QuerySnapshot]: ...


class WriteBatch(Protocol):
    """Writes that are applied atomically on :meth:`commit`."""

    def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str: ...

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def commit(self) -> datetime: ...


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None: ...

    async def query(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: list[OrderBy] | None = None,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    def watch(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: list[OrderBy] | None = None,
    ) -> Subscription: ...

    async def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str: ...

    async def create_if_absent(self, collection: str, doc_id: str, data: dict[str, Any]) -> bool: ...

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    def batch(self) -> WriteBatch: ...


def get_path(data: dict[str, Any], path: str) -> Any:
    """Return the value at a dotted ``path`` or ``None`` when any part is missing."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Set ``value`` at a dotted ``path``, creating intermediate maps."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def matches(data: dict[str, Any], filters: list[FieldFilter]) -> bool:
    for flt in filters:
        value = get_path(data, flt.field)
        if flt.op == "==":
            if value != flt.value:
                return False
        elif flt.op == "array_contains":
            if not isinstance(value, list) or flt.value not in value:
                return False
        else:
            raise StoreError(StoreErrorCode.FAILED_PRECONDITION, f"unsupported operator {flt.op!r}")
    return True
