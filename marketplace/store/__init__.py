"""Document store collaborator and its in-process implementation."""

from .base import (  # noqa: F401
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    OrderBy,
    QuerySnapshot,
    StoreError,
    StoreErrorCode,
    Subscription,
)
from .memory_store import InMemoryDocumentStore, LiveQuery, get_document_store  # noqa: F401
