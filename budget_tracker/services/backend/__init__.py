"""
Backend Services Package

Provides abstract interfaces and concrete implementations for the hosted
identity service and document store. Firebase is the production backend;
the in-memory backend serves tests and offline demo mode.
"""

from budget_tracker.services.backend.interface import (
    SERVER_TIMESTAMP,
    AuthStateListener,
    BackendConnectionError,
    BackendError,
    DocumentStoreInterface,
    FieldFilter,
    IdentityBackendInterface,
    NotFoundError,
    OrderBy,
    PermissionDeniedError,
    Subscription,
)
from budget_tracker.services.backend.firebase import (
    FirebaseIdentityBackend,
    FirebaseRestClient,
    FirestoreDocumentStore,
)
from budget_tracker.services.backend.memory import (
    InMemoryDocumentStore,
    InMemoryIdentityBackend,
)

__all__ = [
    # Interfaces
    "AuthStateListener",
    "DocumentStoreInterface",
    "FieldFilter",
    "IdentityBackendInterface",
    "OrderBy",
    "SERVER_TIMESTAMP",
    "Subscription",
    # Exceptions
    "BackendConnectionError",
    "BackendError",
    "NotFoundError",
    "PermissionDeniedError",
    # Firebase implementation
    "FirebaseIdentityBackend",
    "FirebaseRestClient",
    "FirestoreDocumentStore",
    # In-memory implementation
    "InMemoryDocumentStore",
    "InMemoryIdentityBackend",
]
