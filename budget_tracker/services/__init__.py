"""Services package."""

from budget_tracker.services.backend import (
    BackendConnectionError,
    BackendError,
    DocumentStoreInterface,
    FirebaseIdentityBackend,
    FirestoreDocumentStore,
    IdentityBackendInterface,
    InMemoryDocumentStore,
    InMemoryIdentityBackend,
    NotFoundError,
    PermissionDeniedError,
)

__all__ = [
    # Interfaces
    "DocumentStoreInterface",
    "IdentityBackendInterface",
    # Implementations
    "FirebaseIdentityBackend",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "InMemoryIdentityBackend",
    # Exceptions
    "BackendConnectionError",
    "BackendError",
    "NotFoundError",
    "PermissionDeniedError",
]
