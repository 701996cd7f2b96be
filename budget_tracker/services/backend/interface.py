"""
Abstract Backend Interface

DESIGN DECISION: We define abstract interfaces for the hosted backend.
This allows us to:
1. Swap Firebase for another hosted backend later
2. Use in-memory backends for testing and offline demo mode
3. Keep the gateway decoupled from HTTP details

Two services are modelled, matching what the hosted backend offers:
- Identity: credential sign-up/sign-in/sign-out, email verification,
  password reset/change, re-authentication, auth-state notifications
- Document store: create/read/update/delete with equality, ordering and
  limit predicates, plus change subscriptions

The interfaces are intentionally small - we're not building an ORM.
Every call takes the acting principal explicitly; there is no ambient
"current user" inside the store.
"""

import secrets
from abc import ABC, abstractmethod
from typing import Any, Callable, NamedTuple, Optional, Sequence

from budget_tracker.models.results import Principal


AuthStateListener = Callable[[Optional[Principal]], None]
SnapshotCallback = Callable[[list[dict[str, Any]]], None]


class ServerTimestamp:
    """Sentinel: let the backend fill in its own clock for this field."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = ServerTimestamp()

AUTO_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"


def new_document_id() -> str:
    """20-character random ID, same shape as the hosted SDK's auto IDs."""
    return "".join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(20))


class FieldFilter(NamedTuple):
    """Equality predicate: field == value."""
    field: str
    value: Any


class OrderBy(NamedTuple):
    field: str
    descending: bool = True


class Subscription:
    """Handle for a change subscription."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._cancel()


class IdentityBackendInterface(ABC):
    """
    Abstract interface for the identity service.

    Implementations call _set_principal whenever the signed-in user
    changes; registered listeners are notified synchronously.
    """

    def __init__(self):
        self._principal: Optional[Principal] = None
        self._listeners: list[AuthStateListener] = []

    @property
    def current_principal(self) -> Optional[Principal]:
        return self._principal

    def on_auth_state_changed(self, listener: AuthStateListener) -> Callable[[], None]:
        """
        Register an auth-state listener.

        The listener is called right away with the current principal
        (None when signed out), then on every change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)
        listener(self._principal)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_principal(self, principal: Optional[Principal]) -> None:
        self._principal = principal
        for listener in list(self._listeners):
            listener(principal)

    @abstractmethod
    async def create_user(self, email: str, password: str) -> Principal:
        """
        Create a credential account and sign it in.

        Raises:
            BackendError: e.g. auth/email-already-in-use, auth/weak-password
        """
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Principal:
        """
        Sign in with email and password.

        The returned principal carries the current email_verified flag.

        Raises:
            BackendError: e.g. auth/wrong-password, auth/user-not-found
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    @abstractmethod
    async def send_email_verification(self, principal: Principal) -> None:
        pass

    @abstractmethod
    async def send_password_reset(self, email: str) -> None:
        pass

    @abstractmethod
    async def reauthenticate(self, principal: Principal, password: str) -> Principal:
        """
        Prove the principal still knows its password.

        Returns:
            The principal with fresh tokens
        """
        pass

    @abstractmethod
    async def update_password(self, principal: Principal, new_password: str) -> Principal:
        """
        Set a new password for a recently authenticated principal.

        Returns:
            The principal with fresh tokens
        """
        pass


class DocumentStoreInterface(ABC):
    """
    Abstract interface for the document store.

    Documents are plain dicts. Reads return them with an extra "id" key.
    Any field whose value is SERVER_TIMESTAMP is set by the backend.
    """

    @abstractmethod
    async def add_document(
        self,
        collection: str,
        data: dict[str, Any],
        principal: Principal,
    ) -> str:
        """
        Create a document with a generated ID.

        Returns:
            The new document ID

        Raises:
            BackendError: If the write is refused or fails
        """
        pass

    @abstractmethod
    async def get_document(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> Optional[dict[str, Any]]:
        """
        Read one document.

        Returns:
            The document, or None if it does not exist
        """
        pass

    @abstractmethod
    async def query_documents(
        self,
        collection: str,
        principal: Principal,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        List documents matching all filters.

        Args:
            collection: Collection name
            principal: Acting principal
            filters: Equality predicates, ANDed
            order_by: Sort field and direction
            limit: Maximum number of results

        Returns:
            Matching documents in order
        """
        pass

    @abstractmethod
    async def update_document(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        principal: Principal,
    ) -> None:
        """
        Merge updates into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete_document(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        pass

    @abstractmethod
    def watch_documents(
        self,
        collection: str,
        principal: Principal,
        callback: SnapshotCallback,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> Subscription:
        """
        Subscribe to the result set of a query.

        callback receives the full, ordered result list first with the
        current state and then each time it changes.
        """
        pass


class BackendError(Exception):
    """
    Base exception for backend operations.

    code uses the hosted SDK's vocabulary ("auth/wrong-password",
    "permission-denied", ...) so one table can translate it for users.
    """

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message or code
        super().__init__(self.message)


class NotFoundError(BackendError):
    """Document not found."""

    def __init__(self, message: str = "Document not found"):
        super().__init__("not-found", message)


class PermissionDeniedError(BackendError):
    """The backend's access rules refused the request."""

    def __init__(self, message: str = "Missing or insufficient permissions"):
        super().__init__("permission-denied", message)


class BackendConnectionError(BackendError):
    """Could not reach the backend."""
    pass
