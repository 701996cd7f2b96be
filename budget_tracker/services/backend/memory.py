"""
In-Memory Backend

Process-local stand-ins for the hosted identity service and document
store. Used by the test suite and by the app's offline demo mode when
Firebase is not configured.

They follow the hosted backend's contract, including the parts the
gateway relies on:
- New accounts start with an unverified email
- Every document read or write must belong to the acting principal
  (the same rule the hosted security rules enforce)
- SERVER_TIMESTAMP fields get the store's clock
- Watchers are told about every change to their result set
"""

import copy
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence
from uuid import uuid4

from budget_tracker.models.results import Principal
from budget_tracker.services.backend.interface import (
    SERVER_TIMESTAMP,
    BackendError,
    DocumentStoreInterface,
    FieldFilter,
    IdentityBackendInterface,
    NotFoundError,
    OrderBy,
    PermissionDeniedError,
    SnapshotCallback,
    Subscription,
    new_document_id,
)


OWNER_FIELD = "userId"

# The hosted identity service refuses anything shorter
MIN_BACKEND_PASSWORD_LENGTH = 6


@dataclass
class _Account:
    uid: str
    email: str
    password: str
    email_verified: bool = False


class InMemoryIdentityBackend(IdentityBackendInterface):
    """
    Identity service kept in a dict.

    sent_emails records (kind, email) for every verification or reset
    email "sent", so callers can assert on them.
    """

    def __init__(self):
        super().__init__()
        self._accounts: dict[str, _Account] = {}
        self.sent_emails: list[tuple[str, str]] = []

    def _find(self, email: str) -> Optional[_Account]:
        return self._accounts.get(email.strip().lower())

    def _find_by_uid(self, uid: str) -> _Account:
        for account in self._accounts.values():
            if account.uid == uid:
                return account
        raise BackendError("auth/user-not-found", "There is no user record for this identifier")

    def _issue(self, account: _Account) -> Principal:
        return Principal(
            uid=account.uid,
            email=account.email,
            email_verified=account.email_verified,
            id_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
        )

    def _check_strength(self, password: str) -> None:
        if len(password) < MIN_BACKEND_PASSWORD_LENGTH:
            raise BackendError(
                "auth/weak-password",
                "Password should be at least 6 characters",
            )

    def verify_email(self, email: str) -> None:
        """Mark the account's email verified, as if the link was clicked."""
        account = self._find(email)
        if account is None:
            raise BackendError("auth/user-not-found", f"No account for {email}")
        account.email_verified = True

    async def create_user(self, email: str, password: str) -> Principal:
        key = email.strip().lower()
        if key in self._accounts:
            raise BackendError(
                "auth/email-already-in-use",
                "The email address is already in use by another account",
            )
        self._check_strength(password)

        account = _Account(uid=uuid4().hex[:28], email=email.strip(), password=password)
        self._accounts[key] = account

        principal = self._issue(account)
        self._set_principal(principal)
        return principal

    async def sign_in(self, email: str, password: str) -> Principal:
        account = self._find(email)
        if account is None:
            raise BackendError("auth/user-not-found", "There is no user record for this email")
        if account.password != password:
            raise BackendError("auth/wrong-password", "The password is invalid")

        principal = self._issue(account)
        self._set_principal(principal)
        return principal

    async def sign_out(self) -> None:
        self._set_principal(None)

    async def send_email_verification(self, principal: Principal) -> None:
        account = self._find_by_uid(principal.uid)
        self.sent_emails.append(("verify_email", account.email))

    async def send_password_reset(self, email: str) -> None:
        account = self._find(email)
        if account is None:
            raise BackendError("auth/user-not-found", "There is no user record for this email")
        self.sent_emails.append(("password_reset", account.email))

    async def reauthenticate(self, principal: Principal, password: str) -> Principal:
        account = self._find_by_uid(principal.uid)
        if account.password != password:
            raise BackendError("auth/wrong-password", "The password is invalid")

        refreshed = self._issue(account)
        if self._principal is not None and self._principal.uid == refreshed.uid:
            self._set_principal(refreshed)
        return refreshed

    async def update_password(self, principal: Principal, new_password: str) -> Principal:
        account = self._find_by_uid(principal.uid)
        self._check_strength(new_password)
        account.password = new_password

        refreshed = self._issue(account)
        if self._principal is not None and self._principal.uid == refreshed.uid:
            self._set_principal(refreshed)
        return refreshed


@dataclass
class _Watch:
    collection: str
    principal: Principal
    callback: SnapshotCallback
    filters: Sequence[FieldFilter]
    order_by: Optional[OrderBy]
    last: Optional[list[dict[str, Any]]] = None


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Document store kept in nested dicts: collection -> id -> fields.

    The clock is strictly increasing, so documents written back to back
    still sort in write order.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_timestamp: Optional[datetime] = None
        self._watches: list[_Watch] = []

    def _now(self) -> datetime:
        now = self._clock()
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        resolved = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                resolved[key] = self._now()
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    def _docs(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _check_owner(self, doc: dict[str, Any], principal: Principal) -> None:
        if doc.get(OWNER_FIELD) != principal.uid:
            raise PermissionDeniedError()

    def _run_query(
        self,
        collection: str,
        principal: Principal,
        filters: Sequence[FieldFilter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
    ) -> list[dict[str, Any]]:
        # Queries must be scoped to the caller's own documents
        if FieldFilter(OWNER_FIELD, principal.uid) not in filters:
            raise PermissionDeniedError()

        results = [
            {"id": doc_id, **copy.deepcopy(fields)}
            for doc_id, fields in self._docs(collection).items()
            if all(fields.get(f.field) == f.value for f in filters)
        ]

        if order_by is not None:
            results = [doc for doc in results if doc.get(order_by.field) is not None]
            results.sort(key=lambda doc: doc[order_by.field], reverse=order_by.descending)

        if limit is not None:
            results = results[:limit]
        return results

    def _notify(self, collection: str) -> None:
        for watch in list(self._watches):
            if watch.collection != collection:
                continue
            snapshot = self._run_query(
                collection, watch.principal, watch.filters, watch.order_by, None
            )
            if snapshot != watch.last:
                watch.last = snapshot
                watch.callback(copy.deepcopy(snapshot))

    async def add_document(
        self,
        collection: str,
        data: dict[str, Any],
        principal: Principal,
    ) -> str:
        self._check_owner(data, principal)
        doc_id = new_document_id()
        self._docs(collection)[doc_id] = self._resolve(data)
        self._notify(collection)
        return doc_id

    async def get_document(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> Optional[dict[str, Any]]:
        doc = self._docs(collection).get(doc_id)
        if doc is None:
            return None
        self._check_owner(doc, principal)
        return {"id": doc_id, **copy.deepcopy(doc)}

    async def query_documents(
        self,
        collection: str,
        principal: Principal,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        return self._run_query(collection, principal, filters, order_by, limit)

    async def update_document(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        principal: Principal,
    ) -> None:
        doc = self._docs(collection).get(doc_id)
        if doc is None:
            raise NotFoundError(f"No document to update: {collection}/{doc_id}")
        self._check_owner(doc, principal)
        if OWNER_FIELD in updates and updates[OWNER_FIELD] != principal.uid:
            raise PermissionDeniedError()

        doc.update(self._resolve(updates))
        self._notify(collection)

    async def delete_document(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> None:
        docs = self._docs(collection)
        doc = docs.get(doc_id)
        if doc is None:
            return
        self._check_owner(doc, principal)
        del docs[doc_id]
        self._notify(collection)

    def watch_documents(
        self,
        collection: str,
        principal: Principal,
        callback: SnapshotCallback,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> Subscription:
        watch = _Watch(
            collection=collection,
            principal=principal,
            callback=callback,
            filters=list(filters),
            order_by=order_by,
        )
        watch.last = self._run_query(collection, principal, watch.filters, order_by, None)
        self._watches.append(watch)
        callback(copy.deepcopy(watch.last))

        def cancel() -> None:
            if watch in self._watches:
                self._watches.remove(watch)

        return Subscription(cancel)
