"""
Firebase Backend Implementation

DESIGN DECISION: Firebase is reached through its public REST APIs:
- Identity Toolkit for accounts (sign-up, sign-in, lookup, email
  actions, password update)
- Cloud Firestore for documents (commit, runQuery, get, delete)

Every request is made with the signed-in user's ID token, exactly as
the browser SDK does, so the project's security rules still decide
what each user may read and write. No service account is involved.

TRADEOFFS:
- No streaming listeners over REST; subscriptions poll instead
- No retries: a failed call is reported once and the user decides
- ID tokens expire after an hour; the user signs in again

The implementation follows the abstract interfaces, so the gateway
never sees HTTP.
"""

import asyncio
import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Sequence

import httpx
import structlog

from budget_tracker.config import FirebaseSettings, get_settings
from budget_tracker.models.results import Principal
from budget_tracker.services.backend.interface import (
    BackendConnectionError,
    BackendError,
    DocumentStoreInterface,
    FieldFilter,
    IdentityBackendInterface,
    NotFoundError,
    OrderBy,
    PermissionDeniedError,
    ServerTimestamp,
    SnapshotCallback,
    Subscription,
    new_document_id,
)


logger = structlog.get_logger(__name__)


# Identity Toolkit error reasons -> SDK-style codes
IDENTITY_ERROR_CODES = {
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "INVALID_EMAIL": "auth/invalid-email",
    "MISSING_EMAIL": "auth/invalid-email",
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "USER_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "MISSING_PASSWORD": "auth/missing-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "USER_DISABLED": "auth/user-disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "auth/requires-recent-login",
    "TOKEN_EXPIRED": "auth/user-token-expired",
    "INVALID_ID_TOKEN": "auth/invalid-user-token",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
}

_FRACTION_PATTERN = re.compile(r"^(?P<base>[^.]+)(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$")


# =============================================================================
# VALUE CODEC - Firestore typed values <-> Python
# =============================================================================

def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: str) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Firestore sends up to nanosecond precision; datetime keeps microseconds.
    """
    match = _FRACTION_PATTERN.match(text)
    if match is None:
        return datetime.fromisoformat(text)
    frac = (match.group("frac") or "")[:6]
    tz = match.group("tz")
    tz = "+00:00" if tz == "Z" else tz
    normalized = match.group("base") + (f".{frac.ljust(6, '0')}" if frac else "") + tz
    return datetime.fromisoformat(normalized)


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore Value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, Enum):
        return encode_value(value.value)
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, (float, Decimal)):
        return {"doubleValue": float(value)}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _format_timestamp(value)}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


def encode_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {key: encode_value(value) for key, value in data.items()}


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore Value to Python."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "referenceValue" in value:
        return value["referenceValue"]
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def decode_document(document: dict[str, Any]) -> dict[str, Any]:
    """Firestore Document -> {"id": ..., **fields}."""
    doc_id = document["name"].rsplit("/", 1)[-1]
    return {"id": doc_id, **decode_fields(document.get("fields", {}))}


# =============================================================================
# HTTP CLIENT
# =============================================================================

class FirebaseRestClient:
    """
    Thin async HTTP client for the Firebase REST APIs.

    Translates transport failures and error bodies into BackendError.
    """

    def __init__(
        self,
        settings: Optional[FirebaseSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().firebase
        self._http = http_client

    @property
    def settings(self) -> FirebaseSettings:
        return self._settings

    def _get_http(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._settings.request_timeout_seconds,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def identity_call(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST accounts:<endpoint> on the Identity Toolkit API."""
        url = f"{self._settings.identity_base_url}/accounts:{endpoint}"
        return await self._request(
            "POST",
            url,
            service="auth",
            params={"key": self._settings.api_key},
            json=payload,
        )

    async def firestore_call(
        self,
        method: str,
        path: str,
        principal: Principal,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Call the Firestore API as the given principal."""
        url = f"{self._settings.firestore_base_url}/{path}"
        headers = {}
        if principal.id_token:
            headers["Authorization"] = f"Bearer {principal.id_token}"
        return await self._request(
            method,
            url,
            service="firestore",
            headers=headers,
            json=json,
        )

    async def _request(
        self,
        method: str,
        url: str,
        service: str,
        params: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._get_http().request(
                method,
                url,
                params=params,
                headers=headers,
                json=json,
            )
        except httpx.TransportError as e:
            code = "auth/network-request-failed" if service == "auth" else "unavailable"
            logger.warning("backend_unreachable", service=service, error=str(e))
            raise BackendConnectionError(code, f"Could not reach {service} service: {e}") from e

        if response.is_error:
            error = self._error_from_response(service, response)
            logger.info(
                "backend_request_failed",
                service=service,
                status_code=response.status_code,
                code=error.code,
            )
            raise error

        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_from_response(service: str, response: httpx.Response) -> BackendError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if isinstance(body, list) and body:
            body = body[0]
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            error = {}

        if service == "auth":
            raw = str(error.get("message", ""))
            reason, _, detail = raw.partition(":")
            reason = reason.strip()
            code = IDENTITY_ERROR_CODES.get(reason)
            if code is None:
                code = f"auth/{reason.lower().replace('_', '-')}" if reason else "auth/internal-error"
            return BackendError(code, detail.strip() or raw or response.reason_phrase)

        message = str(error.get("message") or response.reason_phrase)
        if response.status_code == 404:
            return NotFoundError(message)
        if response.status_code == 403:
            return PermissionDeniedError(message)
        status = str(error.get("status") or "unknown")
        return BackendError(status.lower().replace("_", "-"), message)


# =============================================================================
# IDENTITY
# =============================================================================

class FirebaseIdentityBackend(IdentityBackendInterface):
    """
    Firebase Authentication over the Identity Toolkit REST API.

    Sign-out is local: the REST API has no session to end, so dropping
    the tokens is all the browser SDK does too.
    """

    def __init__(self, client: Optional[FirebaseRestClient] = None):
        super().__init__()
        self._client = client or FirebaseRestClient()

    @staticmethod
    def _principal_from(data: dict[str, Any], email_verified: bool) -> Principal:
        return Principal(
            uid=data["localId"],
            email=data.get("email"),
            email_verified=email_verified,
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )

    async def _lookup_email_verified(self, id_token: str) -> bool:
        data = await self._client.identity_call("lookup", {"idToken": id_token})
        users = data.get("users") or []
        return bool(users and users[0].get("emailVerified"))

    def _refresh_current(self, refreshed: Principal) -> None:
        if self._principal is not None and self._principal.uid == refreshed.uid:
            self._set_principal(refreshed)

    async def create_user(self, email: str, password: str) -> Principal:
        data = await self._client.identity_call(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        principal = self._principal_from(data, email_verified=False)
        self._set_principal(principal)
        return principal

    async def sign_in(self, email: str, password: str) -> Principal:
        data = await self._client.identity_call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        # signInWithPassword does not report verification status
        verified = await self._lookup_email_verified(data["idToken"])
        principal = self._principal_from(data, email_verified=verified)
        self._set_principal(principal)
        return principal

    async def sign_out(self) -> None:
        self._set_principal(None)

    async def send_email_verification(self, principal: Principal) -> None:
        await self._client.identity_call(
            "sendOobCode",
            {"requestType": "VERIFY_EMAIL", "idToken": principal.id_token},
        )

    async def send_password_reset(self, email: str) -> None:
        await self._client.identity_call(
            "sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email},
        )

    async def reauthenticate(self, principal: Principal, password: str) -> Principal:
        data = await self._client.identity_call(
            "signInWithPassword",
            {"email": principal.email, "password": password, "returnSecureToken": True},
        )
        if data.get("localId") != principal.uid:
            raise BackendError(
                "auth/user-mismatch",
                "The supplied credentials do not correspond to the signed-in user",
            )
        refreshed = principal.model_copy(update={
            "id_token": data.get("idToken"),
            "refresh_token": data.get("refreshToken"),
        })
        self._refresh_current(refreshed)
        return refreshed

    async def update_password(self, principal: Principal, new_password: str) -> Principal:
        data = await self._client.identity_call(
            "update",
            {
                "idToken": principal.id_token,
                "password": new_password,
                "returnSecureToken": True,
            },
        )
        refreshed = principal.model_copy(update={
            "id_token": data.get("idToken", principal.id_token),
            "refresh_token": data.get("refreshToken", principal.refresh_token),
        })
        self._refresh_current(refreshed)
        return refreshed


# =============================================================================
# DOCUMENTS
# =============================================================================

class FirestoreDocumentStore(DocumentStoreInterface):
    """
    Cloud Firestore over the REST API.

    Writes go through documents:commit so server timestamps can be
    applied as REQUEST_TIME transforms in the same write.
    """

    def __init__(
        self,
        client: Optional[FirebaseRestClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or FirebaseRestClient()
        self._poll_interval = (
            poll_interval_seconds or get_settings().app.subscription_poll_seconds
        )

    @property
    def _root(self) -> str:
        return self._client.settings.documents_root

    def _doc_name(self, collection: str, doc_id: str) -> str:
        return f"{self._root}/{collection}/{doc_id}"

    @staticmethod
    def _split_transforms(data: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
        fields = {}
        transforms = []
        for key, value in data.items():
            if isinstance(value, ServerTimestamp):
                transforms.append(key)
            else:
                fields[key] = value
        return fields, transforms

    def _write(
        self,
        name: str,
        data: dict[str, Any],
        exists: bool,
        with_mask: bool,
    ) -> dict[str, Any]:
        fields, transforms = self._split_transforms(data)
        write: dict[str, Any] = {
            "update": {"name": name, "fields": encode_fields(fields)},
            "currentDocument": {"exists": exists},
        }
        if with_mask:
            write["updateMask"] = {"fieldPaths": list(fields)}
        if transforms:
            write["updateTransforms"] = [
                {"fieldPath": path, "setToServerValue": "REQUEST_TIME"}
                for path in transforms
            ]
        return write

    async def _commit(self, writes: list[dict[str, Any]], principal: Principal) -> None:
        await self._client.firestore_call(
            "POST",
            f"{self._root}:commit",
            principal,
            json={"writes": writes},
        )

    @staticmethod
    def _structured_query(
        collection: str,
        filters: Sequence[FieldFilter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
    ) -> dict[str, Any]:
        query: dict[str, Any] = {"from": [{"collectionId": collection}]}

        field_filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": f.field},
                    "op": "EQUAL",
                    "value": encode_value(f.value),
                }
            }
            for f in filters
        ]
        if len(field_filters) == 1:
            query["where"] = field_filters[0]
        elif field_filters:
            query["where"] = {
                "compositeFilter": {"op": "AND", "filters": field_filters}
            }

        if order_by is not None:
            query["orderBy"] = [{
                "field": {"fieldPath": order_by.field},
                "direction": "DESCENDING" if order_by.descending else "ASCENDING",
            }]

        if limit is not None:
            query["limit"] = limit
        return query

    async def add_document(
        self,
        collection: str,
        data: dict[str, Any],
        principal: Principal,
    ) -> str:
        doc_id = new_document_id()
        write = self._write(
            self._doc_name(collection, doc_id), data, exists=False, with_mask=False
        )
        await self._commit([write], principal)
        return doc_id

    async def get_document(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> Optional[dict[str, Any]]:
        try:
            document = await self._client.firestore_call(
                "GET", self._doc_name(collection, doc_id), principal
            )
        except NotFoundError:
            return None
        return decode_document(document)

    async def query_documents(
        self,
        collection: str,
        principal: Principal,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        rows = await self._client.firestore_call(
            "POST",
            f"{self._root}:runQuery",
            principal,
            json={"structuredQuery": self._structured_query(collection, filters, order_by, limit)},
        )
        # runQuery returns one row per result, plus bare readTime rows
        return [decode_document(row["document"]) for row in rows if "document" in row]

    async def update_document(
        self,
        collection: str,
        doc_id: str,
        updates: dict[str, Any],
        principal: Principal,
    ) -> None:
        write = self._write(
            self._doc_name(collection, doc_id), updates, exists=True, with_mask=True
        )
        await self._commit([write], principal)

    async def delete_document(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> None:
        await self._client.firestore_call(
            "DELETE", self._doc_name(collection, doc_id), principal
        )

    def watch_documents(
        self,
        collection: str,
        principal: Principal,
        callback: SnapshotCallback,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[OrderBy] = None,
    ) -> Subscription:
        """
        Poll the query and report changed result sets.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()

        async def poll() -> None:
            last: Optional[list[dict[str, Any]]] = None
            while True:
                try:
                    snapshot = await self.query_documents(
                        collection, principal, filters, order_by
                    )
                except BackendError as e:
                    logger.warning(
                        "watch_poll_failed",
                        collection=collection,
                        code=e.code,
                        error=e.message,
                    )
                else:
                    if snapshot != last:
                        last = snapshot
                        try:
                            callback(snapshot)
                        except Exception:
                            logger.exception("watch_callback_failed", collection=collection)
                await asyncio.sleep(self._poll_interval)

        task = loop.create_task(poll())
        return Subscription(task.cancel)
