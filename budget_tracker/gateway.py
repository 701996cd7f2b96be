"""
Auth/Data Gateway for Budget Tracker

This module ties the backend services together and defines every
operation the page can ask for:
1. Identity (sign-up, sign-in, sign-out, password reset/change)
2. Transactions (add, list, update, delete, subscribe)
3. Categories (add, list)

DESIGN DECISION: The gateway enforces the boundaries:
- Input is validated before any network call
- Nothing touches the store without a signed-in principal
- Ownership is checked before a record is changed or removed
- Every operation returns an OperationResult; nothing raises
- Every step is audited

The current principal lives in a SessionContext owned by the gateway,
not in a module global, so each browser session gets its own.
"""

import asyncio
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from budget_tracker.aggregation import (
    calculate_category_savings,
    goals_from_categories,
    update_balance,
)
from budget_tracker.audit import AuditLogger
from budget_tracker.config import get_settings
from budget_tracker.models.audit import AuditEventBuilder
from budget_tracker.models.results import OperationResult, Principal
from budget_tracker.models.transaction import (
    Category,
    DashboardData,
    Transaction,
)
from budget_tracker.ratelimit import JsonFileKeyValueStore, RateLimiter
from budget_tracker.services.backend import (
    SERVER_TIMESTAMP,
    BackendError,
    DocumentStoreInterface,
    FieldFilter,
    FirebaseIdentityBackend,
    FirebaseRestClient,
    FirestoreDocumentStore,
    IdentityBackendInterface,
    InMemoryDocumentStore,
    InMemoryIdentityBackend,
    OrderBy,
    Subscription,
)
from budget_tracker.validation import (
    PASSWORD_RULES_MESSAGE,
    is_valid_email,
    is_valid_password,
    is_valid_transaction_type,
    parse_amount,
    sanitize_input,
    validate_amount,
    validate_transaction,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")
RecordT = TypeVar("RecordT", bound=BaseModel)


# Backend codes -> what we tell the user
ERROR_MESSAGES = {
    "auth/email-already-in-use": "This email is already registered",
    "auth/weak-password": "Password is too weak",
    "auth/invalid-email": "Invalid email address",
    "auth/user-not-found": "No account found with this email",
    "auth/wrong-password": "Incorrect password",
    "auth/invalid-credential": "Incorrect email or password",
    "auth/user-disabled": "This account has been disabled",
    "auth/requires-recent-login": "Please sign in again to continue",
    "auth/too-many-requests": "Too many failed attempts. Please try again later",
    "auth/network-request-failed": "Network error. Please check your connection",
    "unavailable": "Network error. Please check your connection",
    "permission-denied": "You do not have permission to perform this action",
    "not-found": "That record no longer exists",
}

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"
AUTH_REQUIRED_MESSAGE = "User not authenticated"
INVALID_EMAIL_MESSAGE = "Invalid email format"
VERIFY_EMAIL_MESSAGE = (
    "Please verify your email before signing in. "
    "Check your inbox for a verification link."
)
NEW_PASSWORD_RULES_MESSAGE = (
    "New password must be at least 8 characters with uppercase, lowercase, and number"
)

OWNER_FIELD = "userId"
CREATED_FIELD = "createdAt"

# Never taken from caller-supplied updates
PROTECTED_FIELDS = ("id", "userId", "user_id", "createdAt", "created_at")


def get_error_message(error: Exception) -> str:
    """Friendly text for a backend error, falling back to its own message."""
    code = getattr(error, "code", None)
    if code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]
    message = getattr(error, "message", None) or str(error)
    return message or GENERIC_ERROR_MESSAGE


class SessionContext:
    """The principal signed in for one browser session."""

    def __init__(self, principal: Optional[Principal] = None):
        self.principal = principal

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def uid(self) -> Optional[str]:
        return self.principal.uid if self.principal else None


class ReloadCoordinator:
    """
    Single-flight runner for automatic data reloads.

    Every request bumps a generation token. At most one reload runs at a
    time; requests that arrive while one is running are folded into a
    single follow-up run. A result is published only if no request or
    invalidation happened while it was loading, so a sign-out in the
    middle of a reload can never repaint stale data.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[T]],
        on_result: Callable[[T], None],
    ):
        self._loader = loader
        self._on_result = on_result
        self._generation = 0
        self._rerun = False
        self._task: Optional[asyncio.Task] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(self) -> Optional[asyncio.Task]:
        """
        Ask for a reload.

        Returns the task doing the work, or None when there is no running
        event loop to schedule it on.
        """
        self._generation += 1
        if self.in_flight:
            self._rerun = True
            return self._task

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("reload_skipped_no_event_loop")
            return None

        self._rerun = False
        self._task = loop.create_task(self._run())
        return self._task

    def invalidate(self) -> None:
        """Drop whatever is loading now and any queued follow-up."""
        self._generation += 1
        self._rerun = False

    async def wait(self) -> None:
        """Wait for the in-flight reload, if any, to finish."""
        if self.in_flight:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        while True:
            token = self._generation
            result = await self._loader()

            if token == self._generation:
                self._on_result(result)
                return

            if not self._rerun:
                logger.debug("reload_result_discarded", token=token)
                return
            self._rerun = False


class FinanceGateway:
    """
    Wraps the identity service and document store for the page.

    Flow for a data operation:
    1. Check a principal is signed in (no network call otherwise)
    2. Validate and sanitize input
    3. Call the store as that principal
    4. Audit and return an OperationResult

    Auth-state changes from the identity service are watched from
    construction on: signing out clears the page via on_data_cleared,
    signing in with a verified account triggers a reload that ends in
    on_data_loaded.
    """

    def __init__(
        self,
        identity: IdentityBackendInterface,
        store: DocumentStoreInterface,
        session: Optional[SessionContext] = None,
        audit_logger: Optional[AuditLogger] = None,
        rate_limiter: Optional[RateLimiter] = None,
        on_data_loaded: Optional[Callable[[DashboardData], None]] = None,
        on_data_cleared: Optional[Callable[[], None]] = None,
        transactions_collection: str = "transactions",
        categories_collection: str = "categories",
        page_size: Optional[int] = None,
    ):
        self._identity = identity
        self._store = store
        self._session = session or SessionContext()
        self._audit = audit_logger or AuditLogger()
        self._rate_limiter = rate_limiter
        self._on_data_loaded = on_data_loaded
        self._on_data_cleared = on_data_cleared
        self._transactions = transactions_collection
        self._categories = categories_collection
        self._page_size = page_size or get_settings().app.transactions_page_size

        self._reloads = ReloadCoordinator(self.load_dashboard, self._publish)
        self._remove_auth_listener = identity.on_auth_state_changed(
            self._handle_auth_state
        )

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def user(self) -> Optional[Principal]:
        return self._session.principal

    @property
    def identity(self) -> IdentityBackendInterface:
        return self._identity

    def close(self) -> None:
        """Stop listening to auth-state changes."""
        self._remove_auth_listener()

    # -------------------------------------------------------------------------
    # Auth-state handling
    # -------------------------------------------------------------------------

    def _handle_auth_state(self, principal: Optional[Principal]) -> None:
        previous = self._session.principal

        if principal is None:
            if previous is None:
                return
            logger.info("auth_state_signed_out", uid=previous.uid)
            self._session.principal = None
            self._reloads.invalidate()
            if self._on_data_cleared:
                self._on_data_cleared()
            return

        if principal.same_identity(previous):
            # Same user, maybe fresh tokens
            self._session.principal = principal
            return

        logger.info(
            "auth_state_signed_in",
            uid=principal.uid,
            email_verified=principal.email_verified,
        )
        self._session.principal = principal
        if principal.email_verified:
            self._reloads.request()

    def request_reload(self) -> Optional[asyncio.Task]:
        """Schedule a dashboard reload through the single-flight guard."""
        return self._reloads.request()

    async def wait_for_reload(self) -> None:
        await self._reloads.wait()

    def _publish(self, data: Optional[DashboardData]) -> None:
        if data is not None and self._on_data_loaded:
            self._on_data_loaded(data)

    async def load_dashboard(self) -> Optional[DashboardData]:
        """
        Fetch transactions and categories and aggregate them.

        Returns None if the transactions could not be loaded.
        """
        transactions_result = await self.get_transactions()
        if not transactions_result.success:
            logger.warning("dashboard_load_failed", error=transactions_result.error)
            return None

        transactions = transactions_result.transactions or []
        categories_result = await self.get_categories()
        goals = (
            goals_from_categories(categories_result.categories or [])
            if categories_result.success
            else {}
        )

        principal = self._session.principal
        if principal is not None:
            await self._audit.log(
                AuditEventBuilder.data_reloaded(principal.uid, len(transactions))
            )

        return DashboardData(
            transactions=transactions,
            balance=update_balance(transactions),
            savings=calculate_category_savings(transactions, goals),
        )

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    async def _require_principal(self, action: str) -> Optional[Principal]:
        principal = self._session.principal
        if principal is None:
            await self._audit.log(AuditEventBuilder.auth_required(action))
        return principal

    async def _throttle(self, action: str) -> Optional[OperationResult]:
        if self._rate_limiter is None:
            return None
        try:
            decision = self._rate_limiter.rate_limit(action)
        except Exception:
            # Advisory only: a broken limiter never blocks the action
            logger.exception("rate_limit_check_failed", action=action)
            return None
        if decision.allowed:
            return None
        await self._audit.log(AuditEventBuilder.rate_limited(action, decision.attempts))
        return OperationResult.fail(decision.error)

    async def _rejected(
        self,
        action: str,
        reason: str,
        principal: Optional[Principal] = None,
    ) -> OperationResult:
        uid = principal.uid if principal else None
        await self._audit.log(AuditEventBuilder.validation_failed(action, reason, uid))
        return OperationResult.fail(reason)

    async def _backend_failure(
        self,
        action: str,
        error: BackendError,
        principal: Optional[Principal] = None,
    ) -> OperationResult:
        logger.error(
            "gateway_backend_error",
            action=action,
            code=error.code,
            error=error.message,
        )
        if error.code.startswith("auth/"):
            await self._audit.log(
                AuditEventBuilder.auth_failed(action, error.code, error.message)
            )
        else:
            await self._audit.log_backend_error("firestore", error, principal)
        return OperationResult.fail(get_error_message(error))

    async def _unexpected_failure(self, action: str, error: Exception) -> OperationResult:
        logger.exception("gateway_unexpected_error", action=action)
        await self._audit.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={"action": action},
        )
        return OperationResult.fail(get_error_message(error))

    @staticmethod
    def _parse_records(
        documents: list[dict[str, Any]],
        model: type[RecordT],
    ) -> list[RecordT]:
        """Build models from documents, skipping any that are malformed."""
        records = []
        for document in documents:
            try:
                records.append(model.model_validate(document))
            except ValidationError as e:
                logger.warning(
                    "malformed_document_skipped",
                    model=model.__name__,
                    doc_id=document.get("id"),
                    errors=e.error_count(),
                )
        return records

    def _owned_query(self, principal: Principal) -> list[FieldFilter]:
        return [FieldFilter(OWNER_FIELD, principal.uid)]

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def sign_up(self, email: str, password: str) -> OperationResult:
        """
        Create an account and send the verification email.

        The new account is signed straight back out: nothing is
        authorized until the email is verified and the user signs in.
        """
        if not is_valid_email(email):
            return await self._rejected("sign_up", INVALID_EMAIL_MESSAGE)
        if not is_valid_password(password):
            return await self._rejected("sign_up", PASSWORD_RULES_MESSAGE)

        denied = await self._throttle("sign_up")
        if denied:
            return denied

        try:
            principal = await self._identity.create_user(email, password)
            await self._identity.send_email_verification(principal)
            await self._identity.sign_out()
        except BackendError as e:
            return await self._backend_failure("sign_up", e)
        except Exception as e:
            return await self._unexpected_failure("sign_up", e)

        self._session.principal = None
        await self._audit.log(AuditEventBuilder.user_signed_up(principal.uid, email))

        return OperationResult.ok(
            user=principal,
            message="Account created! Please check your email to verify your account.",
        )

    async def sign_in(self, email: str, password: str) -> OperationResult:
        """
        Sign in with email and password.

        An unverified account is signed back out at once and reported
        with needs_verification set.
        """
        if not is_valid_email(email):
            return await self._rejected("sign_in", INVALID_EMAIL_MESSAGE)

        denied = await self._throttle("sign_in")
        if denied:
            return denied

        try:
            principal = await self._identity.sign_in(email, password)
            if not principal.email_verified:
                await self._identity.sign_out()
        except BackendError as e:
            return await self._backend_failure("sign_in", e)
        except Exception as e:
            return await self._unexpected_failure("sign_in", e)

        if not principal.email_verified:
            self._session.principal = None
            await self._audit.log(
                AuditEventBuilder.sign_in_blocked_unverified(principal.uid)
            )
            return OperationResult.fail(VERIFY_EMAIL_MESSAGE, needs_verification=True)

        self._session.principal = principal
        await self._audit.log(AuditEventBuilder.user_signed_in(principal.uid), principal)
        return OperationResult.ok(user=principal)

    async def sign_out(self) -> OperationResult:
        uid = self._session.uid
        try:
            await self._identity.sign_out()
        except BackendError as e:
            logger.error("sign_out_failed", code=e.code, error=e.message)
            return OperationResult.fail(e.message)
        except Exception as e:
            return await self._unexpected_failure("sign_out", e)

        self._session.principal = None
        await self._audit.log(AuditEventBuilder.user_signed_out(uid))
        return OperationResult.ok()

    async def reset_password(self, email: str) -> OperationResult:
        if not is_valid_email(email):
            return await self._rejected("reset_password", INVALID_EMAIL_MESSAGE)

        denied = await self._throttle("reset_password")
        if denied:
            return denied

        try:
            await self._identity.send_password_reset(email)
        except BackendError as e:
            return await self._backend_failure("reset_password", e)
        except Exception as e:
            return await self._unexpected_failure("reset_password", e)

        await self._audit.log(AuditEventBuilder.password_reset_requested(email))
        return OperationResult.ok(message="Password reset email sent! Check your inbox.")

    async def change_password(
        self,
        current_password: str,
        new_password: str,
    ) -> OperationResult:
        """Re-authenticate with the current password, then set the new one."""
        principal = await self._require_principal("change_password")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        if not is_valid_password(new_password):
            return await self._rejected("change_password", NEW_PASSWORD_RULES_MESSAGE, principal)

        try:
            principal = await self._identity.reauthenticate(principal, current_password)
            principal = await self._identity.update_password(principal, new_password)
        except BackendError as e:
            return await self._backend_failure("change_password", e, principal)
        except Exception as e:
            return await self._unexpected_failure("change_password", e)

        self._session.principal = principal
        await self._audit.log(AuditEventBuilder.password_changed(principal.uid), principal)
        return OperationResult.ok(message="Password updated successfully!")

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(self, transaction: Mapping[str, Any]) -> OperationResult:
        """
        Validate and store a new transaction for the signed-in user.

        Only description, amount, type and category are taken from the
        input; the owner and the server timestamp are added here.
        """
        principal = await self._require_principal("add_transaction")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        validation = validate_transaction(transaction)
        if not validation.valid:
            return await self._rejected("add_transaction", validation.error, principal)

        transaction_type = transaction["type"]
        data = {
            "description": sanitize_input(transaction["description"]),
            "amount": float(parse_amount(transaction["amount"])),
            "type": getattr(transaction_type, "value", transaction_type),
            "category": sanitize_input(transaction["category"]),
            OWNER_FIELD: principal.uid,
            CREATED_FIELD: SERVER_TIMESTAMP,
        }

        try:
            doc_id = await self._store.add_document(self._transactions, data, principal)
        except BackendError as e:
            return await self._backend_failure("add_transaction", e, principal)
        except Exception as e:
            return await self._unexpected_failure("add_transaction", e)

        await self._audit.log(
            AuditEventBuilder.transaction_added(
                doc_id,
                principal.uid,
                data["type"],
                f"{data['amount']:.2f}",
                data["category"],
            ),
            principal,
        )
        return OperationResult.ok(id=doc_id)

    async def get_transactions(self, limit: Optional[int] = None) -> OperationResult:
        """The signed-in user's transactions, newest first, at most limit."""
        principal = await self._require_principal("get_transactions")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        try:
            documents = await self._store.query_documents(
                self._transactions,
                principal,
                filters=self._owned_query(principal),
                order_by=OrderBy(CREATED_FIELD, descending=True),
                limit=limit if limit is not None else self._page_size,
            )
        except BackendError as e:
            return await self._backend_failure("get_transactions", e, principal)
        except Exception as e:
            return await self._unexpected_failure("get_transactions", e)

        return OperationResult.ok(transactions=self._parse_records(documents, Transaction))

    async def _check_ownership(
        self,
        collection: str,
        doc_id: str,
        principal: Principal,
    ) -> Optional[str]:
        """
        Read the document and check it belongs to principal.

        Returns None if it may be changed, "not-found" or
        "permission-denied" otherwise.
        """
        existing = await self._store.get_document(collection, doc_id, principal)
        if existing is None:
            return "not-found"
        if existing.get(OWNER_FIELD) != principal.uid:
            return "permission-denied"
        return None

    async def update_transaction(
        self,
        transaction_id: str,
        updates: Mapping[str, Any],
    ) -> OperationResult:
        """
        Change fields of one of the signed-in user's transactions.

        Amount and type are validated if present; text is sanitized.
        Owner and creation time cannot be changed.
        """
        principal = await self._require_principal("update_transaction")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        changes = {k: v for k, v in updates.items() if k not in PROTECTED_FIELDS}

        if "amount" in changes:
            check = validate_amount(changes["amount"])
            if not check.valid:
                return await self._rejected("update_transaction", check.error, principal)
            changes["amount"] = float(parse_amount(changes["amount"]))

        if "type" in changes:
            if not is_valid_transaction_type(changes["type"]):
                return await self._rejected(
                    "update_transaction", "Type must be income or expense", principal
                )
            changes["type"] = getattr(changes["type"], "value", changes["type"])

        for field, label in (("description", "Description"), ("category", "Category")):
            if field not in changes:
                continue
            value = sanitize_input(changes[field])
            if not isinstance(value, str) or not value:
                return await self._rejected(
                    "update_transaction", f"{label} is required", principal
                )
            changes[field] = value

        changes["updatedAt"] = SERVER_TIMESTAMP

        try:
            refusal = await self._check_ownership(self._transactions, transaction_id, principal)
            if refusal is not None:
                return OperationResult.fail(ERROR_MESSAGES[refusal])
            await self._store.update_document(
                self._transactions, transaction_id, changes, principal
            )
        except BackendError as e:
            return await self._backend_failure("update_transaction", e, principal)
        except Exception as e:
            return await self._unexpected_failure("update_transaction", e)

        await self._audit.log(
            AuditEventBuilder.transaction_updated(
                transaction_id,
                principal.uid,
                sorted(k for k in changes if k != "updatedAt"),
            ),
            principal,
        )
        return OperationResult.ok(id=transaction_id)

    async def delete_transaction(self, transaction_id: str) -> OperationResult:
        """
        Remove one of the signed-in user's transactions.

        Deleting a transaction that is already gone succeeds.
        """
        principal = await self._require_principal("delete_transaction")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        try:
            refusal = await self._check_ownership(self._transactions, transaction_id, principal)
            if refusal == "permission-denied":
                return OperationResult.fail(ERROR_MESSAGES[refusal])
            if refusal is None:
                await self._store.delete_document(
                    self._transactions, transaction_id, principal
                )
        except BackendError as e:
            return await self._backend_failure("delete_transaction", e, principal)
        except Exception as e:
            return await self._unexpected_failure("delete_transaction", e)

        await self._audit.log(
            AuditEventBuilder.transaction_deleted(transaction_id, principal.uid),
            principal,
        )
        return OperationResult.ok(id=transaction_id)

    def subscribe_to_transactions(
        self,
        callback: Callable[[list[Transaction]], None],
    ) -> Optional[Subscription]:
        """
        Follow the signed-in user's transactions as they change.

        callback gets the full list, newest first, on every change.
        Returns None when nobody is signed in.
        """
        principal = self._session.principal
        if principal is None:
            return None

        def on_snapshot(documents: list[dict[str, Any]]) -> None:
            callback(self._parse_records(documents, Transaction))

        return self._store.watch_documents(
            self._transactions,
            principal,
            on_snapshot,
            filters=self._owned_query(principal),
            order_by=OrderBy(CREATED_FIELD, descending=True),
        )

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def add_category(self, category: Mapping[str, Any]) -> OperationResult:
        principal = await self._require_principal("add_category")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        goal = parse_amount(category.get("goal"))
        data = {
            "name": sanitize_input(category.get("name")),
            "goal": float(goal) if goal is not None and goal > 0 else 0.0,
            OWNER_FIELD: principal.uid,
            CREATED_FIELD: datetime.now(timezone.utc),
        }

        try:
            doc_id = await self._store.add_document(self._categories, data, principal)
        except BackendError as e:
            return await self._backend_failure("add_category", e, principal)
        except Exception as e:
            return await self._unexpected_failure("add_category", e)

        await self._audit.log(
            AuditEventBuilder.category_added(doc_id, principal.uid, str(data["name"])),
            principal,
        )
        return OperationResult.ok(id=doc_id)

    async def get_categories(self) -> OperationResult:
        principal = await self._require_principal("get_categories")
        if principal is None:
            return OperationResult.fail(AUTH_REQUIRED_MESSAGE)

        try:
            documents = await self._store.query_documents(
                self._categories,
                principal,
                filters=self._owned_query(principal),
                order_by=OrderBy(CREATED_FIELD, descending=True),
            )
        except BackendError as e:
            return await self._backend_failure("get_categories", e, principal)
        except Exception as e:
            return await self._unexpected_failure("get_categories", e)

        return OperationResult.ok(categories=self._parse_records(documents, Category))


def create_gateway(
    use_backend: bool = True,
    session: Optional[SessionContext] = None,
    rate_limiter: Optional[RateLimiter] = None,
    on_data_loaded: Optional[Callable[[DashboardData], None]] = None,
    on_data_cleared: Optional[Callable[[], None]] = None,
) -> FinanceGateway:
    """
    Factory function to create a gateway with its backend.

    Args:
        use_backend: Whether to connect to Firebase. Set to False for
                    offline demo mode. Also falls back to the in-memory
                    backend when Firebase settings are missing.
        session: Session context to use (a new one if None)
        rate_limiter: Throttle for auth actions (file-backed if None)
        on_data_loaded: Called with fresh dashboard data after sign-in
        on_data_cleared: Called when the user signs out

    Returns:
        A ready FinanceGateway
    """
    settings = get_settings()
    app_settings = settings.app

    identity: Optional[IdentityBackendInterface] = None
    store: Optional[DocumentStoreInterface] = None
    collections = {}
    audit_collection = "auditEvents"

    if use_backend:
        try:
            firebase = settings.firebase
        except ValidationError as e:
            # Firebase not configured - continue with the in-memory backend
            logger.warning("firebase_not_configured", error=str(e))
        else:
            client = FirebaseRestClient(firebase)
            identity = FirebaseIdentityBackend(client)
            store = FirestoreDocumentStore(client, app_settings.subscription_poll_seconds)
            collections = {
                "transactions_collection": firebase.transactions_collection,
                "categories_collection": firebase.categories_collection,
            }
            audit_collection = firebase.audit_collection

    if identity is None or store is None:
        logger.info("using_in_memory_backend")
        identity = InMemoryIdentityBackend()
        store = InMemoryDocumentStore()

    if rate_limiter is None:
        rate_limiter = RateLimiter(JsonFileKeyValueStore(app_settings.rate_limit_store_path))

    audit_logger = AuditLogger(
        store if app_settings.persist_audit_events else None,
        collection=audit_collection,
    )

    return FinanceGateway(
        identity=identity,
        store=store,
        session=session,
        audit_logger=audit_logger,
        rate_limiter=rate_limiter,
        on_data_loaded=on_data_loaded,
        on_data_cleared=on_data_cleared,
        page_size=app_settings.transactions_page_size,
        **collections,
    )
