"""
Tests for the Auth/Data Gateway

All tests run against the in-memory backend. Async operations are
driven with asyncio.run so every test owns its event loop.
"""

import asyncio
from decimal import Decimal

import pytest

from budget_tracker.gateway import (
    AUTH_REQUIRED_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    NEW_PASSWORD_RULES_MESSAGE,
    VERIFY_EMAIL_MESSAGE,
    FinanceGateway,
    ReloadCoordinator,
    SessionContext,
    create_gateway,
    get_error_message,
)
from budget_tracker.models.transaction import TransactionType
from budget_tracker.ratelimit import (
    TOO_MANY_ATTEMPTS_MESSAGE,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    RateLimiter,
)
from budget_tracker.services.backend import (
    BackendError,
    InMemoryDocumentStore,
    InMemoryIdentityBackend,
    NotFoundError,
)
from budget_tracker.validation import PASSWORD_RULES_MESSAGE


EMAIL = "jane@example.com"
PASSWORD = "Passw0rd"


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that counts backend calls."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def add_document(self, *args, **kwargs):
        self.calls += 1
        return await super().add_document(*args, **kwargs)

    async def get_document(self, *args, **kwargs):
        self.calls += 1
        return await super().get_document(*args, **kwargs)

    async def query_documents(self, *args, **kwargs):
        self.calls += 1
        return await super().query_documents(*args, **kwargs)

    async def update_document(self, *args, **kwargs):
        self.calls += 1
        return await super().update_document(*args, **kwargs)

    async def delete_document(self, *args, **kwargs):
        self.calls += 1
        return await super().delete_document(*args, **kwargs)


class Hooks:
    """Collects what the gateway publishes to the page."""

    def __init__(self):
        self.loaded = []
        self.cleared = 0

    def on_loaded(self, data):
        self.loaded.append(data)

    def on_cleared(self):
        self.cleared += 1


@pytest.fixture
def identity():
    return InMemoryIdentityBackend()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def hooks():
    return Hooks()


@pytest.fixture
def gateway(identity, store, hooks):
    return FinanceGateway(
        identity,
        store,
        on_data_loaded=hooks.on_loaded,
        on_data_cleared=hooks.on_cleared,
        page_size=50,
    )


async def sign_in_verified(gateway, identity, email=EMAIL, password=PASSWORD):
    """Create, verify and sign in an account; wait for the first reload."""
    await gateway.sign_up(email, password)
    identity.verify_email(email)
    result = await gateway.sign_in(email, password)
    await gateway.wait_for_reload()
    return result


def expense(description="Coffee", amount="4.50", category="other"):
    return {
        "description": description,
        "amount": amount,
        "type": "expense",
        "category": category,
    }


class TestSignUp:

    def test_creates_account_and_signs_back_out(self, gateway, identity):
        result = asyncio.run(gateway.sign_up(EMAIL, PASSWORD))

        assert result.success is True
        assert result.message == (
            "Account created! Please check your email to verify your account."
        )
        assert result.user.email == EMAIL
        assert ("verify_email", EMAIL) in identity.sent_emails
        assert gateway.user is None
        assert identity.current_principal is None

    def test_rejects_invalid_email(self, gateway, identity):
        result = asyncio.run(gateway.sign_up("not-an-email", PASSWORD))
        assert result.success is False
        assert result.error == "Invalid email format"
        assert identity.sent_emails == []

    def test_rejects_weak_password(self, gateway):
        result = asyncio.run(gateway.sign_up(EMAIL, "weak"))
        assert result.success is False
        assert result.error == PASSWORD_RULES_MESSAGE

    def test_duplicate_email(self, gateway):
        async def scenario():
            await gateway.sign_up(EMAIL, PASSWORD)
            return await gateway.sign_up(EMAIL, PASSWORD)

        result = asyncio.run(scenario())
        assert result.success is False
        assert result.error == "This email is already registered"


class TestSignIn:

    def test_unverified_account_is_refused(self, gateway, identity, hooks):
        async def scenario():
            await gateway.sign_up(EMAIL, PASSWORD)
            result = await gateway.sign_in(EMAIL, PASSWORD)
            await gateway.wait_for_reload()
            return result

        result = asyncio.run(scenario())

        assert result.success is False
        assert result.needs_verification is True
        assert result.error == VERIFY_EMAIL_MESSAGE
        assert gateway.user is None
        assert identity.current_principal is None
        assert hooks.loaded == []

    def test_verified_account_signs_in_and_loads(self, gateway, identity, hooks):
        result = asyncio.run(sign_in_verified(gateway, identity))

        assert result.success is True
        assert result.user.email_verified is True
        assert gateway.user.uid == result.user.uid
        assert len(hooks.loaded) == 1
        assert hooks.loaded[0].transactions == []
        assert hooks.loaded[0].balance.balance == Decimal("0.00")

    def test_wrong_password(self, gateway, identity):
        async def scenario():
            await gateway.sign_up(EMAIL, PASSWORD)
            identity.verify_email(EMAIL)
            return await gateway.sign_in(EMAIL, "Wrong0Pass")

        result = asyncio.run(scenario())
        assert result.error == "Incorrect password"
        assert gateway.user is None

    def test_unknown_user(self, gateway):
        result = asyncio.run(gateway.sign_in("nobody@example.com", PASSWORD))
        assert result.error == "No account found with this email"

    def test_invalid_email_format(self, gateway):
        result = asyncio.run(gateway.sign_in("bad", PASSWORD))
        assert result.error == "Invalid email format"

    def test_rate_limited_after_five_attempts(self, identity, store):
        limiter = RateLimiter(InMemoryKeyValueStore(), max_attempts=5, window_ms=60_000)
        gateway = FinanceGateway(identity, store, rate_limiter=limiter, page_size=50)

        async def scenario():
            results = []
            for _ in range(6):
                results.append(await gateway.sign_in(EMAIL, "Wrong0Pass"))
            return results

        results = asyncio.run(scenario())
        assert [r.error for r in results[:5]] == ["No account found with this email"] * 5
        assert results[5].error == TOO_MANY_ATTEMPTS_MESSAGE

    @pytest.mark.parametrize("record", ["[NaN]", "[1e400]", '[true, "x", null]'])
    def test_unusable_rate_limit_record_is_ignored(self, identity, store, record):
        kv = InMemoryKeyValueStore()
        kv.set_item("rate_limit_sign_in", record)
        limiter = RateLimiter(kv, max_attempts=5, window_ms=60_000)
        gateway = FinanceGateway(identity, store, rate_limiter=limiter, page_size=50)

        result = asyncio.run(gateway.sign_in(EMAIL, PASSWORD))
        assert result.success is False
        assert result.error == "No account found with this email"

    def test_unwritable_rate_limit_file_does_not_raise(self, identity, store, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        limiter = RateLimiter(
            JsonFileKeyValueStore(blocker / "limits.json"), max_attempts=5, window_ms=60_000
        )
        gateway = FinanceGateway(identity, store, rate_limiter=limiter, page_size=50)

        async def scenario():
            await gateway.sign_up(EMAIL, PASSWORD)
            identity.verify_email(EMAIL)
            return await gateway.sign_in(EMAIL, PASSWORD)

        result = asyncio.run(scenario())
        assert result.success is True

    def test_broken_limiter_lets_attempt_through(self, identity, store):
        class BrokenStore(InMemoryKeyValueStore):
            def get_item(self, key):
                raise RuntimeError("store exploded")

        limiter = RateLimiter(BrokenStore(), max_attempts=5, window_ms=60_000)
        gateway = FinanceGateway(identity, store, rate_limiter=limiter, page_size=50)

        result = asyncio.run(gateway.reset_password(EMAIL))
        assert result.success is False
        assert result.error == "No account found with this email"


class TestSignOutAndPasswords:

    def test_sign_out_clears_principal_and_data(self, gateway, identity, hooks):
        async def scenario():
            await sign_in_verified(gateway, identity)
            return await gateway.sign_out()

        result = asyncio.run(scenario())
        assert result.success is True
        assert gateway.user is None
        assert hooks.cleared >= 1

    def test_reset_password(self, gateway, identity):
        async def scenario():
            await gateway.sign_up(EMAIL, PASSWORD)
            return await gateway.reset_password(EMAIL)

        result = asyncio.run(scenario())
        assert result.success is True
        assert result.message == "Password reset email sent! Check your inbox."
        assert ("password_reset", EMAIL) in identity.sent_emails

    def test_reset_password_unknown_email(self, gateway):
        result = asyncio.run(gateway.reset_password("nobody@example.com"))
        assert result.error == "No account found with this email"

    def test_change_password_requires_sign_in(self, gateway):
        result = asyncio.run(gateway.change_password(PASSWORD, "N3wPassword"))
        assert result.error == AUTH_REQUIRED_MESSAGE

    def test_change_password_wrong_current(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            return await gateway.change_password("Wrong0Pass", "N3wPassword")

        assert asyncio.run(scenario()).error == "Incorrect password"

    def test_change_password_weak_new(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            return await gateway.change_password(PASSWORD, "short")

        assert asyncio.run(scenario()).error == NEW_PASSWORD_RULES_MESSAGE

    def test_change_password(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            changed = await gateway.change_password(PASSWORD, "N3wPassword")
            await gateway.sign_out()
            signed_in = await gateway.sign_in(EMAIL, "N3wPassword")
            await gateway.wait_for_reload()
            return changed, signed_in

        changed, signed_in = asyncio.run(scenario())
        assert changed.message == "Password updated successfully!"
        assert signed_in.success is True


class TestTransactions:

    def test_requires_principal_without_network_call(self, gateway, store):
        async def scenario():
            return [
                await gateway.add_transaction(expense()),
                await gateway.get_transactions(),
                await gateway.update_transaction("tx1", {"amount": "5"}),
                await gateway.delete_transaction("tx1"),
                await gateway.add_category({"name": "car"}),
                await gateway.get_categories(),
            ]

        results = asyncio.run(scenario())
        assert all(r.error == AUTH_REQUIRED_MESSAGE for r in results)
        assert store.calls == 0

    def test_validation_failure_skips_backend(self, gateway, identity, store):
        async def scenario():
            await sign_in_verified(gateway, identity)
            calls_before = store.calls
            result = await gateway.add_transaction(expense(amount="-3"))
            return result, store.calls - calls_before

        result, calls = asyncio.run(scenario())
        assert result.error == "Amount must be a positive number"
        assert calls == 0

    def test_add_and_list(self, gateway, identity):
        async def scenario():
            signed_in = await sign_in_verified(gateway, identity)
            added = await gateway.add_transaction({
                "description": "  Paycheck  ",
                "amount": 1500,
                "type": TransactionType.INCOME,
                "category": "emergency",
                "userId": "someone-else",
            })
            listed = await gateway.get_transactions()
            return signed_in.user, added, listed

        user, added, listed = asyncio.run(scenario())
        assert added.success is True and added.id
        [transaction] = listed.transactions
        assert transaction.id == added.id
        assert transaction.user_id == user.uid
        assert transaction.description == "Paycheck"
        assert transaction.amount == Decimal("1500")
        assert transaction.type == TransactionType.INCOME
        assert transaction.created_at is not None

    def test_list_newest_first_with_limit(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            for i in range(5):
                await gateway.add_transaction(expense(description=f"item {i}"))
            return await gateway.get_transactions(limit=3)

        result = asyncio.run(scenario())
        assert [t.description for t in result.transactions] == ["item 4", "item 3", "item 2"]

    def test_explicit_zero_limit_is_honored(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            await gateway.add_transaction(expense())
            return await gateway.get_transactions(limit=0)

        result = asyncio.run(scenario())
        assert result.success is True
        assert result.transactions == []

    def test_update(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            added = await gateway.add_transaction(expense())
            updated = await gateway.update_transaction(added.id, {
                "amount": "9.99",
                "description": " Espresso ",
                "userId": "someone-else",
            })
            listed = await gateway.get_transactions()
            return updated, listed.transactions[0], gateway.user.uid

        updated, transaction, uid = asyncio.run(scenario())
        assert updated.success is True
        assert transaction.amount == Decimal("9.99")
        assert transaction.description == "Espresso"
        assert transaction.updated_at is not None
        assert transaction.user_id == uid

    @pytest.mark.parametrize("updates,error", [
        ({"amount": "0"}, "Amount must be a positive number"),
        ({"amount": "2000000"}, "Amount too large"),
        ({"type": "gift"}, "Type must be income or expense"),
        ({"description": "   "}, "Description is required"),
    ])
    def test_update_validation(self, gateway, identity, updates, error):
        async def scenario():
            await sign_in_verified(gateway, identity)
            added = await gateway.add_transaction(expense())
            return await gateway.update_transaction(added.id, updates)

        assert asyncio.run(scenario()).error == error

    def test_update_missing_record(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            return await gateway.update_transaction("missing", {"amount": "1"})

        assert asyncio.run(scenario()).error == "That record no longer exists"

    def test_delete(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            added = await gateway.add_transaction(expense())
            deleted = await gateway.delete_transaction(added.id)
            again = await gateway.delete_transaction(added.id)
            listed = await gateway.get_transactions()
            return deleted, again, listed

        deleted, again, listed = asyncio.run(scenario())
        assert deleted.success is True
        assert again.success is True
        assert listed.transactions == []


class TestOwnership:

    def test_cannot_change_another_users_records(self, store):
        owner_identity = InMemoryIdentityBackend()
        other_identity = InMemoryIdentityBackend()
        owner = FinanceGateway(owner_identity, store, page_size=50)
        other = FinanceGateway(other_identity, store, page_size=50)

        async def scenario():
            await sign_in_verified(owner, owner_identity)
            await sign_in_verified(other, other_identity, email="sam@example.com")
            added = await owner.add_transaction(expense())
            updated = await other.update_transaction(added.id, {"amount": "1"})
            deleted = await other.delete_transaction(added.id)
            others_view = await other.get_transactions()
            owners_view = await owner.get_transactions()
            return updated, deleted, others_view, owners_view

        updated, deleted, others_view, owners_view = asyncio.run(scenario())
        denied = "You do not have permission to perform this action"
        assert updated.error == denied
        assert deleted.error == denied
        assert others_view.transactions == []
        [transaction] = owners_view.transactions
        assert transaction.amount == Decimal("4.50")


class TestCategories:

    def test_add_and_list(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            await gateway.add_category({"name": "car", "goal": "5000"})
            await gateway.add_category({"name": "house", "goal": "abc"})
            await gateway.add_category({"name": "boat", "goal": -10})
            return await gateway.get_categories()

        result = asyncio.run(scenario())
        assert sorted(c.name for c in result.categories) == ["boat", "car", "house"]
        goals = {c.name: c.goal for c in result.categories}
        assert goals == {"car": Decimal("5000"), "house": Decimal("0"), "boat": Decimal("0")}

    def test_goals_reach_dashboard(self, gateway, identity):
        async def scenario():
            await sign_in_verified(gateway, identity)
            await gateway.add_category({"name": "Vacation", "goal": 1000})
            await gateway.add_transaction({
                "description": "Bonus",
                "amount": 250,
                "type": "income",
                "category": "vacation",
            })
            return await gateway.load_dashboard()

        dashboard = asyncio.run(scenario())
        assert dashboard.savings.category_totals["vacation"] == Decimal("250.00")
        assert dashboard.savings.progress("vacation") == Decimal("25.00")
        assert dashboard.balance.total_income == Decimal("250.00")


class TestSubscriptions:

    def test_none_when_signed_out(self, gateway):
        assert gateway.subscribe_to_transactions(lambda items: None) is None

    def test_receives_snapshots_until_unsubscribed(self, gateway, identity):
        snapshots = []

        async def scenario():
            await sign_in_verified(gateway, identity)
            subscription = gateway.subscribe_to_transactions(snapshots.append)
            await gateway.add_transaction(expense(description="first"))
            subscription.unsubscribe()
            await gateway.add_transaction(expense(description="second"))
            return subscription

        subscription = asyncio.run(scenario())
        assert subscription.active is False
        assert len(snapshots) == 2
        assert snapshots[0] == []
        assert [t.description for t in snapshots[1]] == ["first"]


class TestAuthState:

    def test_same_principal_does_not_reload_again(self, gateway, identity, hooks):
        async def scenario():
            await sign_in_verified(gateway, identity)
            current = identity.current_principal
            # Token refresh for the same user
            identity._set_principal(current.model_copy(update={"id_token": "fresh"}))
            await gateway.wait_for_reload()

        asyncio.run(scenario())
        assert len(hooks.loaded) == 1

    def test_no_event_loop_skips_reload(self, identity, store, hooks):
        async def prepare():
            await identity.create_user(EMAIL, PASSWORD)
            identity.verify_email(EMAIL)
            await identity.sign_in(EMAIL, PASSWORD)

        asyncio.run(prepare())
        gateway = FinanceGateway(identity, store, on_data_loaded=hooks.on_loaded, page_size=50)
        assert gateway.user is not None
        assert hooks.loaded == []

    def test_session_context_is_per_gateway(self, identity, store):
        session = SessionContext()
        gateway = FinanceGateway(identity, store, session=session, page_size=50)
        asyncio.run(sign_in_verified(gateway, identity))
        assert session.is_authenticated
        assert session.uid == gateway.user.uid

    def test_close_stops_listening(self, gateway, identity, hooks):
        async def scenario():
            await sign_in_verified(gateway, identity)
            # sign-up already signed the new account out once
            cleared_before = hooks.cleared
            gateway.close()
            await identity.sign_out()
            return cleared_before

        cleared_before = asyncio.run(scenario())
        assert gateway.user is not None
        assert hooks.cleared == cleared_before


class TestReloadCoordinator:

    def test_overlapping_requests_coalesce(self):
        async def scenario():
            calls = []
            published = []
            gate = asyncio.Event()

            async def loader():
                calls.append(len(calls) + 1)
                await gate.wait()
                return calls[-1]

            coordinator = ReloadCoordinator(loader, published.append)
            coordinator.request()
            await asyncio.sleep(0)
            coordinator.request()
            coordinator.request()
            gate.set()
            await coordinator.wait()
            return calls, published

        calls, published = asyncio.run(scenario())
        assert calls == [1, 2]
        assert published == [2]

    def test_invalidated_result_is_discarded(self):
        async def scenario():
            published = []
            gate = asyncio.Event()

            async def loader():
                await gate.wait()
                return "stale"

            coordinator = ReloadCoordinator(loader, published.append)
            coordinator.request()
            await asyncio.sleep(0)
            coordinator.invalidate()
            gate.set()
            await coordinator.wait()
            return published

        assert asyncio.run(scenario()) == []

    def test_request_without_loop(self):
        coordinator = ReloadCoordinator(lambda: None, lambda result: None)
        assert coordinator.request() is None
        assert coordinator.in_flight is False


class TestErrorMessages:

    def test_mapped_code(self):
        error = BackendError("auth/invalid-credential", "INVALID_LOGIN_CREDENTIALS")
        assert get_error_message(error) == "Incorrect email or password"

    def test_not_found(self):
        assert get_error_message(NotFoundError()) == "That record no longer exists"

    def test_unmapped_code_uses_raw_message(self):
        error = BackendError("resource-exhausted", "Quota exceeded")
        assert get_error_message(error) == "Quota exceeded"

    def test_empty_message_falls_back(self):
        assert get_error_message(RuntimeError()) == GENERIC_ERROR_MESSAGE


class TestCreateGateway:

    def test_falls_back_to_memory_without_firebase(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("FIREBASE_API_KEY", raising=False)
        monkeypatch.delenv("FIREBASE_PROJECT_ID", raising=False)

        gateway = create_gateway(rate_limiter=RateLimiter(InMemoryKeyValueStore()))
        assert isinstance(gateway.identity, InMemoryIdentityBackend)

    def test_offline_mode(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        gateway = create_gateway(use_backend=False)
        assert isinstance(gateway.identity, InMemoryIdentityBackend)
        assert gateway.user is None
