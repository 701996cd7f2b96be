"""Tests for input validation."""

import pytest
from decimal import Decimal

from budget_tracker.models.transaction import TransactionType
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


def valid_transaction(**overrides):
    transaction = {
        "description": "Groceries",
        "amount": "42.50",
        "type": "expense",
        "category": "other",
    }
    transaction.update(overrides)
    return transaction


class TestEmailValidation:

    @pytest.mark.parametrize("email", [
        "user@example.com",
        "first.last+tag@sub.domain.org",
        "a@b.co",
    ])
    def test_accepts_valid_emails(self, email):
        assert is_valid_email(email) is True

    @pytest.mark.parametrize("email", [
        "",
        "plainaddress",
        "no-at-sign.com",
        "user@nodot",
        "two words@example.com",
        "user@@example.com",
        None,
    ])
    def test_rejects_invalid_emails(self, email):
        assert is_valid_email(email) is False


class TestPasswordValidation:

    def test_accepts_strong_password(self):
        assert is_valid_password("Passw0rd") is True
        assert is_valid_password("Str0ng!Pass") is True

    @pytest.mark.parametrize("password", [
        "Short1",        # too short
        "alllower1",     # no uppercase
        "ALLUPPER1",     # no lowercase
        "NoDigitsHere",  # no digit
        "Has Space1a",   # character outside the allowed set
        "Pässw0rdX",     # non-ASCII letter
        "",
        None,
    ])
    def test_rejects_weak_passwords(self, password):
        assert is_valid_password(password) is False

    def test_rules_message(self):
        assert "8 characters" in PASSWORD_RULES_MESSAGE


class TestAmountValidation:

    def test_parse_amount_variants(self):
        assert parse_amount("12.34") == Decimal("12.34")
        assert parse_amount(" 7 ") == Decimal("7")
        assert parse_amount(0.1) == Decimal("0.1")
        assert parse_amount(3) == Decimal("3")

    @pytest.mark.parametrize("value", ["abc", "", "   ", None, True, float("nan"), "inf"])
    def test_parse_amount_rejects_non_numbers(self, value):
        assert parse_amount(value) is None

    def test_positive_amount_is_valid(self):
        assert validate_amount("0.01").valid is True
        assert validate_amount("999999.99").valid is True

    @pytest.mark.parametrize("value", ["0", "-5", "abc", None])
    def test_non_positive_or_non_numeric(self, value):
        outcome = validate_amount(value)
        assert outcome.valid is False
        assert outcome.error == "Amount must be a positive number"

    def test_amount_too_large(self):
        outcome = validate_amount("1000000")
        assert outcome.valid is False
        assert outcome.error == "Amount too large"


class TestTransactionValidation:

    def test_valid_transaction(self):
        outcome = validate_transaction(valid_transaction())
        assert outcome.valid is True
        assert outcome.error is None

    def test_accepts_enum_type(self):
        outcome = validate_transaction(valid_transaction(type=TransactionType.INCOME))
        assert outcome.valid is True

    @pytest.mark.parametrize("overrides,error", [
        ({"description": "   "}, "Description is required"),
        ({"description": None}, "Description is required"),
        ({"amount": "-1"}, "Amount must be a positive number"),
        ({"amount": "abc"}, "Amount must be a positive number"),
        ({"amount": "5000000"}, "Amount too large"),
        ({"type": "transfer"}, "Type must be income or expense"),
        ({"type": "Income"}, "Type must be income or expense"),
        ({"category": ""}, "Category is required"),
    ])
    def test_reports_first_problem(self, overrides, error):
        outcome = validate_transaction(valid_transaction(**overrides))
        assert outcome.valid is False
        assert outcome.error == error

    def test_description_checked_before_amount(self):
        outcome = validate_transaction(valid_transaction(description="", amount="-1"))
        assert outcome.error == "Description is required"

    def test_transaction_type_check(self):
        assert is_valid_transaction_type("income")
        assert is_valid_transaction_type(TransactionType.EXPENSE)
        assert not is_valid_transaction_type(None)


class TestSanitizeInput:

    def test_trims_whitespace(self):
        assert sanitize_input("  coffee  ") == "coffee"

    def test_truncates_to_100_characters(self):
        assert sanitize_input("x" * 150) == "x" * 100

    def test_non_strings_unchanged(self):
        assert sanitize_input(42) == 42
        assert sanitize_input(None) is None
