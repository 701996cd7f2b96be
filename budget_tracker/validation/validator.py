"""
Input Validation

Pure checks run before anything is sent to the backend:
- Email format
- Password strength
- Transaction fields (description, amount, type, category)
- Amount bounds
- Free-text sanitization

DESIGN DECISION: Validation NEVER silently fixes amounts or types.
It reports the first problem found so the form can show it.
The only normalization is sanitize_input (trim and truncate), which the
gateway applies to free text after validation passes.

None of this touches the page or the network, so every function
here can be tested on its own.
"""

import re
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from budget_tracker.models.results import ValidationOutcome
from budget_tracker.models.transaction import (
    MAX_AMOUNT,
    MAX_TEXT_LENGTH,
    TransactionType,
)


EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")

# At least one lowercase, one uppercase, one digit; 8+ of the allowed characters
PASSWORD_PATTERN = re.compile(
    r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d@$!%*?&]{8,}",
    re.ASCII,
)

PASSWORD_RULES_MESSAGE = (
    "Password must be at least 8 characters with uppercase, lowercase, and number"
)

TRANSACTION_TYPES = tuple(t.value for t in TransactionType)


def is_valid_email(email: Any) -> bool:
    """Check the whole string looks like local@domain.tld."""
    if not isinstance(email, str):
        return False
    return EMAIL_PATTERN.fullmatch(email) is not None


def is_valid_password(password: Any) -> bool:
    """Check password strength rules."""
    if not isinstance(password, str):
        return False
    return PASSWORD_PATTERN.fullmatch(password) is not None


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Read a numeric amount from form input.

    Accepts Decimal, int, float and numeric strings. Returns None for
    anything non-numeric, including booleans, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None

    if not amount.is_finite():
        return None
    return amount


def validate_amount(amount: Any) -> ValidationOutcome:
    """Amount must be numeric, positive, and at most MAX_AMOUNT."""
    parsed = parse_amount(amount)
    if parsed is None or parsed <= 0:
        return ValidationOutcome.fail("Amount must be a positive number")

    if parsed > MAX_AMOUNT:
        return ValidationOutcome.fail("Amount too large")

    return ValidationOutcome.ok()


def _normalize_type(value: Any) -> Any:
    if isinstance(value, TransactionType):
        return value.value
    return value


def is_valid_transaction_type(value: Any) -> bool:
    value = _normalize_type(value)
    return isinstance(value, str) and value in TRANSACTION_TYPES


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_transaction(transaction: Mapping[str, Any]) -> ValidationOutcome:
    """
    Check a transaction submitted from the form.

    Checks run in form order and the first failure is reported.
    """
    if _is_blank(transaction.get("description")):
        return ValidationOutcome.fail("Description is required")

    amount_check = validate_amount(transaction.get("amount"))
    if not amount_check.valid:
        return amount_check

    if not is_valid_transaction_type(transaction.get("type")):
        return ValidationOutcome.fail("Type must be income or expense")

    if _is_blank(transaction.get("category")):
        return ValidationOutcome.fail("Category is required")

    return ValidationOutcome.ok()


def sanitize_input(value: Any) -> Any:
    """Trim and truncate strings; anything else is returned unchanged."""
    if not isinstance(value, str):
        return value
    return value.strip()[:MAX_TEXT_LENGTH]
