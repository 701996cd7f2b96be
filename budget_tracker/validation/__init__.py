"""Input validation package."""

from budget_tracker.validation.validator import (
    PASSWORD_RULES_MESSAGE,
    is_valid_email,
    is_valid_password,
    is_valid_transaction_type,
    parse_amount,
    sanitize_input,
    validate_amount,
    validate_transaction,
)

__all__ = [
    "PASSWORD_RULES_MESSAGE",
    "is_valid_email",
    "is_valid_password",
    "is_valid_transaction_type",
    "parse_amount",
    "sanitize_input",
    "validate_amount",
    "validate_transaction",
]
