"""Data models package."""

from budget_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    mask_email,
)
from budget_tracker.models.results import (
    OperationResult,
    Principal,
    RateLimitDecision,
    ValidationOutcome,
)
from budget_tracker.models.transaction import (
    MAX_AMOUNT,
    MAX_TEXT_LENGTH,
    SAVINGS_CATEGORIES,
    BalanceSummary,
    Category,
    CategorySavings,
    DashboardData,
    Transaction,
    TransactionType,
)

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    "mask_email",
    # Results
    "OperationResult",
    "Principal",
    "RateLimitDecision",
    "ValidationOutcome",
    # Records and aggregates
    "MAX_AMOUNT",
    "MAX_TEXT_LENGTH",
    "SAVINGS_CATEGORIES",
    "BalanceSummary",
    "Category",
    "CategorySavings",
    "DashboardData",
    "Transaction",
    "TransactionType",
]
