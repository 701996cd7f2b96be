"""
Core Data Models for Budget Tracker

These models define the schemas for records kept in the hosted backend
and for the aggregates computed from them. They are designed to:
1. Enforce the transaction invariants at runtime
2. Read backend documents as-is (camelCase field names)
3. Be serializable for storage and logging

DESIGN DECISION: Amounts are Decimal everywhere. Backend documents carry
floats, which are converted through their string form so 0.1 stays 0.1.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# Largest amount a single transaction may carry
MAX_AMOUNT = Decimal("999999.99")

# Free-text fields are trimmed and cut to this many characters
MAX_TEXT_LENGTH = 100

# Savings buckets shown on the savings page
SAVINGS_CATEGORIES: tuple[str, ...] = (
    "emergency",
    "vacation",
    "retirement",
    "house",
    "car",
    "education",
    "healthcare",
    "investment",
    "other",
)

CENTS = Decimal("0.01")


def _to_decimal(value: Any) -> Any:
    """Convert floats through str() so binary noise does not leak in."""
    if isinstance(value, float):
        return Decimal(str(value))
    return value


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"


# =============================================================================
# STORED RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry owned by one user.

    The id and timestamps are assigned by the backend. created_at can be
    missing on a record read back before the server stamped it.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: Optional[str] = Field(
        default=None,
        description="Document ID assigned by the backend"
    )
    user_id: str = Field(
        ...,
        alias="userId",
        min_length=1,
        description="UID of the owning principal"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_LENGTH,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        le=MAX_AMOUNT,
        description="Positive amount; direction is given by type"
    )
    type: TransactionType
    category: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_LENGTH,
    )
    created_at: Optional[datetime] = Field(
        default=None,
        alias="createdAt",
        description="Server timestamp"
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        alias="updatedAt",
    )

    @field_validator('amount', mode='before')
    @classmethod
    def amount_from_float(cls, v: Any) -> Any:
        return _to_decimal(v)

    @property
    def signed_amount(self) -> Decimal:
        """Amount with expenses negative."""
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount


class Category(BaseModel):
    """
    A user-defined label with an optional savings goal.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: Optional[str] = None
    user_id: str = Field(..., alias="userId", min_length=1)
    name: str = Field(..., min_length=1)
    goal: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Savings goal; 0 means no goal"
    )
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator('goal', mode='before')
    @classmethod
    def goal_from_float(cls, v: Any) -> Any:
        if v is None:
            return Decimal("0")
        return _to_decimal(v)


# =============================================================================
# AGGREGATES
# =============================================================================

class BalanceSummary(BaseModel):
    """Totals across a list of transactions."""

    total_income: Decimal = Decimal("0.00")
    total_expenses: Decimal = Decimal("0.00")
    balance: Decimal = Decimal("0.00")


class CategorySavings(BaseModel):
    """
    Net savings per savings category.

    category_totals is income minus expenses for each of
    SAVINGS_CATEGORIES, in that order.
    """

    category_totals: dict[str, Decimal] = Field(default_factory=dict)
    category_goals: dict[str, Decimal] = Field(default_factory=dict)

    @property
    def total_savings(self) -> Decimal:
        return sum(self.category_totals.values(), Decimal("0.00"))

    def progress(self, category: str) -> Decimal:
        """Percent of the goal reached (uncapped); 0 when there is no goal."""
        goal = self.category_goals.get(category, Decimal("0"))
        if goal <= 0:
            return Decimal("0")
        amount = self.category_totals.get(category, Decimal("0"))
        return (amount / goal * 100).quantize(CENTS)


class DashboardData(BaseModel):
    """What the page shows after a reload."""

    transactions: list[Transaction] = Field(default_factory=list)
    balance: BalanceSummary = Field(default_factory=BalanceSummary)
    savings: CategorySavings = Field(default_factory=CategorySavings)
