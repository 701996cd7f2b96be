"""
Balance and Savings Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and pure.
It works on transactions already fetched by the gateway and never
calls the backend itself. Every function here is total over any
sequence of Transaction, including an empty one.

All sums are Decimal and quantized to cents at the end.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Optional

from budget_tracker.models.transaction import (
    CENTS,
    SAVINGS_CATEGORIES,
    BalanceSummary,
    Category,
    CategorySavings,
    Transaction,
    TransactionType,
)


ZERO = Decimal("0.00")


def _category_key(name: str) -> str:
    return name.strip().lower()


def update_balance(transactions: Iterable[Transaction]) -> BalanceSummary:
    """
    Total income, total expenses, and net balance.

    balance = income - expenses
    """
    total_income = ZERO
    total_expenses = ZERO

    for transaction in transactions:
        if transaction.type == TransactionType.INCOME:
            total_income += transaction.amount
        elif transaction.type == TransactionType.EXPENSE:
            total_expenses += transaction.amount

    return BalanceSummary(
        total_income=total_income.quantize(CENTS),
        total_expenses=total_expenses.quantize(CENTS),
        balance=(total_income - total_expenses).quantize(CENTS),
    )


def goals_from_categories(categories: Iterable[Category]) -> dict[str, Decimal]:
    """
    Savings goals keyed by savings category.

    User categories whose name is not a savings category are skipped.
    If a name appears twice the first (newest) one wins.
    """
    goals: dict[str, Decimal] = {}
    for category in categories:
        key = _category_key(category.name)
        if key in SAVINGS_CATEGORIES and key not in goals:
            goals[key] = category.goal
    return goals


def calculate_category_savings(
    transactions: Iterable[Transaction],
    goals: Optional[Mapping[str, Decimal]] = None,
) -> CategorySavings:
    """
    Net income minus expense for each savings category.

    Every savings category is present in the result, even with no
    transactions. Transactions in any other category are ignored.
    Category names match case-insensitively.
    """
    goals = goals or {}
    category_totals = {name: ZERO for name in SAVINGS_CATEGORIES}
    category_goals = {
        name: Decimal(goals.get(name, ZERO)) for name in SAVINGS_CATEGORIES
    }

    for transaction in transactions:
        key = _category_key(transaction.category)
        if key not in category_totals:
            continue
        category_totals[key] += transaction.signed_amount

    return CategorySavings(
        category_totals={
            name: total.quantize(CENTS) for name, total in category_totals.items()
        },
        category_goals=category_goals,
    )


def group_by_category(
    transactions: Iterable[Transaction],
) -> dict[str, list[Transaction]]:
    """Group transactions by category, keeping first-seen order."""
    groups: dict[str, list[Transaction]] = {}
    for transaction in transactions:
        groups.setdefault(transaction.category, []).append(transaction)
    return groups


def category_net(transactions: Iterable[Transaction]) -> Decimal:
    """Income minus expenses over the given transactions."""
    total = sum((t.signed_amount for t in transactions), ZERO)
    return total.quantize(CENTS)


def breakdown_chart_data(
    category_totals: Mapping[str, Decimal],
) -> Sequence[tuple[str, Decimal, Decimal]]:
    """
    Bars for the savings breakdown chart.

    Only categories with positive savings are included, largest first.
    Each entry is (category, amount, percent of the largest amount).
    """
    positive = sorted(
        ((name, amount) for name, amount in category_totals.items() if amount > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    if not positive:
        return []

    largest = positive[0][1]
    return [
        (name, amount, (amount / largest * 100).quantize(CENTS))
        for name, amount in positive
    ]
