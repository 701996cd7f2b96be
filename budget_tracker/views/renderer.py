"""
View Renderer

Turns transactions and aggregates into HTML fragments for the page.

DESIGN DECISION: Everything here is a pure function returning a string.
- Every user-supplied value goes through html.escape
- Class names come from fixed sets, never from user input
- No Streamlit calls; app/main.py decides where fragments go
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Literal, Optional

from pydantic import BaseModel

from budget_tracker.aggregation import (
    breakdown_chart_data,
    category_net,
    group_by_category,
)
from budget_tracker.models.results import OperationResult
from budget_tracker.models.transaction import (
    BalanceSummary,
    CategorySavings,
    Transaction,
    TransactionType,
)


MAX_PER_CATEGORY = 5

SIGNED_OUT_TRANSACTIONS = "Please sign in to view your transactions"
SIGNED_OUT_SAVINGS = "Please sign in to view your savings"
SIGNED_OUT_BREAKDOWN = "Please sign in to view your savings breakdown"
NO_TRANSACTIONS = "No transactions yet. Add your first transaction above!"
NO_SAVINGS_DATA = "No savings data available"


def format_currency(amount: Decimal, symbol: str = "$") -> str:
    """$1,234.50 style; negative amounts get a leading minus."""
    amount = Decimal(amount)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_date(value: Optional[datetime]) -> str:
    """Month/day/year, or "Pending" while the server timestamp is unset."""
    if value is None:
        return "Pending"
    return f"{value.month}/{value.day}/{value.year}"


def format_category_name(category: str) -> str:
    """emergency -> Emergency, carLoan -> Car Loan."""
    if not category:
        return ""
    rest = "".join(f" {c}" if c.isupper() else c for c in category[1:])
    return category[0].upper() + rest


def _tone(amount: Decimal) -> str:
    return "positive" if amount >= 0 else "negative"


def _signed_label(transaction: Transaction, symbol: str) -> str:
    prefix = "+" if transaction.type == TransactionType.INCOME else "-"
    return f"{prefix}{format_currency(transaction.amount, symbol)}"


def _placeholder(message: str, icon: Optional[str] = None) -> str:
    icon_html = f'<i class="fas {icon}"></i>' if icon else ""
    return f'<div class="no-transactions">{icon_html}<p>{escape(message)}</p></div>'


def render_signed_out_notice(message: str = SIGNED_OUT_TRANSACTIONS) -> str:
    return _placeholder(message, "fa-receipt")


def render_transactions_list(
    transactions: Sequence[Transaction],
    symbol: str = "$",
) -> str:
    """The main transaction list, or the empty-state placeholder."""
    if not transactions:
        return _placeholder(NO_TRANSACTIONS, "fa-receipt")

    items = []
    for t in transactions:
        kind = t.type.value
        items.append(
            f'<div class="transaction-item {kind}" data-id="{escape(t.id or "")}">'
            '<div class="transaction-info">'
            f"<h4>{escape(t.description)}</h4>"
            f'<p class="transaction-category">{escape(t.category)}</p>'
            f'<p class="transaction-date">{format_date(t.created_at)}</p>'
            "</div>"
            '<div class="transaction-amount">'
            f'<span class="amount {kind}">{_signed_label(t, symbol)}</span>'
            "</div>"
            "</div>"
        )
    return "".join(items)


def balance_labels(summary: BalanceSummary, symbol: str = "$") -> dict[str, str]:
    """Text for the balance, income and expense tiles."""
    return {
        "total_balance": format_currency(summary.balance, symbol),
        "total_income": format_currency(summary.total_income, symbol),
        "total_expenses": format_currency(summary.total_expenses, symbol),
    }


def render_category_cards(savings: CategorySavings, symbol: str = "$") -> str:
    """One card per savings category, with a progress bar when it has a goal."""
    cards = []
    for category, amount in savings.category_totals.items():
        tone = _tone(amount)
        goal = savings.category_goals.get(category, Decimal("0"))
        goal_html = ""
        if goal > 0:
            width = min(max(savings.progress(category), Decimal("0")), Decimal("100"))
            goal_html = (
                '<div class="progress-bar">'
                f'<div class="progress-fill" style="width: {width}%"></div>'
                "</div>"
                f'<p class="goal-text">Goal: {format_currency(goal, symbol)}</p>'
            )
        cards.append(
            f'<div class="category-card {tone}">'
            '<div class="category-header">'
            f"<h3>{escape(format_category_name(category))}</h3>"
            f'<span class="category-amount {tone}">'
            f"{format_currency(abs(amount), symbol)}</span>"
            "</div>"
            f"{goal_html}"
            "</div>"
        )
    return "".join(cards)


def render_breakdown_chart(savings: CategorySavings, symbol: str = "$") -> str:
    """Horizontal bars for categories with positive savings, largest first."""
    chart = breakdown_chart_data(savings.category_totals)
    if not chart:
        return f"<p>{NO_SAVINGS_DATA}</p>"

    return "".join(
        '<div class="chart-item">'
        '<div class="chart-label">'
        f'<span class="category-name">{escape(format_category_name(name))}</span>'
        f'<span class="category-value">{format_currency(amount, symbol)}</span>'
        "</div>"
        '<div class="chart-bar">'
        f'<div class="chart-fill" style="width: {percent}%"></div>'
        "</div>"
        "</div>"
        for name, amount, percent in chart
    )


def render_transactions_by_category(
    transactions: Iterable[Transaction],
    symbol: str = "$",
) -> str:
    """
    Transactions grouped under their category with the category's net.

    At most MAX_PER_CATEGORY are listed per group; the rest are counted.
    """
    sections = []
    for category, group in group_by_category(transactions).items():
        net = category_net(group)
        rows = "".join(
            f'<div class="transaction-item {t.type.value}">'
            '<div class="transaction-info">'
            f"<h4>{escape(t.description)}</h4>"
            f'<p class="transaction-date">{format_date(t.created_at)}</p>'
            "</div>"
            '<div class="transaction-amount">'
            f'<span class="amount {t.type.value}">{_signed_label(t, symbol)}</span>'
            "</div>"
            "</div>"
            for t in group[:MAX_PER_CATEGORY]
        )
        hidden = len(group) - MAX_PER_CATEGORY
        more = (
            f'<p class="more-transactions">+{hidden} more transactions</p>'
            if hidden > 0
            else ""
        )
        sections.append(
            '<div class="category-transactions">'
            f"<h3>{escape(format_category_name(category))} "
            f'<span class="category-total {_tone(net)}">'
            f"{format_currency(abs(net), symbol)}</span></h3>"
            f'<div class="transaction-list">{rows}{more}</div>'
            "</div>"
        )
    return "".join(sections)


class Notification(BaseModel):
    """A transient message for the page to show."""

    message: str
    kind: Literal["success", "error", "info"] = "info"
    duration_ms: int = 3000


def notification_from_result(
    result: OperationResult,
    success_message: Optional[str] = None,
    duration_ms: int = 3000,
) -> Notification:
    """
    Turn an operation result into a notification.

    Success uses the result's own message if it has one.
    """
    if result.success:
        return Notification(
            message=result.message or success_message or "Done",
            kind="success",
            duration_ms=duration_ms,
        )
    return Notification(
        message=f"Error: {result.error or 'An unexpected error occurred'}",
        kind="error",
        duration_ms=duration_ms,
    )
