"""HTML fragment rendering package."""

from budget_tracker.views.renderer import (
    NO_SAVINGS_DATA,
    NO_TRANSACTIONS,
    SIGNED_OUT_BREAKDOWN,
    SIGNED_OUT_SAVINGS,
    SIGNED_OUT_TRANSACTIONS,
    Notification,
    balance_labels,
    format_category_name,
    format_currency,
    format_date,
    notification_from_result,
    render_breakdown_chart,
    render_category_cards,
    render_signed_out_notice,
    render_transactions_by_category,
    render_transactions_list,
)

__all__ = [
    "NO_SAVINGS_DATA",
    "NO_TRANSACTIONS",
    "SIGNED_OUT_BREAKDOWN",
    "SIGNED_OUT_SAVINGS",
    "SIGNED_OUT_TRANSACTIONS",
    "Notification",
    "balance_labels",
    "format_category_name",
    "format_currency",
    "format_date",
    "notification_from_result",
    "render_breakdown_chart",
    "render_category_cards",
    "render_signed_out_notice",
    "render_transactions_by_category",
    "render_transactions_list",
]
