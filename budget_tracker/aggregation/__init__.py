"""Balance and savings aggregation package."""

from budget_tracker.aggregation.aggregator import (
    breakdown_chart_data,
    calculate_category_savings,
    category_net,
    goals_from_categories,
    group_by_category,
    update_balance,
)

__all__ = [
    "breakdown_chart_data",
    "calculate_category_savings",
    "category_net",
    "goals_from_categories",
    "group_by_category",
    "update_balance",
]
