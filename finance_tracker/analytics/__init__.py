"""Aggregate calculations over in-memory snapshots."""

from finance_tracker.analytics.aggregates import (
    build_dashboard,
    category_total,
    expenses_by_category,
    expenses_in_month,
    month_key,
    monthly_rollup,
    net_worth,
    net_worth_summary,
    remaining_balance,
    report_trend,
)

__all__ = [
    "build_dashboard",
    "category_total",
    "expenses_by_category",
    "expenses_in_month",
    "month_key",
    "monthly_rollup",
    "net_worth",
    "net_worth_summary",
    "remaining_balance",
    "report_trend",
]
