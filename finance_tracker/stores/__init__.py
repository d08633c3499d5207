"""Entity stores package."""

from finance_tracker.stores.base import EntityStore
from finance_tracker.stores.entities import (
    AccountStore,
    BudgetAllocationStore,
    CategoryStore,
    DebtStore,
    generate_pastel_color,
)

__all__ = [
    "AccountStore",
    "BudgetAllocationStore",
    "CategoryStore",
    "DebtStore",
    "EntityStore",
    "generate_pastel_color",
]
