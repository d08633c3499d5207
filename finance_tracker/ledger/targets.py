"""
Allocation Targets

Categories named "Account: <name>" or "Debt: <name>" are mirrored
allocations. Users still pick them as category labels, so the label stays
the display form; internally each entry carries a tagged AllocationTarget
that holds the resolved account or debt id.

Everything here is pure: callers pass the current accounts and debts.
"""

from collections.abc import Iterable
from typing import Optional

from finance_tracker.models.finance import (
    Account,
    AccountDeposit,
    AllocationTarget,
    Category,
    Debt,
    DebtPayment,
    PlainCategory,
)


ACCOUNT_PREFIX = "Account: "
DEBT_PREFIX = "Debt: "


def parse_category(category: str) -> AllocationTarget:
    """
    Turn a category label into an unresolved target.

    Only the exact prefixes are reserved; "Accounting" stays a category.
    """
    label = category.strip()
    if label.startswith(ACCOUNT_PREFIX):
        return AccountDeposit(account_name=label[len(ACCOUNT_PREFIX):].strip())
    if label.startswith(DEBT_PREFIX):
        return DebtPayment(debt_name=label[len(DEBT_PREFIX):].strip())
    return PlainCategory(name=label)


def format_category(target: AllocationTarget) -> str:
    if isinstance(target, AccountDeposit):
        return f"{ACCOUNT_PREFIX}{target.account_name}"
    if isinstance(target, DebtPayment):
        return f"{DEBT_PREFIX}{target.debt_name}"
    return target.name


def _find_by_name(items: Iterable, name: str):
    # First match in the given order; names are not unique across a user.
    for item in items:
        if item.name == name:
            return item
    return None


def resolve_target(
    category: str,
    accounts: Iterable[Account],
    debts: Iterable[Debt],
) -> AllocationTarget:
    """
    Parse a category label and resolve it by exact name.

    An unresolved mirrored target keeps its name with a None id.
    """
    target = parse_category(category)
    if isinstance(target, AccountDeposit):
        account = _find_by_name(accounts, target.account_name)
        if account is not None:
            return target.model_copy(update={"account_id": account.id})
    elif isinstance(target, DebtPayment):
        debt = _find_by_name(debts, target.debt_name)
        if debt is not None:
            return target.model_copy(update={"debt_id": debt.id})
    return target


def same_target(a: AllocationTarget, b: AllocationTarget) -> bool:
    """True when both targets affect the same account or debt (or neither does)."""
    if a.kind != b.kind:
        return False
    if a.kind == "category":
        return True
    return a.entity_id is not None and a.entity_id == b.entity_id


def unresolved_reason(target: AllocationTarget) -> Optional[str]:
    """Warning text for a mirrored target without an id, else None."""
    if isinstance(target, AccountDeposit) and target.account_id is None:
        return f"Account '{target.account_name}' not found; no balance was changed"
    if isinstance(target, DebtPayment) and target.debt_id is None:
        return f"Debt '{target.debt_name}' not found; no debt amount was changed"
    return None


def category_options(
    categories: Iterable[Category],
    accounts: Iterable[Account],
    debts: Iterable[Debt],
) -> list[str]:
    """
    Every label a user can pick for an entry.

    User categories first (sorted), then one pseudo-category per account and
    per debt. Pseudo-categories are synthesized, never stored.
    """
    options = sorted({c.name for c in categories})
    options += sorted({f"{ACCOUNT_PREFIX}{a.name}" for a in accounts})
    options += sorted({f"{DEBT_PREFIX}{d.name}" for d in debts})
    return options


def is_reserved(name: str) -> bool:
    """Whether a user category name would collide with the mirrored prefixes."""
    label = name.strip()
    return label.startswith(ACCOUNT_PREFIX) or label.startswith(DEBT_PREFIX)
