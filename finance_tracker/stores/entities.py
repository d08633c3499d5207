"""
Entity Stores

Accounts, debts, categories and budget allocations.

Editing an account balance or a debt amount here is a deliberate escape
hatch: it overrides whatever the ledger computed and is not journaled.
"""

import random
from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from finance_tracker.analytics import aggregates
from finance_tracker.audit import AuditLogger
from finance_tracker.ledger.errors import ValidationFailedError
from finance_tracker.ledger.targets import is_reserved
from finance_tracker.models.finance import (
    Account,
    BudgetAllocation,
    Category,
    Collection,
    Debt,
    ValidationIssue,
)
from finance_tracker.services.storage import DocumentStoreInterface, QueryFilter
from finance_tracker.stores.base import EntityStore
from finance_tracker.validation import EntryValidator


def generate_pastel_color(rng: Optional[random.Random] = None) -> str:
    """Random light colour for a new category."""
    rng = rng or random
    hue = rng.randrange(360)
    saturation = rng.randrange(70, 100)
    lightness = rng.randrange(70, 90)
    return f"hsl({hue}, {saturation}%, {lightness}%)"


class AccountStore(EntityStore[Account]):
    collection = Collection.ACCOUNTS
    model = Account
    entity_type = "account"

    async def find_by_name(self, name: str) -> Optional[Account]:
        for account in await self.list_all():
            if account.name == name:
                return account
        return None


class DebtStore(EntityStore[Debt]):
    collection = Collection.DEBTS
    model = Debt
    entity_type = "debt"

    async def find_by_name(self, name: str) -> Optional[Debt]:
        for debt in await self.list_all():
            if debt.name == name:
                return debt
        return None

    async def overdue(self, today: Optional[date] = None) -> list[Debt]:
        """Debts past their due date that are not paid off. Read-only."""
        return [d for d in await self.list_all() if aggregates.is_overdue(d, today)]


class CategoryStore(EntityStore[Category]):
    """
    User categories.

    Names are unique per user (case-insensitive) and may not use the
    reserved "Account: " / "Debt: " prefixes.
    """

    collection = Collection.CATEGORIES
    model = Category
    entity_type = "category"
    default_order = "name"

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        audit: Optional[AuditLogger] = None,
        validator: Optional[EntryValidator] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(store, user_id, audit)
        self._validator = validator or EntryValidator()
        self._rng = rng

    async def _check_name(self, name: Optional[str], exclude_id: Optional[str] = None) -> str:
        existing = [c.name for c in await self.list_all() if c.id != exclude_id]
        result = self._validator.validate_name("category", name, existing)
        if result.is_valid and is_reserved(name):
            result = result.model_copy(update={
                "semantic_valid": False,
                "is_valid": False,
                "issues": result.issues + [ValidationIssue(
                    field="name",
                    issue_type="reserved",
                    message="Category names cannot start with 'Account: ' or 'Debt: '",
                    severity="error",
                    suggested_fix="Those labels are created from your accounts and debts",
                )],
            })
        if not result.is_valid:
            await self._audit.log_validation_failed(
                subject=result.subject,
                issues=[i.model_dump() for i in result.issues],
            )
            raise ValidationFailedError(result)
        return name.strip()

    async def add(self, data: Category | Mapping[str, Any]) -> Category:
        """Add a category; a pastel colour is generated when none is given."""
        fields = data.model_dump() if isinstance(data, Category) else dict(data)
        fields["name"] = await self._check_name(fields.get("name"))
        if not fields.get("color"):
            fields["color"] = generate_pastel_color(self._rng)
        return await super().add(fields)

    async def update(self, entity_id: str, fields: Mapping[str, Any]) -> Category:
        fields = dict(fields)
        if "name" in fields:
            fields["name"] = await self._check_name(fields["name"], exclude_id=entity_id)
        return await super().update(entity_id, fields)

    async def find_by_name(self, name: str) -> Optional[Category]:
        for category in await self.list_all():
            if category.name == name:
                return category
        return None

    async def names(self) -> list[str]:
        return [c.name for c in await self.list_all()]


class BudgetAllocationStore(EntityStore[BudgetAllocation]):
    """Monthly budget goals per account. Planning only."""

    collection = Collection.BUDGET_ALLOCATIONS
    model = BudgetAllocation
    entity_type = "budget_allocation"
    default_order = "month"

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        audit: Optional[AuditLogger] = None,
        validator: Optional[EntryValidator] = None,
    ):
        super().__init__(store, user_id, audit)
        self._validator = validator or EntryValidator()

    async def _accounts(self) -> list[Account]:
        documents = await self._store.list_documents(self._user_id, Collection.ACCOUNTS)
        return [Account.model_validate(d) for d in documents]

    async def _check(self, account_id: Any, amount: Any, month: Any) -> None:
        result = self._validator.validate_budget_allocation(
            account_id,
            aggregates.to_decimal(amount) if amount is not None else None,
            month,
            await self._accounts(),
        )
        if not result.is_valid:
            await self._audit.log_validation_failed(
                subject=result.subject,
                issues=[i.model_dump() for i in result.issues],
            )
            raise ValidationFailedError(result)

    async def add(self, data: BudgetAllocation | Mapping[str, Any]) -> BudgetAllocation:
        fields = data.model_dump() if isinstance(data, BudgetAllocation) else dict(data)
        await self._check(fields.get("account_id"), fields.get("amount"), fields.get("month"))
        return await super().add(fields)

    async def update(self, entity_id: str, fields: Mapping[str, Any]) -> BudgetAllocation:
        current = await self.require(entity_id)
        await self._check(
            fields.get("account_id", current.account_id),
            fields.get("amount", current.amount),
            fields.get("month", current.month),
        )
        return await super().update(entity_id, fields)

    async def list_for_month(self, month: Optional[str] = None) -> list[BudgetAllocation]:
        """All allocations, or one month's, newest month first."""
        filters = [QueryFilter("month", "==", month)] if month else None
        return await self.list_all(filters=filters, descending=True)

    async def grouped_by_month(self) -> list[tuple[str, list[BudgetAllocation]]]:
        return aggregates.group_allocations_by_month(await self.list_all())

    async def summary_by_account(self, month: Optional[str] = None) -> dict[str, Decimal]:
        return aggregates.budget_by_account(await self.list_all(), month)
