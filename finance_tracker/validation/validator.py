"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Value ranges (amount > 0, name length)
- Format validation (YYYY-MM months)
- This catches malformed form input

STAGE 2 - SEMANTIC VALIDATION:
- Reference checks (does the linked account/debt exist?)
- Future date detection
- Absurd amount detection
- This catches suspicious data, mostly as warnings

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Can skip stage 2 if stage 1 fails

IMPORTANT: Validation NEVER silently fixes issues.
Errors block the write; warnings are reported alongside it.
An unresolved mirrored target is a warning, never an error: the entry is
still recorded.
"""

import re
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from finance_tracker.config import AppSettings, get_settings
from finance_tracker.models.finance import (
    MONTH_PATTERN,
    Account,
    AccountDeposit,
    AllocationDraft,
    AllocationTarget,
    Debt,
    DebtPayment,
    TransferDraft,
    ValidationIssue,
    ValidationResult,
)


def _is_valid(issues: list[ValidationIssue]) -> bool:
    return not any(issue.severity == "error" for issue in issues)


def _result(
    subject: str,
    schema_issues: list[ValidationIssue],
    semantic_issues: Optional[list[ValidationIssue]],
) -> ValidationResult:
    schema_valid = _is_valid(schema_issues)
    # semantic_issues is None when stage 2 was skipped
    semantic_valid = semantic_issues is not None and _is_valid(semantic_issues)
    all_issues = schema_issues + (semantic_issues or [])
    return ValidationResult(
        subject=subject,
        schema_valid=schema_valid,
        semantic_valid=semantic_valid,
        is_valid=schema_valid and semantic_valid,
        issues=all_issues,
        warnings=[i.message for i in all_issues if i.severity == "warning"],
    )


class EntryValidator:
    """
    Validates ledger, transfer and budget input through a two-stage pipeline.

    Everything is synchronous: callers pass the accounts and debts the
    checks need, so no storage access happens here.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _check_amount(
        self,
        amount: Optional[Decimal],
        issues: list[ValidationIssue],
    ) -> None:
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
                suggested_fix="Enter an amount greater than zero",
            ))
        elif amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter an amount greater than zero",
            ))

    def _check_amount_semantics(
        self,
        amount: Optional[Decimal],
        issues: list[ValidationIssue],
    ) -> None:
        max_amount = Decimal(str(self._settings.max_entry_amount))
        if amount is not None and amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

    def _check_date_semantics(
        self,
        entry_date: Optional[date],
        issues: list[ValidationIssue],
        today: Optional[date] = None,
    ) -> None:
        today = today or date.today()
        max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
        if entry_date and entry_date > max_future:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({entry_date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

    # ------------------------------------------------------------------
    # Allocations
    # ------------------------------------------------------------------

    def _validate_allocation_schema(
        self,
        draft: AllocationDraft,
    ) -> list[ValidationIssue]:
        """
        Stage 1: name, amount and category presence.
        """
        issues = []

        if not draft.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is required",
                severity="error",
                suggested_fix="Describe what the money went to",
            ))
        elif len(draft.name) > 200:
            issues.append(ValidationIssue(
                field="name",
                issue_type="invalid_value",
                message="Name must be at most 200 characters",
                severity="error",
            ))

        self._check_amount(draft.amount, issues)

        if not draft.category:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
                suggested_fix="Pick a category, account or debt",
            ))

        return issues

    def _validate_allocation_semantic(
        self,
        draft: AllocationDraft,
        target: Optional[AllocationTarget],
        linked_debt: Optional[Debt],
        today: Optional[date],
    ) -> list[ValidationIssue]:
        """
        Stage 2: suspicious values and target resolution.
        """
        issues = []
        self._check_amount_semantics(draft.amount, issues)
        self._check_date_semantics(draft.date, issues, today)

        if isinstance(target, AccountDeposit) and target.account_id is None:
            issues.append(ValidationIssue(
                field="category",
                issue_type="unresolved_target",
                message=f"Account '{target.account_name}' was not found",
                severity="warning",
                suggested_fix="The entry is saved but no balance will change",
            ))
        elif isinstance(target, DebtPayment) and target.debt_id is None:
            issues.append(ValidationIssue(
                field="category",
                issue_type="unresolved_target",
                message=f"Debt '{target.debt_name}' was not found",
                severity="warning",
                suggested_fix="The entry is saved but no debt will change",
            ))
        elif (
            isinstance(target, DebtPayment)
            and linked_debt is not None
            and draft.amount is not None
            and draft.amount > linked_debt.amount
        ):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="overpayment",
                message=(
                    f"Payment ({draft.amount:,.2f}) is more than the "
                    f"remaining {linked_debt.amount:,.2f} on '{linked_debt.name}'"
                ),
                severity="info",
                suggested_fix="The debt will be reduced to zero",
            ))

        return issues

    def validate_allocation(
        self,
        draft: AllocationDraft,
        target: Optional[AllocationTarget] = None,
        linked_debt: Optional[Debt] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation of an expense/allocation.

        Args:
            draft: The form input
            target: The resolved target for draft.category, if known
            linked_debt: The debt a DebtPayment target points at
            today: Reference date for the future-date check

        Returns:
            ValidationResult with all issues found
        """
        schema_issues = self._validate_allocation_schema(draft)
        semantic_issues = None
        # Only run stage 2 if stage 1 passes
        if _is_valid(schema_issues):
            semantic_issues = self._validate_allocation_semantic(
                draft, target, linked_debt, today,
            )
        return _result("allocation", schema_issues, semantic_issues)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def validate_transfer(
        self,
        draft: TransferDraft,
        accounts: Iterable[Account],
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Validate a transfer between two existing, distinct accounts.

        Unknown accounts are errors here: a transfer always moves balances.
        """
        accounts_by_id = {a.id: a for a in accounts}
        schema_issues = []

        for field in ("from_account", "to_account"):
            if not getattr(draft, field):
                schema_issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field.replace('_', ' ').capitalize()} is required",
                    severity="error",
                ))
        if draft.from_account and draft.from_account == draft.to_account:
            schema_issues.append(ValidationIssue(
                field="to_account",
                issue_type="invalid_value",
                message="Cannot transfer to the same account",
                severity="error",
                suggested_fix="Pick two different accounts",
            ))
        self._check_amount(draft.amount, schema_issues)

        if not _is_valid(schema_issues):
            return _result("transfer", schema_issues, None)

        semantic_issues = []
        for field in ("from_account", "to_account"):
            account_id = getattr(draft, field)
            if account_id not in accounts_by_id:
                semantic_issues.append(ValidationIssue(
                    field=field,
                    issue_type="unknown_reference",
                    message=f"Account not found: {account_id}",
                    severity="error",
                ))

        source = accounts_by_id.get(draft.from_account)
        if source is not None and draft.amount > source.balance:
            semantic_issues.append(ValidationIssue(
                field="amount",
                issue_type="insufficient_balance",
                message=(
                    f"Transfer ({draft.amount:,.2f}) exceeds the balance of "
                    f"'{source.name}' ({source.balance:,.2f})"
                ),
                severity="warning",
                suggested_fix="The source balance will go negative",
            ))
        self._check_amount_semantics(draft.amount, semantic_issues)
        self._check_date_semantics(draft.date, semantic_issues, today)

        return _result("transfer", schema_issues, semantic_issues)

    # ------------------------------------------------------------------
    # Budget allocations and names
    # ------------------------------------------------------------------

    def validate_budget_allocation(
        self,
        account_id: Optional[str],
        amount: Optional[Decimal],
        month: Optional[str],
        accounts: Iterable[Account],
    ) -> ValidationResult:
        """Validate a monthly budget goal for an account."""
        schema_issues = []
        if not account_id:
            schema_issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="Account is required",
                severity="error",
            ))
        self._check_amount(amount, schema_issues)
        if not month or not re.match(MONTH_PATTERN, month):
            schema_issues.append(ValidationIssue(
                field="month",
                issue_type="invalid_format",
                message="Month must be in YYYY-MM format",
                severity="error",
                suggested_fix="For example 2024-03",
            ))

        if not _is_valid(schema_issues):
            return _result("budget allocation", schema_issues, None)

        semantic_issues = []
        if account_id not in {a.id for a in accounts}:
            semantic_issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_reference",
                message=f"Account not found: {account_id}",
                severity="error",
            ))
        self._check_amount_semantics(amount, semantic_issues)
        return _result("budget allocation", schema_issues, semantic_issues)

    def validate_name(
        self,
        subject: str,
        name: Optional[str],
        existing_names: Iterable[str] = (),
        max_length: int = 100,
    ) -> ValidationResult:
        """
        Validate a name for a category, account or debt.

        Duplicates are compared case-insensitively.
        """
        schema_issues = []
        cleaned = (name or "").strip()
        if not cleaned:
            schema_issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message=f"{subject.capitalize()} name is required",
                severity="error",
            ))
        elif len(cleaned) > max_length:
            schema_issues.append(ValidationIssue(
                field="name",
                issue_type="invalid_value",
                message=f"{subject.capitalize()} name must be at most {max_length} characters",
                severity="error",
            ))

        if not _is_valid(schema_issues):
            return _result(subject, schema_issues, None)

        semantic_issues = []
        if cleaned.lower() in {n.strip().lower() for n in existing_names}:
            semantic_issues.append(ValidationIssue(
                field="name",
                issue_type="duplicate",
                message=f"{subject.capitalize()} '{cleaned}' already exists",
                severity="error",
                suggested_fix="Pick a different name",
            ))
        return _result(subject, schema_issues, semantic_issues)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
