"""
Budget vs actual (pure).

Compares budgeted amounts against posted activity per fiscal period for
revenue and expense accounts.  ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, percentage
from ledger_kernel.domain.dtos import AccountInfo, FiscalPeriodInfo
from ledger_kernel.models.account import AccountType
from ledger_kernel.selectors.ledger_selector import AccountActivityRow, signed_balance
from ledger_reports.models import BudgetVarianceLine, BudgetVsActualReport, ReportMetadata

_BUDGETED_TYPES = (AccountType.REVENUE.value, AccountType.EXPENSE.value)


def is_favourable(account_type: str, budget: Decimal, actual: Decimal) -> bool:
    """Revenue is favourable at or above budget; costs at or below it."""
    if account_type == AccountType.REVENUE.value:
        return actual >= budget
    return actual <= budget


def build_budget_vs_actual(
    periods: list[FiscalPeriodInfo],
    accounts: Mapping[UUID, AccountInfo],
    budgets: Mapping[tuple[UUID, UUID], Decimal],
    actuals: Mapping[UUID, Mapping[UUID, AccountActivityRow]],
    metadata: ReportMetadata,
) -> BudgetVsActualReport:
    """
    Build per-period, per-account budget variance lines.

    Args:
        periods: Periods wholly inside the report range.
        accounts: Tenant accounts by id.
        budgets: Budget amounts keyed by (period_id, account_id).
        actuals: Posted activity per period id, keyed by account id.

    Accounts appear when they have a non-zero budget or non-zero actual in
    the period.  Actuals are in the account's normal-balance sign.
    """
    lines: list[BudgetVarianceLine] = []

    for period in sorted(periods, key=lambda p: p.start_date):
        activity = actuals.get(period.id, {})
        account_ids = {
            account_id for (period_id, account_id) in budgets if period_id == period.id
        } | set(activity)

        period_lines: list[BudgetVarianceLine] = []
        for account_id in account_ids:
            account = accounts.get(account_id)
            if account is None or account.account_type not in _BUDGETED_TYPES:
                continue

            budget = budgets.get((period.id, account_id), ZERO)
            row = activity.get(account_id)
            actual = (
                signed_balance(account.normal_balance, row.debit_total, row.credit_total)
                if row is not None
                else ZERO
            )
            if budget == ZERO and actual == ZERO:
                continue

            variance = actual - budget
            period_lines.append(
                BudgetVarianceLine(
                    period_id=period.id,
                    period_name=period.name,
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.account_type,
                    budget=budget,
                    actual=actual,
                    variance=variance,
                    variance_pct=percentage(variance, budget),
                    is_favourable=is_favourable(account.account_type, budget, actual),
                )
            )

        lines.extend(sorted(period_lines, key=lambda line: line.account_code))

    return BudgetVsActualReport(
        metadata=metadata,
        lines=tuple(lines),
        total_budget=sum((line.budget for line in lines), ZERO),
        total_actual=sum((line.actual for line in lines), ZERO),
    )
