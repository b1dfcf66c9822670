"""
Financial Reporting Models (``ledger_reports.models``).

Responsibility
--------------
Frozen dataclass value objects for every report the ledger produces: trial
balance, general ledger, balance sheet, profit and loss (plain and
comparative), aging, budget vs actual and cash flow.

Architecture position
---------------------
Pure data definitions with ZERO I/O.  Built by the functions in
``statements``, ``aging`` and ``budget`` and returned by
``ReportingService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ReportType(str, Enum):
    TRIAL_BALANCE = "trial_balance"
    GENERAL_LEDGER = "general_ledger"
    BALANCE_SHEET = "balance_sheet"
    PROFIT_AND_LOSS = "profit_and_loss"
    PROFIT_AND_LOSS_COMPARATIVE = "profit_and_loss_comparative"
    AR_AGING = "ar_aging"
    AP_AGING = "ap_aging"
    BUDGET_VS_ACTUAL = "budget_vs_actual"
    CASH_FLOW = "cash_flow"


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every report."""

    report_type: ReportType
    tenant_id: UUID
    entity_name: str
    currency: str
    as_of_date: date
    generated_at: str  # ISO timestamp from the injected clock
    period_start: date | None = None
    period_end: date | None = None


# =========================================================================
# Trial balance
# =========================================================================


@dataclass(frozen=True)
class TrialBalanceLineItem:
    """One account in a trial balance or statement section."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    debit_balance: Decimal
    credit_balance: Decimal
    net_balance: Decimal  # natural-balance sign


@dataclass(frozen=True)
class TrialBalanceReport:
    metadata: ReportMetadata
    lines: tuple[TrialBalanceLineItem, ...]
    total_debits: Decimal
    total_credits: Decimal
    is_balanced: bool


# =========================================================================
# General ledger
# =========================================================================


@dataclass(frozen=True)
class GeneralLedgerLine:
    entry_date: date
    journal_number: int
    document_sequence_number: str
    journal_entry_id: UUID
    description: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class GeneralLedgerReport:
    metadata: ReportMetadata
    account_id: UUID
    account_code: str
    account_name: str
    normal_balance: str
    opening_balance: Decimal
    lines: tuple[GeneralLedgerLine, ...]
    total_debits: Decimal
    total_credits: Decimal
    closing_balance: Decimal


# =========================================================================
# Balance sheet
# =========================================================================


@dataclass(frozen=True)
class StatementSection:
    """A labelled group of accounts with a total."""

    label: str
    lines: tuple[TrialBalanceLineItem, ...]
    total: Decimal


@dataclass(frozen=True)
class BalanceSheetReport:
    """
    Classified balance sheet snapshot.

    Equity includes current earnings: net income from all posted activity
    up to the as-of date.
    """

    metadata: ReportMetadata
    current_assets: StatementSection
    non_current_assets: StatementSection
    total_assets: Decimal
    current_liabilities: StatementSection
    non_current_liabilities: StatementSection
    total_liabilities: Decimal
    equity: StatementSection
    current_earnings: Decimal
    total_equity: Decimal
    total_liabilities_and_equity: Decimal
    is_balanced: bool


# =========================================================================
# Profit and loss
# =========================================================================


@dataclass(frozen=True)
class ProfitAndLossReport:
    """
    Multi-step income statement.

    Revenue - COGS = Gross Profit - Operating Expenses = Operating Income
    + Other Income - Other Expenses = Net Income
    """

    metadata: ReportMetadata
    revenue: StatementSection
    cogs: StatementSection
    gross_profit: Decimal
    operating_expenses: StatementSection
    operating_income: Decimal
    other_income: StatementSection
    other_expenses: StatementSection
    total_revenue: Decimal
    total_expenses: Decimal
    net_income: Decimal


@dataclass(frozen=True)
class VarianceLine:
    """Current vs prior for one account or total."""

    label: str
    current: Decimal
    prior: Decimal
    variance: Decimal
    variance_pct: Decimal
    account_id: UUID | None = None
    account_code: str | None = None


@dataclass(frozen=True)
class ComparativeSection:
    label: str
    lines: tuple[VarianceLine, ...]
    total: VarianceLine


@dataclass(frozen=True)
class ComparativeProfitAndLossReport:
    metadata: ReportMetadata
    current_start: date
    current_end: date
    prior_start: date
    prior_end: date
    sections: tuple[ComparativeSection, ...]
    gross_profit: VarianceLine
    operating_income: VarianceLine
    net_income: VarianceLine


# =========================================================================
# Aging
# =========================================================================


@dataclass(frozen=True)
class OpenDocument:
    """An open invoice or bill supplied by the caller."""

    id: str
    number: str
    counterparty: str
    document_date: date
    due_date: date | None
    amount_due: Decimal


@dataclass(frozen=True)
class AgingLine:
    document_id: str
    number: str
    counterparty: str
    document_date: date
    due_date: date | None
    days_overdue: int
    bucket: str
    amount_due: Decimal


@dataclass(frozen=True)
class AgingBucketTotal:
    bucket: str
    amount: Decimal
    count: int


@dataclass(frozen=True)
class CounterpartyAging:
    counterparty: str
    buckets: tuple[AgingBucketTotal, ...]
    total: Decimal


@dataclass(frozen=True)
class AgingReport:
    metadata: ReportMetadata
    lines: tuple[AgingLine, ...]
    buckets: tuple[AgingBucketTotal, ...]
    by_counterparty: tuple[CounterpartyAging, ...]
    total: Decimal


# =========================================================================
# Budget vs actual
# =========================================================================


@dataclass(frozen=True)
class BudgetVarianceLine:
    period_id: UUID
    period_name: str
    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    budget: Decimal
    actual: Decimal
    variance: Decimal
    variance_pct: Decimal
    is_favourable: bool


@dataclass(frozen=True)
class BudgetVsActualReport:
    metadata: ReportMetadata
    lines: tuple[BudgetVarianceLine, ...]
    total_budget: Decimal
    total_actual: Decimal


# =========================================================================
# Cash flow (indirect method)
# =========================================================================


@dataclass(frozen=True)
class CashFlowLineItem:
    description: str
    amount: Decimal


@dataclass(frozen=True)
class CashFlowSection:
    label: str
    lines: tuple[CashFlowLineItem, ...]
    total: Decimal


@dataclass(frozen=True)
class CashFlowStatementReport:
    """
    Statement of cash flows, indirect method.

    Operating: net income + non-cash add-backs + working capital changes
    Investing: non-current asset changes
    Financing: non-current liability and equity changes
    """

    metadata: ReportMetadata
    net_income: Decimal
    operating_adjustments: CashFlowSection
    working_capital_changes: CashFlowSection
    net_cash_from_operations: Decimal
    investing_activities: CashFlowSection
    net_cash_from_investing: Decimal
    financing_activities: CashFlowSection
    net_cash_from_financing: Decimal
    net_change_in_cash: Decimal
    beginning_cash: Decimal
    ending_cash: Decimal
    cash_change_reconciles: bool
