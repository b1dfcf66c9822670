"""
Pure financial statement transformation functions.

These functions transform trial balance rows and ledger lines into
structured financial statements. ZERO I/O. ZERO side effects.

All monetary values are Decimal. All inputs/outputs are frozen dataclasses.

Functions in this module follow the ledger_kernel/domain/ purity convention:
- No database access
- No clock access
- No file I/O
- Deterministic: same inputs always produce same outputs

Section totals are taken on the side of the account TYPE (debit - credit for
assets and expenses, credit - debit for everything else), so a contra account
such as accumulated depreciation reduces its section total even though its
own line shows a positive natural balance.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import ZERO, percentage
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.models.account import AccountType
from ledger_kernel.selectors.ledger_selector import (
    AccountActivityRow,
    LedgerLine,
    TrialBalanceRow,
    signed_balance,
)
from ledger_reports.config import AccountClassification, ReportingConfig
from ledger_reports.models import (
    BalanceSheetReport,
    CashFlowLineItem,
    CashFlowSection,
    CashFlowStatementReport,
    ComparativeProfitAndLossReport,
    ComparativeSection,
    GeneralLedgerLine,
    GeneralLedgerReport,
    ProfitAndLossReport,
    ReportMetadata,
    StatementSection,
    TrialBalanceLineItem,
    TrialBalanceReport,
    VarianceLine,
)

_DEBIT_SIDE_TYPES = (AccountType.ASSET.value, AccountType.EXPENSE.value)

# =========================================================================
# Helpers
# =========================================================================


def type_side_balance(row: TrialBalanceRow) -> Decimal:
    """Balance on the side of the account's type, used for section totals."""
    if row.account.account_type in _DEBIT_SIDE_TYPES:
        return row.debit_total - row.credit_total
    return row.credit_total - row.debit_total


def to_line_item(row: TrialBalanceRow) -> TrialBalanceLineItem:
    return TrialBalanceLineItem(
        account_id=row.account_id,
        account_code=row.account_code,
        account_name=row.account_name,
        account_type=row.account.account_type,
        debit_balance=row.debit_total,
        credit_balance=row.credit_total,
        net_balance=row.balance,
    )


def compute_net_income(rows: Iterable[TrialBalanceRow]) -> Decimal:
    """
    Net income = sum(REVENUE balances) - sum(EXPENSE balances).

    Only REVENUE and EXPENSE accounts are considered.
    """
    total = ZERO
    for row in rows:
        if row.account.account_type == AccountType.REVENUE.value:
            total += row.credit_total - row.debit_total
        elif row.account.account_type == AccountType.EXPENSE.value:
            total -= row.debit_total - row.credit_total
    return total


def _make_section(
    label: str,
    rows: list[TrialBalanceRow],
    include_zero_balances: bool,
) -> StatementSection:
    shown = [
        row for row in rows
        if include_zero_balances or row.debit_total != row.credit_total
    ]
    return StatementSection(
        label=label,
        lines=tuple(to_line_item(row) for row in sorted(shown, key=lambda r: r.account_code)),
        total=sum((type_side_balance(row) for row in rows), ZERO),
    )


def is_cash_account(account: AccountInfo, classification: AccountClassification) -> bool:
    """Cash accounts are asset accounts carrying a cash tag or a cash prefix."""
    if account.account_type != AccountType.ASSET.value:
        return False
    if any(account.has_tag(tag) for tag in classification.cash_tags):
        return True
    return classification.matches_prefix(account.code, classification.cash_account_prefixes)


def cash_balance(rows: Iterable[TrialBalanceRow], classification: AccountClassification) -> Decimal:
    """Sum of debit - credit over the cash accounts in ``rows``."""
    return sum(
        (
            row.debit_total - row.credit_total
            for row in rows
            if is_cash_account(row.account, classification)
        ),
        ZERO,
    )


# =========================================================================
# Trial Balance
# =========================================================================


def build_trial_balance(
    rows: list[TrialBalanceRow],
    metadata: ReportMetadata,
) -> TrialBalanceReport:
    """
    Build a trial balance report.

    Totals are the raw debit and credit sums, which must agree for a
    balanced ledger regardless of account classification.
    """
    lines = tuple(to_line_item(row) for row in sorted(rows, key=lambda r: r.account_code))
    total_debits = sum((row.debit_total for row in rows), ZERO)
    total_credits = sum((row.credit_total for row in rows), ZERO)

    return TrialBalanceReport(
        metadata=metadata,
        lines=lines,
        total_debits=total_debits,
        total_credits=total_credits,
        is_balanced=total_debits == total_credits,
    )


# =========================================================================
# General Ledger
# =========================================================================


def build_general_ledger(
    account: AccountInfo,
    opening: AccountActivityRow,
    lines: list[LedgerLine],
    metadata: ReportMetadata,
) -> GeneralLedgerReport:
    """
    Build a general ledger listing for one account.

    The opening balance carries forward all posted activity before the
    range; each line's running balance is in the account's normal-balance
    sign.
    """
    opening_balance = signed_balance(
        account.normal_balance, opening.debit_total, opening.credit_total,
    )

    running = opening_balance
    gl_lines: list[GeneralLedgerLine] = []
    for line in lines:
        running += signed_balance(account.normal_balance, line.debit, line.credit)
        gl_lines.append(
            GeneralLedgerLine(
                entry_date=line.entry_date,
                journal_number=line.journal_number,
                document_sequence_number=line.document_sequence_number,
                journal_entry_id=line.journal_entry_id,
                description=line.description or line.memo,
                debit=line.debit,
                credit=line.credit,
                running_balance=running,
            )
        )

    return GeneralLedgerReport(
        metadata=metadata,
        account_id=account.id,
        account_code=account.code,
        account_name=account.name,
        normal_balance=account.normal_balance,
        opening_balance=opening_balance,
        lines=tuple(gl_lines),
        total_debits=sum((line.debit for line in lines), ZERO),
        total_credits=sum((line.credit for line in lines), ZERO),
        closing_balance=running,
    )


# =========================================================================
# Balance Sheet
# =========================================================================


def classify_for_balance_sheet(
    rows: list[TrialBalanceRow],
    config: ReportingConfig,
) -> dict[str, list[TrialBalanceRow]]:
    """
    Classify rows into balance sheet sections.

    Returns dict with keys: current_assets, non_current_assets,
    current_liabilities, non_current_liabilities, equity.
    Revenue and expense rows are excluded; they flow into current earnings.
    """
    cls = config.classification
    result: dict[str, list[TrialBalanceRow]] = {
        "current_assets": [],
        "non_current_assets": [],
        "current_liabilities": [],
        "non_current_liabilities": [],
        "equity": [],
    }

    for row in rows:
        account_type = row.account.account_type
        code = row.account_code
        if account_type == AccountType.ASSET.value:
            if cls.matches_prefix(code, cls.non_current_asset_prefixes):
                result["non_current_assets"].append(row)
            else:
                result["current_assets"].append(row)
        elif account_type == AccountType.LIABILITY.value:
            if cls.matches_prefix(code, cls.non_current_liability_prefixes):
                result["non_current_liabilities"].append(row)
            else:
                result["current_liabilities"].append(row)
        elif account_type == AccountType.EQUITY.value:
            result["equity"].append(row)

    return result


def build_balance_sheet(
    rows: list[TrialBalanceRow],
    metadata: ReportMetadata,
    config: ReportingConfig,
) -> BalanceSheetReport:
    """
    Build a classified balance sheet from cumulative rows up to the as-of date.

    Current earnings (cumulative revenue - expenses) is presented inside
    equity, so A = L + E holds for any balanced ledger without closing
    entries.
    """
    classified = classify_for_balance_sheet(rows, config)
    include_zero = config.include_zero_balances

    current_assets = _make_section("Current Assets", classified["current_assets"], include_zero)
    non_current_assets = _make_section(
        "Non-Current Assets", classified["non_current_assets"], include_zero,
    )
    current_liabilities = _make_section(
        "Current Liabilities", classified["current_liabilities"], include_zero,
    )
    non_current_liabilities = _make_section(
        "Non-Current Liabilities", classified["non_current_liabilities"], include_zero,
    )
    equity = _make_section("Equity", classified["equity"], include_zero)

    current_earnings = compute_net_income(rows)

    total_assets = current_assets.total + non_current_assets.total
    total_liabilities = current_liabilities.total + non_current_liabilities.total
    total_equity = equity.total + current_earnings
    total_le = total_liabilities + total_equity

    return BalanceSheetReport(
        metadata=metadata,
        current_assets=current_assets,
        non_current_assets=non_current_assets,
        total_assets=total_assets,
        current_liabilities=current_liabilities,
        non_current_liabilities=non_current_liabilities,
        total_liabilities=total_liabilities,
        equity=equity,
        current_earnings=current_earnings,
        total_equity=total_equity,
        total_liabilities_and_equity=total_le,
        is_balanced=total_assets == total_le,
    )


# =========================================================================
# Profit and Loss
# =========================================================================

_PNL_SECTIONS = (
    ("revenue", "Revenue"),
    ("cogs", "Cost of Goods Sold"),
    ("operating_expenses", "Operating Expenses"),
    ("other_income", "Other Income"),
    ("other_expenses", "Other Expenses"),
)


def classify_for_income_statement(
    rows: list[TrialBalanceRow],
    config: ReportingConfig,
) -> dict[str, list[TrialBalanceRow]]:
    """
    Classify rows into multi-step income statement sections.

    Returns dict with keys: revenue, cogs, operating_expenses,
    other_income, other_expenses.
    """
    cls = config.classification
    result: dict[str, list[TrialBalanceRow]] = {key: [] for key, _ in _PNL_SECTIONS}

    for row in rows:
        account_type = row.account.account_type
        code = row.account_code
        if account_type == AccountType.REVENUE.value:
            if cls.matches_prefix(code, cls.other_income_prefixes):
                result["other_income"].append(row)
            else:
                result["revenue"].append(row)
        elif account_type == AccountType.EXPENSE.value:
            if cls.matches_prefix(code, cls.cogs_prefixes):
                result["cogs"].append(row)
            elif cls.matches_prefix(code, cls.other_expense_prefixes):
                result["other_expenses"].append(row)
            else:
                result["operating_expenses"].append(row)

    return result


def build_profit_and_loss(
    rows: list[TrialBalanceRow],
    metadata: ReportMetadata,
    config: ReportingConfig,
) -> ProfitAndLossReport:
    """
    Build a multi-step income statement from the activity of a date range.

    Revenue - COGS = Gross Profit
    Gross Profit - Operating Expenses = Operating Income
    Operating Income + Other Income - Other Expenses = Net Income
    """
    classified = classify_for_income_statement(rows, config)
    sections = {
        key: _make_section(label, classified[key], config.include_zero_balances)
        for key, label in _PNL_SECTIONS
    }

    gross_profit = sections["revenue"].total - sections["cogs"].total
    operating_income = gross_profit - sections["operating_expenses"].total
    net_income = (
        operating_income
        + sections["other_income"].total
        - sections["other_expenses"].total
    )

    return ProfitAndLossReport(
        metadata=metadata,
        revenue=sections["revenue"],
        cogs=sections["cogs"],
        gross_profit=gross_profit,
        operating_expenses=sections["operating_expenses"],
        operating_income=operating_income,
        other_income=sections["other_income"],
        other_expenses=sections["other_expenses"],
        total_revenue=sections["revenue"].total + sections["other_income"].total,
        total_expenses=(
            sections["cogs"].total
            + sections["operating_expenses"].total
            + sections["other_expenses"].total
        ),
        net_income=net_income,
    )


def variance_line(
    label: str,
    current: Decimal,
    prior: Decimal,
    account_id: UUID | None = None,
    account_code: str | None = None,
) -> VarianceLine:
    """variance = current - prior; variance_pct relative to |prior|, 0 when prior is 0."""
    variance = current - prior
    return VarianceLine(
        label=label,
        current=current,
        prior=prior,
        variance=variance,
        variance_pct=percentage(variance, prior),
        account_id=account_id,
        account_code=account_code,
    )


def build_comparative_profit_and_loss(
    current_rows: list[TrialBalanceRow],
    prior_rows: list[TrialBalanceRow],
    current_range: tuple[date, date],
    prior_range: tuple[date, date],
    metadata: ReportMetadata,
    config: ReportingConfig,
) -> ComparativeProfitAndLossReport:
    """
    Build a side-by-side P&L for two date ranges.

    Every account active in either range appears in its section with a
    zero on the side where it had no activity.
    """
    current = build_profit_and_loss(current_rows, metadata, config)
    prior = build_profit_and_loss(prior_rows, metadata, config)
    current_classified = classify_for_income_statement(current_rows, config)
    prior_classified = classify_for_income_statement(prior_rows, config)

    sections: list[ComparativeSection] = []
    for key, label in _PNL_SECTIONS:
        current_by_id = {row.account_id: row for row in current_classified[key]}
        prior_by_id = {row.account_id: row for row in prior_classified[key]}
        accounts = {
            row.account_id: row for row in (*prior_classified[key], *current_classified[key])
        }

        lines = []
        for account_id, row in sorted(accounts.items(), key=lambda item: item[1].account_code):
            cur = current_by_id.get(account_id)
            pri = prior_by_id.get(account_id)
            lines.append(
                variance_line(
                    row.account_name,
                    type_side_balance(cur) if cur is not None else ZERO,
                    type_side_balance(pri) if pri is not None else ZERO,
                    account_id=account_id,
                    account_code=row.account_code,
                )
            )

        sections.append(
            ComparativeSection(
                label=label,
                lines=tuple(lines),
                total=variance_line(
                    f"Total {label}",
                    getattr(current, key).total,
                    getattr(prior, key).total,
                ),
            )
        )

    return ComparativeProfitAndLossReport(
        metadata=metadata,
        current_start=current_range[0],
        current_end=current_range[1],
        prior_start=prior_range[0],
        prior_end=prior_range[1],
        sections=tuple(sections),
        gross_profit=variance_line("Gross Profit", current.gross_profit, prior.gross_profit),
        operating_income=variance_line(
            "Operating Income", current.operating_income, prior.operating_income,
        ),
        net_income=variance_line("Net Income", current.net_income, prior.net_income),
    )


# =========================================================================
# Cash Flow Statement (indirect method)
# =========================================================================


def build_cash_flow_statement(
    period_rows: list[TrialBalanceRow],
    beginning_cash: Decimal,
    ending_cash: Decimal,
    metadata: ReportMetadata,
    config: ReportingConfig,
) -> CashFlowStatementReport:
    """
    Build a cash flow statement using the indirect method.

    ``period_rows`` is the activity of the reporting range.  Every non-cash
    balance-sheet account contributes ``credit - debit`` (an increase in an
    asset uses cash, an increase in a liability or equity provides it):

    - Operating: net income + non-cash add-backs + working capital changes
    - Investing: non-current asset changes
    - Financing: non-current liability and equity changes

    Because the ledger balances, the three sections sum to the change in
    cash accounts; ``cash_change_reconciles`` confirms it against the
    independently computed beginning and ending cash.
    """
    cls = config.classification
    net_income = compute_net_income(period_rows)

    adjustments: list[CashFlowLineItem] = []
    working_capital: list[CashFlowLineItem] = []
    investing: list[CashFlowLineItem] = []
    financing: list[CashFlowLineItem] = []

    for row in sorted(period_rows, key=lambda r: r.account_code):
        account = row.account
        account_type = account.account_type
        if account_type in (AccountType.REVENUE.value, AccountType.EXPENSE.value):
            continue
        if is_cash_account(account, cls):
            continue

        effect = row.credit_total - row.debit_total
        if effect == ZERO:
            continue
        label = f"{account.code} {account.name}"

        if any(account.has_tag(tag) for tag in cls.non_cash_addback_tags):
            adjustments.append(CashFlowLineItem(f"Add back: {label}", effect))
        elif account_type == AccountType.ASSET.value:
            if cls.matches_prefix(account.code, cls.non_current_asset_prefixes):
                investing.append(CashFlowLineItem(f"Change in {label}", effect))
            else:
                working_capital.append(CashFlowLineItem(f"Change in {label}", effect))
        elif account_type == AccountType.LIABILITY.value:
            if cls.matches_prefix(account.code, cls.non_current_liability_prefixes):
                financing.append(CashFlowLineItem(f"Change in {label}", effect))
            else:
                working_capital.append(CashFlowLineItem(f"Change in {label}", effect))
        else:
            financing.append(CashFlowLineItem(f"Change in {label}", effect))

    def _section(label: str, items: list[CashFlowLineItem]) -> CashFlowSection:
        return CashFlowSection(
            label=label,
            lines=tuple(items),
            total=sum((item.amount for item in items), ZERO),
        )

    adj_section = _section("Adjustments for Non-Cash Items", adjustments)
    wc_section = _section("Changes in Working Capital", working_capital)
    inv_section = _section("Investing Activities", investing)
    fin_section = _section("Financing Activities", financing)

    net_operating = net_income + adj_section.total + wc_section.total
    net_change = net_operating + inv_section.total + fin_section.total

    return CashFlowStatementReport(
        metadata=metadata,
        net_income=net_income,
        operating_adjustments=adj_section,
        working_capital_changes=wc_section,
        net_cash_from_operations=net_operating,
        investing_activities=inv_section,
        net_cash_from_investing=inv_section.total,
        financing_activities=fin_section,
        net_cash_from_financing=fin_section.total,
        net_change_in_cash=net_change,
        beginning_cash=beginning_cash,
        ending_cash=ending_cash,
        cash_change_reconciles=beginning_cash + net_change == ending_cash,
    )


# =========================================================================
# Rendering
# =========================================================================


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Handles:
    - Decimal -> str (preserving precision)
    - UUID -> str
    - date -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    - None preserved
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
