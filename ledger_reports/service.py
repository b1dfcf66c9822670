"""
Reporting Service (``ledger_reports.service``).

Responsibility
--------------
Orchestrates report generation -- trial balance, general ledger, balance
sheet, profit and loss (plain and comparative), AR/AP aging, budget vs
actual and cash flow -- by bridging the ``LedgerSelector`` to the pure
transformation functions in ``statements``, ``aging`` and ``budget``.
This is a **read-only** service: no journal entries are posted.

Architecture position
---------------------
**Reports layer** -- above the kernel.  ``ReportingService`` is the sole
public entry point for report generation.  Constructor: ``session`` +
``clock`` + ``config``.

Invariants enforced
-------------------
* Read-only -- no mutations to the journal.
* Tenant-scoped -- every query filters on the caller's tenant.
* All monetary amounts use ``Decimal`` -- NEVER ``float``.
* Balances are derived from posted journal lines on every call.

Failure modes
-------------
* Inverted date range  -> ``InvalidReportRangeError`` raised before any
  query executes.
* Unknown account for the general ledger  -> ``AccountNotFoundError``.
* No data  -> empty sections and zero totals, never an error.

Audit relevance
---------------
Structured log events emitted for every report generation, carrying report
type, tenant and range.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import MINOR_UNIT_PLACES, round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountInfo, FiscalPeriodInfo
from ledger_kernel.exceptions import AccountNotFoundError, InvalidReportRangeError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.budget import Budget
from ledger_kernel.models.fiscal_calendar import FiscalPeriod
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_reports.aging import build_aging
from ledger_reports.budget import build_budget_vs_actual
from ledger_reports.config import ReportingConfig
from ledger_reports.models import (
    AgingReport,
    BalanceSheetReport,
    BudgetVsActualReport,
    CashFlowStatementReport,
    ComparativeProfitAndLossReport,
    GeneralLedgerReport,
    OpenDocument,
    ProfitAndLossReport,
    ReportMetadata,
    ReportType,
    TrialBalanceReport,
)
from ledger_reports.statements import (
    build_balance_sheet,
    build_cash_flow_statement,
    build_comparative_profit_and_loss,
    build_general_ledger,
    build_profit_and_loss,
    build_trial_balance,
    cash_balance,
    render_to_dict,
)

logger = get_logger("reports.service")


def _check_range(from_date: date | None, to_date: date) -> None:
    if from_date is not None and from_date > to_date:
        raise InvalidReportRangeError(from_date, to_date)


class ReportingService:
    """
    Financial report generation service.

    Contract
    --------
    * Every public method returns a typed, frozen report DTO.
    * All methods are **read-only** and scoped to ``tenant_id``.

    Guarantees
    ----------
    * Report generation delegates to pure transformation functions; no
      financial logic lives in this class.
    * Clock is injectable for deterministic ``generated_at`` stamps.

    Non-goals
    ---------
    * Does NOT post journal entries.
    * Does NOT enforce fiscal-period locks.
    * Does NOT format for spreadsheets or PDFs; see ``render_to_dict``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ReportingConfig | None = None,
        minor_unit_places: int = MINOR_UNIT_PLACES,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or ReportingConfig.with_defaults()
        self._places = minor_unit_places
        self._ledger = LedgerSelector(session, decimal_places=minor_unit_places)

    @property
    def config(self) -> ReportingConfig:
        return self._config

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _build_metadata(
        self,
        report_type: ReportType,
        tenant_id: UUID,
        as_of_date: date,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> ReportMetadata:
        """Build report metadata with injected clock timestamp."""
        return ReportMetadata(
            report_type=report_type,
            tenant_id=tenant_id,
            entity_name=self._config.entity_name,
            currency=self._config.currency,
            as_of_date=as_of_date,
            generated_at=self._clock.now().isoformat(),
            period_start=period_start,
            period_end=period_end,
        )

    def _load_account(self, tenant_id: UUID, account_id: UUID) -> AccountInfo:
        account = self._session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id == account_id)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return AccountInfo.from_model(account)

    def _periods_within(
        self, tenant_id: UUID, from_date: date, to_date: date
    ) -> list[FiscalPeriodInfo]:
        periods = self._session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.start_date >= from_date,
                FiscalPeriod.end_date <= to_date,
            )
            .order_by(FiscalPeriod.start_date)
        ).scalars()
        return [FiscalPeriodInfo.from_model(p) for p in periods]

    def _budgets_for(
        self, tenant_id: UUID, period_ids: list[UUID], cost_center_id: UUID | None = None
    ) -> dict[tuple[UUID, UUID], Decimal]:
        """
        Budgets keyed by (period_id, account_id).  Without a cost centre,
        every budget row of the account and period is added together.
        """
        if not period_ids:
            return {}
        query = select(Budget).where(
            Budget.tenant_id == tenant_id,
            Budget.fiscal_period_id.in_(period_ids),
        )
        if cost_center_id is not None:
            query = query.where(Budget.cost_center_id == cost_center_id)

        totals: dict[tuple[UUID, UUID], Decimal] = {}
        for budget in self._session.execute(query).scalars():
            key = (budget.fiscal_period_id, budget.account_id)
            totals[key] = totals.get(key, Decimal("0")) + Decimal(str(budget.amount))
        return {key: round_money(amount, self._places) for key, amount in totals.items()}

    # =========================================================================
    # Public API
    # =========================================================================

    def trial_balance(
        self,
        tenant_id: UUID,
        to_date: date,
        from_date: date | None = None,
    ) -> TrialBalanceReport:
        """
        Generate a trial balance.

        Args:
            tenant_id: Tenant scope.
            to_date: Inclusive cutoff.
            from_date: Optional inclusive start; None means from inception.

        Returns:
            TrialBalanceReport whose ``is_balanced`` reflects the raw
            debit/credit totals.

        Raises:
            InvalidReportRangeError: from_date is after to_date.
        """
        _check_range(from_date, to_date)
        rows = self._ledger.trial_balance(
            tenant_id,
            to_date=to_date,
            from_date=from_date,
            include_zero_balances=self._config.include_zero_balances,
        )
        metadata = self._build_metadata(
            ReportType.TRIAL_BALANCE, tenant_id, to_date, from_date, to_date,
        )
        report = build_trial_balance(rows, metadata)

        logger.info(
            "trial_balance_generated",
            extra={
                "tenant_id": str(tenant_id),
                "to_date": to_date.isoformat(),
                "line_count": len(report.lines),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def general_ledger(
        self,
        tenant_id: UUID,
        account_id: UUID,
        from_date: date,
        to_date: date,
    ) -> GeneralLedgerReport:
        """
        Generate the general ledger listing of one account.

        Raises:
            InvalidReportRangeError: from_date is after to_date.
            AccountNotFoundError: Account not in the tenant.
        """
        _check_range(from_date, to_date)
        account = self._load_account(tenant_id, account_id)
        opening = self._ledger.account_totals(
            tenant_id, account_id, to_date=from_date - timedelta(days=1),
        )
        lines = self._ledger.account_lines(tenant_id, account_id, from_date, to_date)
        metadata = self._build_metadata(
            ReportType.GENERAL_LEDGER, tenant_id, to_date, from_date, to_date,
        )
        report = build_general_ledger(account, opening, lines, metadata)

        logger.info(
            "general_ledger_generated",
            extra={
                "tenant_id": str(tenant_id),
                "account_code": account.code,
                "line_count": len(report.lines),
                "closing_balance": str(report.closing_balance),
            },
        )
        return report

    def balance_sheet(self, tenant_id: UUID, as_of: date) -> BalanceSheetReport:
        """
        Generate a classified balance sheet.

        Returns:
            BalanceSheetReport with A = L + E verification.
        """
        rows = self._ledger.trial_balance(tenant_id, to_date=as_of)
        metadata = self._build_metadata(ReportType.BALANCE_SHEET, tenant_id, as_of)
        report = build_balance_sheet(rows, metadata, self._config)

        logger.info(
            "balance_sheet_generated",
            extra={
                "tenant_id": str(tenant_id),
                "as_of_date": as_of.isoformat(),
                "total_assets": str(report.total_assets),
                "total_l_and_e": str(report.total_liabilities_and_equity),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def profit_and_loss(
        self,
        tenant_id: UUID,
        from_date: date,
        to_date: date,
        cost_center_id: UUID | None = None,
    ) -> ProfitAndLossReport:
        """
        Generate a multi-step profit and loss statement for a date range.

        With ``cost_center_id`` only lines tagged with that cost centre are
        counted, which gives the cost centre's profitability.

        Raises:
            InvalidReportRangeError: from_date is after to_date.
        """
        _check_range(from_date, to_date)
        rows = self._ledger.trial_balance(
            tenant_id, to_date=to_date, from_date=from_date, cost_center_id=cost_center_id,
        )
        metadata = self._build_metadata(
            ReportType.PROFIT_AND_LOSS, tenant_id, to_date, from_date, to_date,
        )
        report = build_profit_and_loss(rows, metadata, self._config)

        logger.info(
            "profit_and_loss_generated",
            extra={
                "tenant_id": str(tenant_id),
                "from_date": from_date.isoformat(),
                "to_date": to_date.isoformat(),
                "net_income": str(report.net_income),
                "cost_center_id": str(cost_center_id) if cost_center_id else None,
            },
        )
        return report

    def profit_and_loss_comparative(
        self,
        tenant_id: UUID,
        current_range: tuple[date, date],
        prior_range: tuple[date, date],
    ) -> ComparativeProfitAndLossReport:
        """
        Generate a comparative P&L with per-account variance.

        Args:
            current_range: (from_date, to_date) of the current range.
            prior_range: (from_date, to_date) of the comparison range.

        Raises:
            InvalidReportRangeError: Either range is inverted.
        """
        _check_range(*current_range)
        _check_range(*prior_range)

        current_rows = self._ledger.trial_balance(
            tenant_id, to_date=current_range[1], from_date=current_range[0],
        )
        prior_rows = self._ledger.trial_balance(
            tenant_id, to_date=prior_range[1], from_date=prior_range[0],
        )
        metadata = self._build_metadata(
            ReportType.PROFIT_AND_LOSS_COMPARATIVE,
            tenant_id,
            current_range[1],
            current_range[0],
            current_range[1],
        )
        report = build_comparative_profit_and_loss(
            current_rows, prior_rows, current_range, prior_range, metadata, self._config,
        )

        logger.info(
            "profit_and_loss_comparative_generated",
            extra={
                "tenant_id": str(tenant_id),
                "current_net_income": str(report.net_income.current),
                "prior_net_income": str(report.net_income.prior),
            },
        )
        return report

    def ar_aging(
        self, tenant_id: UUID, as_of: date, documents: Iterable[OpenDocument]
    ) -> AgingReport:
        """Age open invoices supplied by the caller."""
        return self._aging(ReportType.AR_AGING, tenant_id, as_of, documents)

    def ap_aging(
        self, tenant_id: UUID, as_of: date, documents: Iterable[OpenDocument]
    ) -> AgingReport:
        """Age open bills supplied by the caller."""
        return self._aging(ReportType.AP_AGING, tenant_id, as_of, documents)

    def _aging(
        self,
        report_type: ReportType,
        tenant_id: UUID,
        as_of: date,
        documents: Iterable[OpenDocument],
    ) -> AgingReport:
        metadata = self._build_metadata(report_type, tenant_id, as_of)
        report = build_aging(documents, as_of, metadata)

        logger.info(
            f"{report_type.value}_generated",
            extra={
                "tenant_id": str(tenant_id),
                "as_of_date": as_of.isoformat(),
                "document_count": len(report.lines),
                "total": str(report.total),
            },
        )
        return report

    def budget_vs_actual(
        self,
        tenant_id: UUID,
        from_date: date,
        to_date: date,
        cost_center_id: UUID | None = None,
    ) -> BudgetVsActualReport:
        """
        Compare budgets with posted activity for periods wholly in range.

        With ``cost_center_id`` both sides are narrowed to that cost centre:
        its budget rows and its tagged lines.

        Raises:
            InvalidReportRangeError: from_date is after to_date.
        """
        _check_range(from_date, to_date)
        periods = self._periods_within(tenant_id, from_date, to_date)
        budgets = self._budgets_for(tenant_id, [p.id for p in periods], cost_center_id)
        actuals = {
            period.id: self._ledger.account_activity(
                tenant_id, period.start_date, period.end_date, cost_center_id,
            )
            for period in periods
        }
        accounts = {a.id: a for a in self._ledger.accounts(tenant_id)}
        metadata = self._build_metadata(
            ReportType.BUDGET_VS_ACTUAL, tenant_id, to_date, from_date, to_date,
        )
        report = build_budget_vs_actual(periods, accounts, budgets, actuals, metadata)

        logger.info(
            "budget_vs_actual_generated",
            extra={
                "tenant_id": str(tenant_id),
                "period_count": len(periods),
                "line_count": len(report.lines),
                "cost_center_id": str(cost_center_id) if cost_center_id else None,
            },
        )
        return report

    def cash_flow(
        self, tenant_id: UUID, from_date: date, to_date: date
    ) -> CashFlowStatementReport:
        """
        Generate a cash flow statement (indirect method).

        Beginning cash is the cash balance at the end of the day before
        ``from_date``; ending cash is the balance at ``to_date``.

        Raises:
            InvalidReportRangeError: from_date is after to_date.
        """
        _check_range(from_date, to_date)
        classification = self._config.classification
        period_rows = self._ledger.trial_balance(tenant_id, to_date=to_date, from_date=from_date)
        beginning_cash = cash_balance(
            self._ledger.trial_balance(tenant_id, to_date=from_date - timedelta(days=1)),
            classification,
        )
        ending_cash = cash_balance(
            self._ledger.trial_balance(tenant_id, to_date=to_date), classification,
        )
        metadata = self._build_metadata(
            ReportType.CASH_FLOW, tenant_id, to_date, from_date, to_date,
        )
        report = build_cash_flow_statement(
            period_rows, beginning_cash, ending_cash, metadata, self._config,
        )

        logger.info(
            "cash_flow_generated",
            extra={
                "tenant_id": str(tenant_id),
                "net_change_in_cash": str(report.net_change_in_cash),
                "cash_change_reconciles": report.cash_change_reconciles,
            },
        )
        if not report.cash_change_reconciles:
            logger.warning(
                "cash_flow_not_reconciled",
                extra={
                    "tenant_id": str(tenant_id),
                    "beginning_cash": str(report.beginning_cash),
                    "net_change_in_cash": str(report.net_change_in_cash),
                    "ending_cash": str(report.ending_cash),
                },
            )
        return report

    # =========================================================================
    # Rendering
    # =========================================================================

    @staticmethod
    def to_dict(report: object) -> dict:
        """Convert any report to a plain dict for JSON serialization."""
        return render_to_dict(report)
