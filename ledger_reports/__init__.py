"""
Financial Reporting (``ledger_reports``).

Responsibility
--------------
Read-only package that generates reports from the ledger: trial balance,
general ledger, classified balance sheet, multi-step and comparative
profit and loss, AR/AP aging, budget vs actual and the cash flow
statement (indirect method).

Architecture position
---------------------
**Reports layer** -- above ``ledger_kernel``.  Reads posted journal lines
through ``LedgerSelector``; all statement arithmetic lives in pure
functions.

Invariants enforced
-------------------
* No journal entries are created by this package.
* Every figure derives from posted journal lines; there are no stored
  balances.

Audit relevance
---------------
Statement generation is deterministic and reproducible from the journal.
Report metadata carries the tenant, range and generation timestamp.
"""

from ledger_reports.aging import BUCKETS, build_aging
from ledger_reports.config import AccountClassification, ReportingConfig
from ledger_reports.models import (
    AgingBucketTotal,
    AgingLine,
    AgingReport,
    BalanceSheetReport,
    BudgetVarianceLine,
    BudgetVsActualReport,
    CashFlowLineItem,
    CashFlowSection,
    CashFlowStatementReport,
    ComparativeProfitAndLossReport,
    ComparativeSection,
    CounterpartyAging,
    GeneralLedgerLine,
    GeneralLedgerReport,
    OpenDocument,
    ProfitAndLossReport,
    ReportMetadata,
    ReportType,
    StatementSection,
    TrialBalanceLineItem,
    TrialBalanceReport,
    VarianceLine,
)
from ledger_reports.service import ReportingService
from ledger_reports.statements import render_to_dict

__all__ = [
    "AccountClassification",
    "AgingBucketTotal",
    "AgingLine",
    "AgingReport",
    "BUCKETS",
    "BalanceSheetReport",
    "BudgetVarianceLine",
    "BudgetVsActualReport",
    "CashFlowLineItem",
    "CashFlowSection",
    "CashFlowStatementReport",
    "ComparativeProfitAndLossReport",
    "ComparativeSection",
    "CounterpartyAging",
    "GeneralLedgerLine",
    "GeneralLedgerReport",
    "OpenDocument",
    "ProfitAndLossReport",
    "ReportMetadata",
    "ReportType",
    "ReportingConfig",
    "ReportingService",
    "StatementSection",
    "TrialBalanceLineItem",
    "TrialBalanceReport",
    "VarianceLine",
    "build_aging",
    "render_to_dict",
]
