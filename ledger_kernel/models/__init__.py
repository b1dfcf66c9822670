"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountTag, AccountType, NormalBalance
from ledger_kernel.models.audit_log import AuditAction, AuditLogEntry
from ledger_kernel.models.budget import Budget
from ledger_kernel.models.document_sequence import DocumentSequence
from ledger_kernel.models.fiscal_calendar import FiscalPeriod, FiscalYear, PeriodStatus
from ledger_kernel.models.journal import JournalEntry, JournalLine

__all__ = [
    "Account",
    "AccountTag",
    "AccountType",
    "NormalBalance",
    "AuditAction",
    "AuditLogEntry",
    "Budget",
    "DocumentSequence",
    "FiscalPeriod",
    "FiscalYear",
    "PeriodStatus",
    "JournalEntry",
    "JournalLine",
]
