"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: per-account activity sums, trial
    balance rows, and the chronological line listing behind the general
    ledger.  The ledger is a derived view over posted JournalLines -- there
    are no stored balances anywhere in the system.
Architecture position: Kernel > Selectors.  May import from models/, db/,
    domain/dtos and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Only lines of posted entries are read.
    - Tenant scoping on the line, the entry and the account.
    - Sums come back as Decimal rounded to the ledger's minor-unit places,
      which is lossless because posting rejects finer amounts.  They are
      never accumulated in float: SUM() runs in the database only where it
      has a native decimal type.

Failure modes:
    - Returns empty results or zero balances when no posted entries exist.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import MINOR_UNIT_PLACES, ZERO, round_money
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.models.account import Account, NormalBalance
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountActivityRow:
    """Posted debit and credit totals of one account over a date range."""

    account_id: UUID
    debit_total: Decimal
    credit_total: Decimal
    line_count: int

    @property
    def net(self) -> Decimal:
        """debit_total - credit_total."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single row in a trial balance."""

    account: AccountInfo
    debit_total: Decimal
    credit_total: Decimal

    @property
    def account_id(self) -> UUID:
        return self.account.id

    @property
    def account_code(self) -> str:
        return self.account.code

    @property
    def account_name(self) -> str:
        return self.account.name

    @property
    def balance(self) -> Decimal:
        """Net balance in the account's normal-balance sign."""
        return signed_balance(self.account.normal_balance, self.debit_total, self.credit_total)


@dataclass(frozen=True)
class LedgerLine:
    """A single posted line with its entry header fields."""

    journal_entry_id: UUID
    journal_line_id: UUID
    journal_number: int
    document_sequence_number: str
    entry_date: date
    line_number: int
    account_id: UUID
    debit: Decimal
    credit: Decimal
    description: str | None
    memo: str | None
    source_type: str
    source_id: str
    cost_center_id: UUID | None = None


def signed_balance(normal_balance: str, debits: Decimal, credits: Decimal) -> Decimal:
    """debits - credits for debit-normal accounts, credits - debits otherwise."""
    if normal_balance == NormalBalance.DEBIT.value:
        return debits - credits
    return credits - debits


class LedgerSelector(BaseSelector[JournalLine]):
    """
    Selector for ledger queries -- the authoritative balance computation.

    Contract:
        Dates filter on JournalEntry.entry_date; both bounds are inclusive
        and either may be None (unbounded).  A cost_center_id narrows the
        lines to that cost centre; None means every line.

    Guarantees:
        - All amounts are Decimal (never float).  Where the database has no
          native decimal (SQLite) the loaded line amounts are added here
          instead of by SUM().
        - Ordering of line listings: entry_date, journal_number, line_number.

    Non-goals:
        - Currency conversion.  The ledger is single-currency per tenant.
    """

    def __init__(self, session: Session, decimal_places: int = MINOR_UNIT_PLACES):
        super().__init__(session)
        self._places = decimal_places

    def _money(self, value) -> Decimal:
        if value is None:
            return round_money(ZERO, self._places)
        return round_money(Decimal(str(value)), self._places)

    @property
    def _sums_exactly(self) -> bool:
        return self.session.get_bind().dialect.supports_native_decimal

    def _posted_criteria(
        self,
        tenant_id: UUID,
        from_date: date | None,
        to_date: date | None,
        cost_center_id: UUID | None = None,
    ) -> list:
        criteria = [
            JournalLine.tenant_id == tenant_id,
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.is_posted.is_(True),
        ]
        if from_date is not None:
            criteria.append(JournalEntry.entry_date >= from_date)
        if to_date is not None:
            criteria.append(JournalEntry.entry_date <= to_date)
        if cost_center_id is not None:
            criteria.append(JournalLine.cost_center_id == cost_center_id)
        return criteria

    def _totals_by(self, key, criteria: list) -> list[tuple]:
        """(key, debit sum, credit sum, line count) for each key value."""
        if self._sums_exactly:
            query = (
                select(
                    key,
                    func.sum(JournalLine.debit),
                    func.sum(JournalLine.credit),
                    func.count(JournalLine.id),
                )
                .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
                .where(*criteria)
                .group_by(key)
            )
            return list(self.session.execute(query).all())

        query = (
            select(key, JournalLine.debit, JournalLine.credit)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(*criteria)
        )
        totals: dict = {}
        for value, debit, credit in self.session.execute(query):
            debits, credits, count = totals.get(value, (ZERO, ZERO, 0))
            totals[value] = (debits + debit, credits + credit, count + 1)
        return [(value, *sums) for value, sums in totals.items()]

    def account_activity(
        self,
        tenant_id: UUID,
        from_date: date | None = None,
        to_date: date | None = None,
        cost_center_id: UUID | None = None,
    ) -> dict[UUID, AccountActivityRow]:
        """Per-account posted totals for accounts with activity in range."""
        criteria = self._posted_criteria(tenant_id, from_date, to_date, cost_center_id)
        criteria.append(
            JournalLine.account_id.in_(select(Account.id).where(Account.tenant_id == tenant_id))
        )
        return {
            account_id: AccountActivityRow(
                account_id=account_id,
                debit_total=self._money(debits),
                credit_total=self._money(credits),
                line_count=count,
            )
            for account_id, debits, credits, count
            in self._totals_by(JournalLine.account_id, criteria)
        }

    def accounts(self, tenant_id: UUID) -> list[AccountInfo]:
        """Every account of the tenant, ordered by code."""
        rows = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id).order_by(Account.code)
        ).scalars()
        return [AccountInfo.from_model(a) for a in rows]

    def trial_balance(
        self,
        tenant_id: UUID,
        to_date: date | None = None,
        from_date: date | None = None,
        include_zero_balances: bool = False,
        cost_center_id: UUID | None = None,
    ) -> list[TrialBalanceRow]:
        """
        Trial balance rows ordered by account code.

        Accounts without activity appear only when include_zero_balances is
        set, and then only if active.
        """
        activity = self.account_activity(tenant_id, from_date, to_date, cost_center_id)
        zero = self._money(ZERO)

        rows: list[TrialBalanceRow] = []
        for account in self.accounts(tenant_id):
            row = activity.get(account.id)
            if row is None:
                if include_zero_balances and account.is_active:
                    rows.append(TrialBalanceRow(account, zero, zero))
                continue
            rows.append(TrialBalanceRow(account, row.debit_total, row.credit_total))
        return rows

    def account_totals(
        self,
        tenant_id: UUID,
        account_id: UUID,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> AccountActivityRow:
        """Posted totals for one account; zeros when it has no activity."""
        criteria = self._posted_criteria(tenant_id, from_date, to_date)
        criteria.append(JournalLine.account_id == account_id)
        for _, debits, credits, count in self._totals_by(JournalLine.account_id, criteria):
            return AccountActivityRow(
                account_id=account_id,
                debit_total=self._money(debits),
                credit_total=self._money(credits),
                line_count=count,
            )
        return AccountActivityRow(account_id, self._money(None), self._money(None), 0)

    def account_lines(
        self,
        tenant_id: UUID,
        account_id: UUID,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[LedgerLine]:
        """Posted lines of one account in chronological order."""
        query = (
            select(
                JournalLine,
                JournalEntry.journal_number,
                JournalEntry.document_sequence_number,
                JournalEntry.entry_date,
                JournalEntry.memo,
                JournalEntry.source_type,
                JournalEntry.source_id,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                *self._posted_criteria(tenant_id, from_date, to_date),
                JournalLine.account_id == account_id,
            )
            .order_by(
                JournalEntry.entry_date,
                JournalEntry.journal_number,
                JournalLine.line_number,
            )
        )
        return [
            LedgerLine(
                journal_entry_id=line.journal_entry_id,
                journal_line_id=line.id,
                journal_number=journal_number,
                document_sequence_number=docnum,
                entry_date=entry_date,
                line_number=line.line_number,
                account_id=line.account_id,
                debit=self._money(line.debit),
                credit=self._money(line.credit),
                description=line.description,
                memo=memo,
                source_type=source_type,
                source_id=source_id,
                cost_center_id=line.cost_center_id,
            )
            for line, journal_number, docnum, entry_date, memo, source_type, source_id
            in self.session.execute(query).all()
        ]

    def total_debits_credits(
        self, tenant_id: UUID, to_date: date | None = None
    ) -> tuple[Decimal, Decimal]:
        """Ledger-wide posted (debits, credits)."""
        criteria = self._posted_criteria(tenant_id, None, to_date)
        for _, debits, credits, _ in self._totals_by(JournalLine.tenant_id, criteria):
            return self._money(debits), self._money(credits)
        return self._money(None), self._money(None)
