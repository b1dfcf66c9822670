"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that cross the service boundary: LineSpec (the
    posting input), PostingResult (the posting output), and read-side views
    of accounts, fiscal years, periods and journal entries.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  from_model() class methods are
    boundary converters invoked only from the service layer.

Invariants enforced:
    - Callers never receive ORM entities from a service; they receive these
      frozen views, so a posted entry cannot be mutated through a return
      value.

Data flow:
    LineSpec[] -> PostingService.post -> PostingResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.fiscal_calendar import (
        FiscalPeriod as FiscalPeriodModel,
        FiscalYear as FiscalYearModel,
    )
    from ledger_kernel.models.journal import (
        JournalEntry as JournalEntryModel,
        JournalLine as JournalLineModel,
    )

ZERO = Decimal("0")


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    Contract:
        Exactly one of debit/credit should be non-zero and neither negative.
        PostingService validates this and reports the offending line number;
        LineSpec itself accepts any Decimal so that the caller gets the
        ledger's typed error rather than a constructor failure.

        cost_center_id optionally tags the line for cost-centre reporting.
    """

    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    cost_center_id: UUID | None = None

    @classmethod
    def dr(
        cls,
        account_id: UUID,
        amount: Decimal | str,
        description: str | None = None,
        cost_center_id: UUID | None = None,
    ) -> LineSpec:
        """Debit line."""
        return cls(
            account_id=account_id,
            debit=Decimal(amount),
            description=description,
            cost_center_id=cost_center_id,
        )

    @classmethod
    def cr(
        cls,
        account_id: UUID,
        amount: Decimal | str,
        description: str | None = None,
        cost_center_id: UUID | None = None,
    ) -> LineSpec:
        """Credit line."""
        return cls(
            account_id=account_id,
            credit=Decimal(amount),
            description=description,
            cost_center_id=cost_center_id,
        )

    def swapped(self, description: str | None = None) -> LineSpec:
        """The mirror line: debit and credit exchanged."""
        return LineSpec(
            account_id=self.account_id,
            debit=self.credit,
            credit=self.debit,
            description=description if description is not None else self.description,
            cost_center_id=self.cost_center_id,
        )


class PostingStatus(str, Enum):
    """Outcome of a post() call."""

    POSTED = "posted"
    ALREADY_POSTED = "already_posted"


@dataclass(frozen=True)
class PostingResult:
    """
    Result of PostingService.post.

    ALREADY_POSTED means the (source_type, source_id) pair had been posted
    before; entry_id then names the existing entry and nothing was written.
    """

    status: PostingStatus
    entry_id: UUID
    document_sequence_number: str
    journal_number: int
    fiscal_period_id: UUID

    @property
    def is_new(self) -> bool:
        return self.status == PostingStatus.POSTED


@dataclass(frozen=True)
class AccountInfo:
    """Read-only view of a chart-of-accounts row."""

    id: UUID
    tenant_id: UUID
    code: str
    name: str
    account_type: str
    normal_balance: str
    parent_id: UUID | None
    is_active: bool
    is_locked: bool
    is_system: bool
    tags: tuple[str, ...] = ()
    description: str | None = None

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            code=model.code,
            name=model.name,
            account_type=model.account_type,
            normal_balance=model.normal_balance,
            parent_id=model.parent_id,
            is_active=model.is_active,
            is_locked=model.is_locked,
            is_system=model.is_system,
            tags=tuple(model.tags or ()),
            description=model.description,
        )

    def has_tag(self, tag: str) -> bool:
        value = getattr(tag, "value", tag)
        return value in self.tags


@dataclass(frozen=True)
class FiscalPeriodInfo:
    """Read-only view of a fiscal period."""

    id: UUID
    tenant_id: UUID
    fiscal_year_id: UUID
    period_number: int
    name: str
    start_date: date
    end_date: date
    status: str
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None

    @classmethod
    def from_model(cls, model: FiscalPeriodModel) -> FiscalPeriodInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            fiscal_year_id=model.fiscal_year_id,
            period_number=model.period_number,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=model.status,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
        )

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date


@dataclass(frozen=True)
class FiscalYearInfo:
    """Read-only view of a fiscal year and its periods."""

    id: UUID
    tenant_id: UUID
    name: str
    start_date: date
    end_date: date
    is_active: bool
    periods: tuple[FiscalPeriodInfo, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, model: FiscalYearModel) -> FiscalYearInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            is_active=model.is_active,
            periods=tuple(
                FiscalPeriodInfo.from_model(p)
                for p in sorted(model.periods, key=lambda p: p.period_number)
            ),
        )


@dataclass(frozen=True)
class JournalLineInfo:
    """Read-only view of a journal line."""

    id: UUID
    account_id: UUID
    line_number: int
    debit: Decimal
    credit: Decimal
    description: str | None
    cost_center_id: UUID | None = None

    @classmethod
    def from_model(cls, model: JournalLineModel) -> JournalLineInfo:
        return cls(
            id=model.id,
            account_id=model.account_id,
            line_number=model.line_number,
            debit=model.debit,
            credit=model.credit,
            description=model.description,
            cost_center_id=model.cost_center_id,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    """Read-only view of a journal entry with its lines."""

    id: UUID
    tenant_id: UUID
    entry_date: date
    fiscal_period_id: UUID
    source_type: str
    source_id: str
    memo: str | None
    is_posted: bool
    posted_at: datetime | None
    is_reversal: bool
    reversed_entry_id: UUID | None
    reversed_by_entry_id: UUID | None
    document_sequence_number: str
    journal_number: int
    lines: tuple[JournalLineInfo, ...]

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            entry_date=model.entry_date,
            fiscal_period_id=model.fiscal_period_id,
            source_type=model.source_type,
            source_id=model.source_id,
            memo=model.memo,
            is_posted=model.is_posted,
            posted_at=model.posted_at,
            is_reversal=model.is_reversal,
            reversed_entry_id=model.reversed_entry_id,
            reversed_by_entry_id=model.reversed_by_entry_id,
            document_sequence_number=model.document_sequence_number,
            journal_number=model.journal_number,
            lines=tuple(JournalLineInfo.from_model(line) for line in model.lines),
        )

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)
