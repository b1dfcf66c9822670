"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    single source of financial truth.  Every balance and statement is a sum
    over these rows.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/ or domain/.

Invariants enforced:
    - (tenant_id, source_type, source_id) is unique: posting a document twice
      yields one entry.
    - (tenant_id, document_sequence_number) and (tenant_id, journal_number)
      are unique.
    - reversed_entry_id is unique: an entry is reversed at most once.
    - Balance per entry is checked by PostingService before insert; the
      is_balanced property is a read-side convenience only.

Failure modes:
    - IntegrityError on a duplicate source, sequence number or reversal link.

Audit relevance:
    Rows are never deleted.  After posting, the only column that changes is
    reversed_by_entry_id on the original of a reversal.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import ExactDecimal, TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.fiscal_calendar import FiscalPeriod


class JournalEntry(TrackedBase):
    """
    Journal entry header -- the atomic unit of double-entry accounting.

    Contract:
        Created only by PostingService, together with all of its lines, in
        one transaction.  A reversal is a separate entry with is_reversal set
        and reversed_entry_id naming the original.

    Guarantees:
        - sum(debit) == sum(credit) > 0 over its lines (checked at posting).
        - journal_number is the tenant-wide posting order.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "source_type", "source_id", name="uq_journal_tenant_source"
        ),
        UniqueConstraint(
            "tenant_id", "document_sequence_number", name="uq_journal_tenant_docnum"
        ),
        UniqueConstraint(
            "tenant_id", "journal_number", name="uq_journal_tenant_number"
        ),
        UniqueConstraint("reversed_entry_id", name="uq_journal_reversed_entry"),
        Index("idx_journal_tenant_date", "tenant_id", "entry_date"),
        Index("idx_journal_period", "fiscal_period_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    fiscal_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    # Originating document, e.g. ("invoice", "INV-0042")
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)

    source_id: Mapped[str] = mapped_column(String(100), nullable=False)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_posted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_reversal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # The entry this one reverses
    reversed_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    # The entry that reversed this one
    reversed_by_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # e.g. "JE-INV-000001"
    document_sequence_number: Mapped[str] = mapped_column(String(50), nullable=False)

    journal_number: Mapped[int] = mapped_column(BigInteger, nullable=False)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_number",
    )

    fiscal_period: Mapped["FiscalPeriod"] = relationship()

    def __repr__(self) -> str:
        return f"<JournalEntry {self.document_sequence_number} {self.entry_date}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_reversed(self) -> bool:
        return self.reversed_by_entry_id is not None


class JournalLine(TrackedBase):
    """
    One debit or credit posting to a single account within an entry.

    Contract:
        Both amounts are non-negative and exactly one is non-zero.  The
        account belongs to the entry's tenant.

    Non-goals:
        - No validation at the ORM level; PostingService validates before
          insert and the integrity auditor reports anything that slipped by.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
        Index("idx_line_cost_center", "tenant_id", "cost_center_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    # Position within the entry, from 1
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    debit: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        default=Decimal("0"),
        nullable=False,
    )

    credit: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        default=Decimal("0"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Optional reporting dimension; cost centres are identified, not stored
    cost_center_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        return f"<JournalLine #{self.line_number} Dr {self.debit} Cr {self.credit}>"

    @property
    def is_debit(self) -> bool:
        return self.debit > 0

    @property
    def signed_amount(self) -> Decimal:
        """debit - credit."""
        return self.debit - self.credit
