"""
Module: ledger_kernel.models.fiscal_calendar
Responsibility: ORM persistence for fiscal years and their periods -- the
    date ranges that accept (or refuse) postings.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Posting into a CLOSED period is refused (checked by PeriodService
      before any journal row is written).
    - Periods of a year are contiguous and non-overlapping (PeriodService
      generates them; manual creation is overlap-checked).
    - (tenant_id, fiscal_year_id, period_number) is unique.

Failure modes:
    - PeriodNotFoundError when no period covers a date.
    - PeriodLockedError when the covering period is closed.
    - PeriodAlreadyClosedError on a redundant close.

Audit relevance:
    closed_at / closed_by_id record who froze a period and when.  The
    integrity auditor compares them against journal posted_at stamps.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """Lifecycle status of a fiscal period.

    OPEN -> CLOSED is the normal path.  CLOSED -> OPEN happens only through
    the privileged reopen action.
    """

    OPEN = "open"
    CLOSED = "closed"


class FiscalYear(TrackedBase):
    """
    A tenant's fiscal year.

    Guarantees:
        - start_date <= end_date (service layer).
        - Years of one tenant never overlap (service layer).
    """

    __tablename__ = "fiscal_years"

    __table_args__ = (
        UniqueConstraint("tenant_id", "start_date", name="uq_fiscal_year_tenant_start"),
        Index("idx_fiscal_year_dates", "tenant_id", "start_date", "end_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    periods: Mapped[list["FiscalPeriod"]] = relationship(
        back_populates="fiscal_year",
        order_by="FiscalPeriod.period_number",
    )

    def __repr__(self) -> str:
        return f"<FiscalYear {self.name}: {self.start_date}..{self.end_date}>"

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date


class FiscalPeriod(TrackedBase):
    """
    Fiscal period for posting control.

    Contract:
        Once CLOSED, no new entries dated within [start_date, end_date] are
        accepted until the period is explicitly reopened.

    Non-goals:
        - This model does NOT check overlap; PeriodService does at creation.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "fiscal_year_id", "period_number",
            name="uq_period_tenant_year_number",
        ),
        Index("idx_period_tenant_dates", "tenant_id", "start_date", "end_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    fiscal_year_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_years.id"),
        nullable=False,
    )

    period_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # e.g. "Jan 2026"
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive bounds
    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN.value,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reopened_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    fiscal_year: Mapped[FiscalYear] = relationship(back_populates="periods")

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.name}: {self.status}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN.value

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED.value

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def close(self, actor_id: UUID, closed_at: datetime) -> None:
        """Close the period.

        Preconditions: Period is OPEN.
        Postconditions: status is CLOSED; closed_at/closed_by_id populated.
        Raises: ValueError if already closed.

        closed_at comes from the injected clock, never datetime.now().
        """
        if self.is_closed:
            raise ValueError(f"Period {self.name} is already closed")
        self.status = PeriodStatus.CLOSED.value
        self.closed_at = closed_at
        self.closed_by_id = actor_id
        self.updated_by_id = actor_id

    def reopen(self, actor_id: UUID, reopened_at: datetime) -> None:
        """Reopen a closed period (privileged)."""
        if not self.is_closed:
            raise ValueError(f"Period {self.name} is not closed")
        self.status = PeriodStatus.OPEN.value
        self.reopened_at = reopened_at
        self.reopened_by_id = actor_id
        self.updated_by_id = actor_id
