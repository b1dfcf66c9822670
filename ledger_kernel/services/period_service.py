"""
PeriodService -- fiscal calendar lifecycle and posting-date resolution.

Responsibility:
    Creates fiscal years (with generated monthly periods) and manual periods,
    resolves the period covering a date, and drives the OPEN -> CLOSED
    transition (plus the privileged reopen).

Architecture position:
    Kernel > Services -- imperative shell.  Called by PostingService and
    ReversalService before any journal row is written, and by operators
    for period close.

Invariants enforced:
    - No posting into a CLOSED period: ``resolve_open_period`` raises
      PeriodLockedError.
    - Periods within a year are contiguous and non-overlapping; years of a
      tenant never overlap.
    - Close and post serialize on the period row: close takes
      ``FOR UPDATE``, posting takes ``FOR SHARE`` (PostgreSQL).  On SQLite
      the database write lock serializes them.
    - Flush-only; returns frozen DTOs.

Failure modes:
    - PeriodNotFoundError (NO_PERIOD_DEFINED): nothing covers the date.
    - PeriodLockedError: the covering period is closed.
    - PeriodAlreadyClosedError / PeriodNotClosedError: redundant transitions.
    - PeriodOverlapError / PeriodGapError / FiscalYearOverlapError:
      calendar conflicts.
    - CapabilityDeniedError: the actor may not close/reopen/manage.

Audit relevance:
    Close and reopen are logged and written to the audit log with the
    actor and the clock time.
"""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.capabilities import AllowAllCapabilities, Capability, CapabilityChecker
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import FiscalPeriodInfo, FiscalYearInfo
from ledger_kernel.exceptions import (
    FiscalYearNotFoundError,
    FiscalYearOverlapError,
    PeriodAlreadyClosedError,
    PeriodGapError,
    PeriodLockedError,
    PeriodNotClosedError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.fiscal_calendar import FiscalPeriod, FiscalYear, PeriodStatus
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")

_MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def month_end(day: date) -> date:
    """Last calendar day of the month containing ``day``."""
    first_of_next = date(day.year + day.month // 12, day.month % 12 + 1, 1)
    return first_of_next - timedelta(days=1)


def monthly_ranges(start_date: date, end_date: date) -> list[tuple[date, date]]:
    """
    Split [start_date, end_date] into contiguous calendar-month ranges.

    The first and last ranges are truncated at the year bounds.
    """
    ranges: list[tuple[date, date]] = []
    cursor = start_date
    while cursor <= end_date:
        period_end = min(month_end(cursor), end_date)
        ranges.append((cursor, period_end))
        cursor = period_end + timedelta(days=1)
    return ranges


def period_name(start: date) -> str:
    """e.g. ``Jan 2026``."""
    return f"{_MONTH_ABBR[start.month - 1]} {start.year}"


class PeriodService(BaseService[FiscalPeriod]):
    """
    Fiscal calendar service.

    Contract:
        All lookups are tenant-scoped; a period or year of another tenant is
        reported as not found.

    Guarantees:
        - ``resolve_period`` returns the unique period covering a date.
        - ``close_period`` is one-way except for ``reopen_period``, which
          requires CAN_REOPEN_PERIOD.

    Non-goals:
        - Does NOT post closing entries (retained earnings roll-forward).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        capabilities: CapabilityChecker | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._capabilities = capabilities or AllowAllCapabilities()

    # ------------------------------------------------------------------
    # Calendar setup
    # ------------------------------------------------------------------

    def create_fiscal_year(
        self,
        tenant_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        generate_periods: bool = True,
    ) -> FiscalYearInfo:
        """
        Create a fiscal year, by default with one period per calendar month.

        Preconditions:
            - start_date <= end_date.
            - No other fiscal year of the tenant overlaps the range.

        Postconditions:
            - With generate_periods, periods numbered 1..n exactly cover
              [start_date, end_date], each OPEN.

        Raises:
            ValueError: If start_date > end_date.
            FiscalYearOverlapError: If the range overlaps another year.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_CALENDAR)

        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        overlapping = self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.start_date <= end_date,
                FiscalYear.end_date >= start_date,
            )
        ).scalars().first()
        if overlapping is not None:
            raise FiscalYearOverlapError(name, overlapping.name)

        year = FiscalYear(
            tenant_id=tenant_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(year)
        self.session.flush()

        if generate_periods:
            for number, (p_start, p_end) in enumerate(monthly_ranges(start_date, end_date), 1):
                self.session.add(
                    FiscalPeriod(
                        tenant_id=tenant_id,
                        fiscal_year_id=year.id,
                        period_number=number,
                        name=period_name(p_start),
                        start_date=p_start,
                        end_date=p_end,
                        status=PeriodStatus.OPEN.value,
                        created_by_id=actor_id,
                    )
                )
            self.session.flush()
            self.session.refresh(year, ["periods"])

        self._audit_log.record(
            tenant_id,
            AuditAction.FISCAL_YEAR_CREATED,
            "FiscalYear",
            year.id,
            actor_id,
            {"name": name, "start_date": start_date, "end_date": end_date},
        )
        logger.info(
            "fiscal_year_created",
            extra={
                "tenant_id": str(tenant_id),
                "fiscal_year": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "period_count": len(year.periods),
            },
        )
        return FiscalYearInfo.from_model(year)

    def create_period(
        self,
        tenant_id: UUID,
        fiscal_year_id: UUID,
        period_number: int,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalPeriodInfo:
        """
        Add a period to a year created without generated periods.

        Periods are added in order: the first starts on the year's first
        day, each later one on the day after its predecessor ends, and
        period numbers run 1, 2, 3 ...

        Raises:
            ValueError: If start_date > end_date or the number is taken.
            FiscalYearNotFoundError: If the year is not in the tenant.
            PeriodOverlapError: If the range leaves the year or overlaps
                another period.
            PeriodGapError: If the period does not continue the calendar.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_CALENDAR)

        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        year = self._get_fiscal_year(tenant_id, fiscal_year_id)
        if year is None:
            raise FiscalYearNotFoundError(str(fiscal_year_id))

        if start_date < year.start_date or end_date > year.end_date:
            raise PeriodOverlapError(name, year.name, str(start_date), str(end_date))

        self._validate_no_overlap(tenant_id, name, start_date, end_date)

        taken = self.session.execute(
            select(FiscalPeriod.id).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.fiscal_year_id == fiscal_year_id,
                FiscalPeriod.period_number == period_number,
            )
        ).first()
        if taken is not None:
            raise ValueError(f"Period number {period_number} already exists in {year.name}")

        self._validate_continues_calendar(year, period_number, name, start_date)

        period = FiscalPeriod(
            tenant_id=tenant_id,
            fiscal_year_id=fiscal_year_id,
            period_number=period_number,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN.value,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.PERIOD_CREATED, "FiscalPeriod", period.id, actor_id,
            {"name": name, "start_date": start_date, "end_date": end_date},
        )
        logger.info(
            "period_created",
            extra={
                "tenant_id": str(tenant_id),
                "period": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return FiscalPeriodInfo.from_model(period)

    def _validate_continues_calendar(
        self, year: FiscalYear, period_number: int, new_name: str, start_date: date
    ) -> None:
        previous = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == year.tenant_id,
                FiscalPeriod.fiscal_year_id == year.id,
            )
            .order_by(FiscalPeriod.period_number.desc())
            .limit(1)
        ).scalars().first()

        if previous is None:
            expected_start, expected_number = year.start_date, 1
        else:
            expected_start = previous.end_date + timedelta(days=1)
            expected_number = previous.period_number + 1

        if start_date != expected_start:
            raise PeriodGapError(new_name, str(expected_start), str(start_date))
        if period_number != expected_number:
            raise ValueError(
                f"Period {new_name} must be number {expected_number} in {year.name}, "
                f"got {period_number}"
            )

    def _validate_no_overlap(
        self, tenant_id: UUID, new_name: str, start_date: date, end_date: date
    ) -> None:
        # Two ranges overlap if start1 <= end2 AND start2 <= end1
        overlapping = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
            )
        ).scalars().first()

        if overlapping is not None:
            raise PeriodOverlapError(
                new_name,
                overlapping.name,
                str(max(start_date, overlapping.start_date)),
                str(min(end_date, overlapping.end_date)),
            )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_period(self, tenant_id: UUID, day: date) -> FiscalPeriodInfo:
        """
        The period covering ``day``, open or closed.

        Raises:
            PeriodNotFoundError: If no period covers the date.
        """
        period = self._get_period_for_date(tenant_id, day)
        if period is None:
            raise PeriodNotFoundError(str(day))
        return FiscalPeriodInfo.from_model(period)

    def resolve_open_period(self, tenant_id: UUID, day: date) -> FiscalPeriodInfo:
        """
        The OPEN period covering ``day``, share-locked until commit.

        Preconditions:
            - Called inside the posting transaction.

        Raises:
            PeriodNotFoundError: If no period covers the date.
            PeriodLockedError: If the covering period is closed.
        """
        period = self._get_period_for_date(tenant_id, day, lock_shared=True)
        if period is None:
            logger.warning(
                "period_not_defined",
                extra={"tenant_id": str(tenant_id), "entry_date": str(day)},
            )
            raise PeriodNotFoundError(str(day))

        if period.is_closed:
            logger.warning(
                "period_locked_rejection",
                extra={
                    "tenant_id": str(tenant_id),
                    "period": period.name,
                    "entry_date": str(day),
                },
            )
            raise PeriodLockedError(period.name, str(day))

        return FiscalPeriodInfo.from_model(period)

    def is_date_in_open_period(self, tenant_id: UUID, day: date) -> bool:
        period = self._get_period_for_date(tenant_id, day)
        return period is not None and period.is_open

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close_period(self, tenant_id: UUID, period_id: UUID, actor_id: UUID) -> FiscalPeriodInfo:
        """
        Close a fiscal period.

        SELECT ... FOR UPDATE serializes concurrent closes and waits for
        in-flight postings holding the share lock.

        Postconditions:
            - status is CLOSED, closed_at is the clock time, closed_by_id
              is the actor.

        Raises:
            PeriodNotFoundError: If the period is not in the tenant.
            PeriodAlreadyClosedError: If already closed.
            CapabilityDeniedError: If the actor lacks CAN_CLOSE_PERIOD.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_CLOSE_PERIOD)

        period = self._get_period_for_update(tenant_id, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))

        if period.is_closed:
            raise PeriodAlreadyClosedError(period.name)

        period.close(actor_id, self._clock.now())
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.PERIOD_CLOSED, "FiscalPeriod", period.id, actor_id,
            {"name": period.name},
        )
        logger.info(
            "period_closed",
            extra={"tenant_id": str(tenant_id), "period": period.name, "actor_id": str(actor_id)},
        )
        return FiscalPeriodInfo.from_model(period)

    def reopen_period(self, tenant_id: UUID, period_id: UUID, actor_id: UUID) -> FiscalPeriodInfo:
        """
        Reopen a closed period.  Privileged; requires CAN_REOPEN_PERIOD.

        Raises:
            PeriodNotFoundError: If the period is not in the tenant.
            PeriodNotClosedError: If the period is open.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_REOPEN_PERIOD)

        period = self._get_period_for_update(tenant_id, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))

        if not period.is_closed:
            raise PeriodNotClosedError(period.name)

        period.reopen(actor_id, self._clock.now())
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.PERIOD_REOPENED, "FiscalPeriod", period.id, actor_id,
            {"name": period.name},
        )
        logger.warning(
            "period_reopened",
            extra={"tenant_id": str(tenant_id), "period": period.name, "actor_id": str(actor_id)},
        )
        return FiscalPeriodInfo.from_model(period)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_period(self, tenant_id: UUID, period_id: UUID) -> FiscalPeriodInfo | None:
        period = self._get_period(tenant_id, period_id)
        return FiscalPeriodInfo.from_model(period) if period else None

    def get_fiscal_year(self, tenant_id: UUID, fiscal_year_id: UUID) -> FiscalYearInfo | None:
        year = self._get_fiscal_year(tenant_id, fiscal_year_id)
        return FiscalYearInfo.from_model(year) if year else None

    def fiscal_year_for_date(self, tenant_id: UUID, day: date) -> FiscalYearInfo | None:
        year = self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.start_date <= day,
                FiscalYear.end_date >= day,
            )
        ).scalars().first()
        return FiscalYearInfo.from_model(year) if year else None

    def list_fiscal_years(self, tenant_id: UUID) -> list[FiscalYearInfo]:
        years = self.session.execute(
            select(FiscalYear)
            .where(FiscalYear.tenant_id == tenant_id)
            .order_by(FiscalYear.start_date)
        ).scalars()
        return [FiscalYearInfo.from_model(y) for y in years]

    def list_periods(
        self, tenant_id: UUID, fiscal_year_id: UUID | None = None
    ) -> list[FiscalPeriodInfo]:
        query = select(FiscalPeriod).where(FiscalPeriod.tenant_id == tenant_id)
        if fiscal_year_id is not None:
            query = query.where(FiscalPeriod.fiscal_year_id == fiscal_year_id)
        periods = self.session.execute(query.order_by(FiscalPeriod.start_date)).scalars()
        return [FiscalPeriodInfo.from_model(p) for p in periods]

    def get_open_periods(self, tenant_id: UUID) -> list[FiscalPeriodInfo]:
        return [p for p in self.list_periods(tenant_id) if p.is_open]

    # ------------------------------------------------------------------
    # ORM access (internal)
    # ------------------------------------------------------------------

    def _get_period(self, tenant_id: UUID, period_id: UUID) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.id == period_id,
            )
        ).scalar_one_or_none()

    def _get_period_for_update(self, tenant_id: UUID, period_id: UUID) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.id == period_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _get_period_for_date(
        self, tenant_id: UUID, day: date, lock_shared: bool = False
    ) -> FiscalPeriod | None:
        query = select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.start_date <= day,
            FiscalPeriod.end_date >= day,
        )
        if lock_shared:
            query = query.with_for_update(read=True).execution_options(populate_existing=True)
        return self.session.execute(query).scalars().first()

    def _get_fiscal_year(self, tenant_id: UUID, fiscal_year_id: UUID) -> FiscalYear | None:
        return self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.id == fiscal_year_id,
            )
        ).scalar_one_or_none()
