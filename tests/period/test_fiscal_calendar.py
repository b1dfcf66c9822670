"""
Fiscal calendar tests.

Verifies:
- Monthly period generation covers the year exactly
- Date resolution and the NO_PERIOD_DEFINED / PERIOD_LOCKED rejections
- Close / reopen transitions and their capability requirements
- Overlap rejection for years and manual periods
- Manual periods must continue the calendar without gaps
"""

from datetime import date, timedelta

import pytest

from ledger_kernel.domain.capabilities import Capability, StaticCapabilityChecker
from ledger_kernel.exceptions import (
    CapabilityDeniedError,
    FiscalYearNotFoundError,
    FiscalYearOverlapError,
    PeriodAlreadyClosedError,
    PeriodGapError,
    PeriodLockedError,
    PeriodNotClosedError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from ledger_kernel.services.period_service import (
    PeriodService,
    month_end,
    monthly_ranges,
    period_name,
)


class TestMonthlyRanges:
    def test_calendar_year(self):
        ranges = monthly_ranges(date(2026, 1, 1), date(2026, 12, 31))
        assert len(ranges) == 12
        assert ranges[1] == (date(2026, 2, 1), date(2026, 2, 28))
        assert ranges[-1] == (date(2026, 12, 1), date(2026, 12, 31))

    def test_offset_year_is_truncated(self):
        ranges = monthly_ranges(date(2026, 7, 15), date(2027, 7, 14))
        assert ranges[0] == (date(2026, 7, 15), date(2026, 7, 31))
        assert ranges[-1] == (date(2027, 7, 1), date(2027, 7, 14))
        assert len(ranges) == 13

    def test_ranges_are_contiguous(self):
        ranges = monthly_ranges(date(2026, 4, 1), date(2027, 3, 31))
        for (_, prev_end), (next_start, _) in zip(ranges, ranges[1:]):
            assert next_start == prev_end + timedelta(days=1)

    def test_month_end_handles_leap_years(self):
        assert month_end(date(2028, 2, 10)) == date(2028, 2, 29)
        assert month_end(date(2026, 12, 5)) == date(2026, 12, 31)

    def test_period_name(self):
        assert period_name(date(2026, 3, 1)) == "Mar 2026"


class TestFiscalYear:
    def test_generated_periods(self, fiscal_year):
        assert len(fiscal_year.periods) == 12
        assert [p.period_number for p in fiscal_year.periods] == list(range(1, 13))
        assert fiscal_year.periods[0].name == "Jan 2026"
        assert all(p.is_open for p in fiscal_year.periods)

    def test_start_after_end_rejected(self, period_service, tenant_id, test_actor_id):
        with pytest.raises(ValueError):
            period_service.create_fiscal_year(
                tenant_id, "Bad", date(2026, 12, 31), date(2026, 1, 1), test_actor_id
            )

    def test_overlapping_year_rejected(self, period_service, fiscal_year, tenant_id, test_actor_id):
        with pytest.raises(FiscalYearOverlapError):
            period_service.create_fiscal_year(
                tenant_id, "FY2026b", date(2026, 6, 1), date(2027, 5, 31), test_actor_id
            )

    def test_other_tenant_may_reuse_dates(
        self, period_service, fiscal_year, other_tenant_id, test_actor_id
    ):
        other = period_service.create_fiscal_year(
            other_tenant_id, "FY2026", date(2026, 1, 1), date(2026, 12, 31), test_actor_id
        )
        assert other.id != fiscal_year.id

    def test_year_for_date(self, period_service, fiscal_year, tenant_id):
        assert period_service.fiscal_year_for_date(tenant_id, date(2026, 8, 1)).id == fiscal_year.id
        assert period_service.fiscal_year_for_date(tenant_id, date(2027, 1, 1)) is None


class TestManualPeriods:
    @pytest.fixture
    def empty_year(self, period_service, tenant_id, test_actor_id):
        return period_service.create_fiscal_year(
            tenant_id, "FY2027", date(2027, 1, 1), date(2027, 12, 31), test_actor_id,
            generate_periods=False,
        )

    def test_create_quarter(self, period_service, empty_year, tenant_id, test_actor_id):
        q1 = period_service.create_period(
            tenant_id, empty_year.id, 1, "Q1 2027", date(2027, 1, 1), date(2027, 3, 31),
            test_actor_id,
        )
        assert q1.contains_date(date(2027, 2, 14))
        assert period_service.resolve_period(tenant_id, date(2027, 3, 31)).id == q1.id

    def test_overlap_rejected(self, period_service, empty_year, tenant_id, test_actor_id):
        period_service.create_period(
            tenant_id, empty_year.id, 1, "Q1 2027", date(2027, 1, 1), date(2027, 3, 31),
            test_actor_id,
        )
        with pytest.raises(PeriodOverlapError):
            period_service.create_period(
                tenant_id, empty_year.id, 2, "Mar-Apr", date(2027, 3, 1), date(2027, 4, 30),
                test_actor_id,
            )

    def test_outside_year_rejected(self, period_service, empty_year, tenant_id, test_actor_id):
        with pytest.raises(PeriodOverlapError):
            period_service.create_period(
                tenant_id, empty_year.id, 1, "Late", date(2027, 12, 1), date(2028, 1, 31),
                test_actor_id,
            )

    def test_duplicate_number_rejected(self, period_service, empty_year, tenant_id, test_actor_id):
        period_service.create_period(
            tenant_id, empty_year.id, 1, "Jan", date(2027, 1, 1), date(2027, 1, 31), test_actor_id
        )
        with pytest.raises(ValueError):
            period_service.create_period(
                tenant_id, empty_year.id, 1, "Feb", date(2027, 2, 1), date(2027, 2, 28),
                test_actor_id,
            )

    def test_contiguous_months(self, period_service, empty_year, tenant_id, test_actor_id):
        period_service.create_period(
            tenant_id, empty_year.id, 1, "Jan", date(2027, 1, 1), date(2027, 1, 31), test_actor_id
        )
        feb = period_service.create_period(
            tenant_id, empty_year.id, 2, "Feb", date(2027, 2, 1), date(2027, 2, 28), test_actor_id
        )
        assert feb.period_number == 2

    def test_gap_rejected(self, period_service, empty_year, tenant_id, test_actor_id):
        period_service.create_period(
            tenant_id, empty_year.id, 1, "Jan", date(2027, 1, 1), date(2027, 1, 31), test_actor_id
        )
        with pytest.raises(PeriodGapError) as exc_info:
            period_service.create_period(
                tenant_id, empty_year.id, 2, "Mar", date(2027, 3, 1), date(2027, 3, 31),
                test_actor_id,
            )
        assert exc_info.value.expected_start == "2027-02-01"
        assert [p.name for p in period_service.list_periods(tenant_id, empty_year.id)] == ["Jan"]

    def test_first_period_starts_with_year(
        self, period_service, empty_year, tenant_id, test_actor_id
    ):
        with pytest.raises(PeriodGapError):
            period_service.create_period(
                tenant_id, empty_year.id, 1, "Feb", date(2027, 2, 1), date(2027, 2, 28),
                test_actor_id,
            )

    def test_number_must_follow_on(self, period_service, empty_year, tenant_id, test_actor_id):
        period_service.create_period(
            tenant_id, empty_year.id, 1, "Jan", date(2027, 1, 1), date(2027, 1, 31), test_actor_id
        )
        with pytest.raises(ValueError, match="must be number 2"):
            period_service.create_period(
                tenant_id, empty_year.id, 3, "Feb", date(2027, 2, 1), date(2027, 2, 28),
                test_actor_id,
            )

    def test_unknown_year(self, period_service, fiscal_year, other_tenant_id, test_actor_id):
        with pytest.raises(FiscalYearNotFoundError):
            period_service.create_period(
                other_tenant_id, fiscal_year.id, 1, "Jan", date(2026, 1, 1), date(2026, 1, 31),
                test_actor_id,
            )


class TestResolution:
    def test_resolve_open_period(self, period_service, fiscal_year, tenant_id):
        period = period_service.resolve_open_period(tenant_id, date(2026, 5, 20))
        assert period.name == "May 2026"
        assert period.fiscal_year_id == fiscal_year.id

    def test_no_period_defined(self, period_service, fiscal_year, tenant_id):
        with pytest.raises(PeriodNotFoundError) as exc_info:
            period_service.resolve_open_period(tenant_id, date(2025, 12, 31))
        assert exc_info.value.code == "NO_PERIOD_DEFINED"

    def test_closed_period_is_locked(self, period_service, fiscal_year, tenant_id, test_actor_id):
        period_service.close_period(tenant_id, fiscal_year.periods[0].id, test_actor_id)

        with pytest.raises(PeriodLockedError) as exc_info:
            period_service.resolve_open_period(tenant_id, date(2026, 1, 31))
        assert exc_info.value.code == "PERIOD_LOCKED"

        # Plain resolution still finds it
        assert period_service.resolve_period(tenant_id, date(2026, 1, 31)).is_closed
        assert not period_service.is_date_in_open_period(tenant_id, date(2026, 1, 31))
        assert period_service.is_date_in_open_period(tenant_id, date(2026, 2, 1))

    def test_periods_are_tenant_scoped(self, period_service, fiscal_year, other_tenant_id):
        with pytest.raises(PeriodNotFoundError):
            period_service.resolve_period(other_tenant_id, date(2026, 5, 20))


class TestCloseAndReopen:
    def test_close_records_actor_and_time(
        self, period_service, fiscal_year, tenant_id, test_actor_id, deterministic_clock
    ):
        closed = period_service.close_period(tenant_id, fiscal_year.periods[0].id, test_actor_id)

        assert closed.is_closed
        assert closed.closed_by_id == test_actor_id
        assert closed.closed_at == deterministic_clock.now()

    def test_close_twice_rejected(self, period_service, fiscal_year, tenant_id, test_actor_id):
        period_id = fiscal_year.periods[0].id
        period_service.close_period(tenant_id, period_id, test_actor_id)
        with pytest.raises(PeriodAlreadyClosedError):
            period_service.close_period(tenant_id, period_id, test_actor_id)

    def test_reopen(self, period_service, fiscal_year, tenant_id, test_actor_id, captured_logs):
        period_id = fiscal_year.periods[0].id
        period_service.close_period(tenant_id, period_id, test_actor_id)

        reopened = period_service.reopen_period(tenant_id, period_id, test_actor_id)

        assert reopened.is_open
        assert period_service.resolve_open_period(tenant_id, date(2026, 1, 10)).id == period_id
        assert any(r["message"] == "period_reopened" for r in captured_logs())

    def test_reopen_open_period_rejected(self, period_service, fiscal_year, tenant_id, test_actor_id):
        with pytest.raises(PeriodNotClosedError):
            period_service.reopen_period(tenant_id, fiscal_year.periods[0].id, test_actor_id)

    def test_open_periods_listing(self, period_service, fiscal_year, tenant_id, test_actor_id):
        period_service.close_period(tenant_id, fiscal_year.periods[0].id, test_actor_id)
        open_periods = period_service.get_open_periods(tenant_id)
        assert len(open_periods) == 11
        assert open_periods[0].name == "Feb 2026"

    def test_reopen_requires_privilege(
        self, session, deterministic_clock, fiscal_year, tenant_id, test_actor_id
    ):
        checker = StaticCapabilityChecker()
        checker.grant(tenant_id, test_actor_id, Capability.CAN_CLOSE_PERIOD)
        service = PeriodService(session, deterministic_clock, capabilities=checker)
        period_id = fiscal_year.periods[0].id

        service.close_period(tenant_id, period_id, test_actor_id)
        with pytest.raises(CapabilityDeniedError):
            service.reopen_period(tenant_id, period_id, test_actor_id)

        checker.grant(tenant_id, test_actor_id, Capability.CAN_REOPEN_PERIOD)
        assert service.reopen_period(tenant_id, period_id, test_actor_id).is_open
