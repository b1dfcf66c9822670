"""
ReportingService tests against a posted ledger.

Ledger used throughout (FY2026, default chart):

    Jan 05  capital          1100 dr 20000 / 3000 cr 20000
    Feb 03  buy equipment    1300 dr  8000 / 1100 cr  8000
    Feb 10  invoice          1200 dr  5000 / 4010 cr  5000
    Feb 20  rent             5200 dr  1500 / 1100 cr  1500
    Feb 28  depreciation     5900 dr   200 / 1310 cr   200
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import AccountNotFoundError, InvalidReportRangeError
from ledger_reports.models import ReportType

JAN_1 = date(2026, 1, 1)
JAN_31 = date(2026, 1, 31)
FEB_1 = date(2026, 2, 1)
FEB_28 = date(2026, 2, 28)


@pytest.fixture
def ledger(post_entry):
    post_entry(date(2026, 1, 5), [("1100", "20000.00", None), ("3000", None, "20000.00")],
               memo="Capital")
    post_entry(date(2026, 2, 3), [("1300", "8000.00", None), ("1100", None, "8000.00")],
               memo="Equipment")
    post_entry(date(2026, 2, 10), [("1200", "5000.00", None), ("4010", None, "5000.00")],
               memo="Invoice")
    post_entry(date(2026, 2, 20), [("5200", "1500.00", None), ("1100", None, "1500.00")],
               memo="Rent")
    post_entry(date(2026, 2, 28), [("5900", "200.00", None), ("1310", None, "200.00")],
               memo="Depreciation")


class TestTrialBalance:
    def test_balanced(self, reporting_service, ledger, tenant_id):
        report = reporting_service.trial_balance(tenant_id, FEB_28)

        assert report.is_balanced
        assert report.total_debits == Decimal("34700.00")
        assert report.metadata.report_type == ReportType.TRIAL_BALANCE
        assert [line.account_code for line in report.lines] == [
            "1100", "1200", "1300", "1310", "3000", "4010", "5200", "5900",
        ]

    def test_from_date_limits_activity(self, reporting_service, ledger, tenant_id):
        report = reporting_service.trial_balance(tenant_id, JAN_31, from_date=JAN_1)
        assert report.total_debits == Decimal("20000.00")

    def test_inverted_range(self, reporting_service, tenant_id):
        with pytest.raises(InvalidReportRangeError) as exc_info:
            reporting_service.trial_balance(tenant_id, JAN_1, from_date=FEB_1)
        assert exc_info.value.code == "INVALID_REPORT_RANGE"

    def test_other_tenant_sees_nothing(self, reporting_service, ledger, other_tenant_id):
        report = reporting_service.trial_balance(other_tenant_id, FEB_28)
        assert report.lines == ()
        assert report.is_balanced

    def test_generated_at_comes_from_clock(
        self, reporting_service, ledger, deterministic_clock, tenant_id
    ):
        report = reporting_service.trial_balance(tenant_id, FEB_28)
        assert report.metadata.generated_at == deterministic_clock.now().isoformat()
        assert report.metadata.currency == "USD"


class TestGeneralLedger:
    def test_running_balance(self, reporting_service, ledger, chart, tenant_id):
        report = reporting_service.general_ledger(tenant_id, chart["1100"].id, FEB_1, FEB_28)

        assert report.opening_balance == Decimal("20000.00")
        assert [line.running_balance for line in report.lines] == [
            Decimal("12000.00"), Decimal("10500.00"),
        ]
        assert [line.description for line in report.lines] == ["Equipment", "Rent"]
        assert report.closing_balance == Decimal("10500.00")
        assert report.total_credits == Decimal("9500.00")

    def test_credit_normal_account(self, reporting_service, ledger, chart, tenant_id):
        report = reporting_service.general_ledger(tenant_id, chart["4010"].id, JAN_1, FEB_28)
        assert report.opening_balance == Decimal("0")
        assert report.closing_balance == Decimal("5000.00")

    def test_unknown_account(self, reporting_service, ledger, tenant_id):
        with pytest.raises(AccountNotFoundError):
            reporting_service.general_ledger(tenant_id, uuid4(), JAN_1, FEB_28)

    def test_foreign_account(self, reporting_service, ledger, chart, other_tenant_id):
        with pytest.raises(AccountNotFoundError):
            reporting_service.general_ledger(other_tenant_id, chart["1100"].id, JAN_1, FEB_28)


class TestStatements:
    def test_balance_sheet(self, reporting_service, ledger, tenant_id):
        report = reporting_service.balance_sheet(tenant_id, FEB_28)

        assert report.current_assets.total == Decimal("15500.00")
        assert report.non_current_assets.total == Decimal("7800.00")
        assert report.total_assets == Decimal("23300.00")
        assert report.current_earnings == Decimal("3300.00")
        assert report.total_equity == Decimal("23300.00")
        assert report.is_balanced

    def test_balance_sheet_before_activity(self, reporting_service, ledger, tenant_id):
        report = reporting_service.balance_sheet(tenant_id, date(2026, 1, 4))
        assert report.total_assets == Decimal("0")
        assert report.is_balanced

    def test_profit_and_loss(self, reporting_service, ledger, tenant_id):
        report = reporting_service.profit_and_loss(tenant_id, FEB_1, FEB_28)

        assert report.revenue.total == Decimal("5000.00")
        assert report.operating_expenses.total == Decimal("1700.00")
        assert report.net_income == Decimal("3300.00")
        assert report.metadata.period_start == FEB_1

    def test_profit_and_loss_for_cost_centre(
        self, reporting_service, ledger, post_entry, tenant_id
    ):
        store = uuid4()
        post_entry(date(2026, 2, 12), [("1200", "900.00", None), ("4010", None, "900.00")],
                   cost_center_id=store)
        post_entry(date(2026, 2, 14), [("5200", "300.00", None), ("1100", None, "300.00")],
                   cost_center_id=store)

        report = reporting_service.profit_and_loss(tenant_id, FEB_1, FEB_28, cost_center_id=store)
        everything = reporting_service.profit_and_loss(tenant_id, FEB_1, FEB_28)

        assert report.revenue.total == Decimal("900.00")
        assert report.operating_expenses.total == Decimal("300.00")
        assert report.net_income == Decimal("600.00")
        assert everything.net_income == Decimal("3900.00")

    def test_comparative(self, reporting_service, ledger, tenant_id):
        report = reporting_service.profit_and_loss_comparative(
            tenant_id, (FEB_1, FEB_28), (JAN_1, JAN_31),
        )

        assert report.net_income.current == Decimal("3300.00")
        assert report.net_income.prior == Decimal("0")
        assert report.net_income.variance_pct == Decimal("0")
        assert report.metadata.report_type == ReportType.PROFIT_AND_LOSS_COMPARATIVE

    def test_comparative_rejects_inverted_prior(self, reporting_service, tenant_id):
        with pytest.raises(InvalidReportRangeError):
            reporting_service.profit_and_loss_comparative(
                tenant_id, (FEB_1, FEB_28), (JAN_31, JAN_1),
            )


class TestCashFlow:
    def test_reconciles(self, reporting_service, ledger, tenant_id, captured_logs):
        report = reporting_service.cash_flow(tenant_id, FEB_1, FEB_28)

        assert report.beginning_cash == Decimal("20000.00")
        assert report.ending_cash == Decimal("10500.00")
        assert report.net_income == Decimal("3300.00")
        assert report.operating_adjustments.total == Decimal("200.00")
        assert report.working_capital_changes.total == Decimal("-5000.00")
        assert report.net_cash_from_operations == Decimal("-1500.00")
        assert report.net_cash_from_investing == Decimal("-8000.00")
        assert report.net_cash_from_financing == Decimal("0")
        assert report.net_change_in_cash == Decimal("-9500.00")
        assert report.cash_change_reconciles

        messages = [r["message"] for r in captured_logs()]
        assert "cash_flow_generated" in messages
        assert "cash_flow_not_reconciled" not in messages

    def test_financing_from_inception(self, reporting_service, ledger, tenant_id):
        report = reporting_service.cash_flow(tenant_id, JAN_1, FEB_28)
        assert report.beginning_cash == Decimal("0")
        assert report.net_cash_from_financing == Decimal("20000.00")
        assert report.cash_change_reconciles


def test_reports_are_logged(reporting_service, ledger, tenant_id, captured_logs):
    reporting_service.trial_balance(tenant_id, FEB_28)
    reporting_service.balance_sheet(tenant_id, FEB_28)
    reporting_service.profit_and_loss(tenant_id, FEB_1, FEB_28)

    records = {r["message"]: r for r in captured_logs()}
    assert records["trial_balance_generated"]["is_balanced"] is True
    assert records["balance_sheet_generated"]["total_assets"] == "23300.00"
    assert records["profit_and_loss_generated"]["net_income"] == "3300.00"


def test_to_dict(reporting_service, ledger, tenant_id):
    rendered = reporting_service.to_dict(reporting_service.balance_sheet(tenant_id, FEB_28))
    assert rendered["is_balanced"] is True
    assert rendered["total_assets"] == "23300.00"
