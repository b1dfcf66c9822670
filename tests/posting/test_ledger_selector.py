"""
Ledger selector tests.

Verifies:
- Stored amounts and their sums are exact on every backend, including
  amounts with more significant digits than a float carries
- Lines keep their cost centre, reversals mirror it, and totals can be
  narrowed to one cost centre
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from ledger_kernel.models.journal import JournalLine
from ledger_kernel.selectors.ledger_selector import LedgerSelector

LARGE = "99999999999999.99"


class TestExactAmounts:
    def test_large_amount_stored_exactly(self, post_entry, session, chart, tenant_id):
        posted = post_entry(date(2026, 1, 10), [("1200", LARGE, None), ("4010", None, LARGE)])
        session.expire_all()

        debits = session.execute(
            select(JournalLine.debit).where(
                JournalLine.journal_entry_id == posted.entry_id,
                JournalLine.account_id == chart["1200"].id,
            )
        ).scalars().all()

        assert debits == [Decimal(LARGE)]

    def test_sums_do_not_drift(self, post_entry, session, chart, tenant_id):
        for day in range(1, 11):
            post_entry(date(2026, 1, day), [("1200", LARGE, None), ("4010", None, LARGE)])

        selector = LedgerSelector(session)
        receivable = selector.account_totals(tenant_id, chart["1200"].id)

        assert receivable.debit_total == Decimal("999999999999999.90")
        assert receivable.line_count == 10
        assert selector.total_debits_credits(tenant_id) == (
            Decimal("999999999999999.90"), Decimal("999999999999999.90"),
        )
        (row,) = [r for r in selector.trial_balance(tenant_id) if r.account_code == "4010"]
        assert row.balance == Decimal("999999999999999.90")

    def test_cent_amounts_accumulate_exactly(self, post_entry, session, chart, tenant_id):
        for _ in range(30):
            post_entry(date(2026, 1, 5), [("5200", "0.10", None), ("1100", None, "0.10")])

        totals = LedgerSelector(session).account_totals(tenant_id, chart["5200"].id)
        assert totals.debit_total == Decimal("3.00")


class TestCostCentres:
    def test_line_keeps_cost_centre(self, post_entry, session, chart, tenant_id):
        centre = uuid4()
        post_entry(
            date(2026, 1, 10), [("5200", "75.00", None), ("1100", None, "75.00")],
            cost_center_id=centre,
        )
        session.expire_all()

        (line,) = LedgerSelector(session).account_lines(tenant_id, chart["5200"].id)
        assert line.cost_center_id == centre

    def test_reversal_mirrors_cost_centre(
        self, post_entry, reversal_service, posting_service, tenant_id, test_actor_id
    ):
        centre = uuid4()
        posted = post_entry(
            date(2026, 1, 10), [("5200", "75.00", None), ("1100", None, "75.00")],
            cost_center_id=centre,
        )

        result = reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)

        reversal = posting_service.get_entry(tenant_id, result.reversal_entry_id)
        assert {line.cost_center_id for line in reversal.lines} == {centre}

    def test_activity_narrowed_to_cost_centre(self, post_entry, session, chart, tenant_id):
        sales, support = uuid4(), uuid4()
        post_entry(date(2026, 1, 10), [("5200", "100.00", None), ("1100", None, "100.00")],
                   cost_center_id=sales)
        post_entry(date(2026, 1, 11), [("5200", "40.00", None), ("1100", None, "40.00")],
                   cost_center_id=support)
        post_entry(date(2026, 1, 12), [("5200", "5.00", None), ("1100", None, "5.00")])

        selector = LedgerSelector(session)
        rent = chart["5200"].id

        assert selector.account_activity(tenant_id)[rent].debit_total == Decimal("145.00")
        assert selector.account_activity(
            tenant_id, cost_center_id=sales
        )[rent].debit_total == Decimal("100.00")
        assert rent not in selector.account_activity(tenant_id, cost_center_id=uuid4())
