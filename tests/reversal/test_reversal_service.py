"""
Reversal tests.

Verifies:
- A reversal mirrors the original's lines, dated at the clock's today
- The original is linked to its reversal and its lines are untouched
- An entry is reversed at most once; a reversal is never reversed
- The reversal date's period must be open, whatever the original's period
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.capabilities import Capability, StaticCapabilityChecker
from ledger_kernel.domain.documents import InvoiceDocument
from ledger_kernel.exceptions import (
    CannotReverseReversalError,
    CapabilityDeniedError,
    EntryAlreadyReversedError,
    EntryNotFoundError,
    EntryNotPostedError,
    PeriodLockedError,
)
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.reversal_service import ReversalService


@pytest.fixture
def posted(post_entry):
    return post_entry(
        date(2026, 1, 10),
        [("5200", "1500.00", None), ("1100", None, "1500.00")],
        memo="January rent",
    )


class TestReverse:
    def test_mirror_entry(self, reversal_service, posting_service, posted, tenant_id, test_actor_id):
        result = reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id, reason="dup")

        original = posting_service.get_entry(tenant_id, posted.entry_id)
        reversal = posting_service.get_entry(tenant_id, result.reversal_entry_id)

        assert reversal.is_reversal
        assert reversal.reversed_entry_id == original.id
        assert original.reversed_by_entry_id == reversal.id
        assert reversal.entry_date == date(2026, 1, 15)
        assert reversal.memo == "REVERSAL: January rent"
        assert reversal.source_type == "reversal"
        assert result.document_sequence_number == "JE-REV-000001"
        assert [(l.account_id, l.debit, l.credit) for l in reversal.lines] == [
            (l.account_id, l.credit, l.debit) for l in original.lines
        ]

    def test_original_lines_untouched(
        self, reversal_service, posting_service, posted, tenant_id, test_actor_id
    ):
        before = posting_service.get_entry(tenant_id, posted.entry_id).lines
        reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)
        after = posting_service.get_entry(tenant_id, posted.entry_id).lines
        assert before == after

    def test_net_effect_is_zero(self, reversal_service, posted, chart, session, tenant_id, test_actor_id):
        reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)

        selector = LedgerSelector(session)
        for code in ("5200", "1100"):
            totals = selector.account_totals(tenant_id, chart[code].id)
            assert totals.debit_total == totals.credit_total == Decimal("1500.00")

    def test_logged(self, reversal_service, posted, tenant_id, test_actor_id, captured_logs):
        reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id, reason="typo")
        done = [r for r in captured_logs() if r["message"] == "reversal_completed"]
        assert done[0]["reason"] == "typo"


class TestPreconditions:
    def test_unknown_entry(self, reversal_service, posted, other_tenant_id, test_actor_id):
        with pytest.raises(EntryNotFoundError):
            reversal_service.reverse(other_tenant_id, posted.entry_id, test_actor_id)

    def test_twice_rejected(self, reversal_service, posted, tenant_id, test_actor_id):
        reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)
        with pytest.raises(EntryAlreadyReversedError) as exc_info:
            reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)
        assert exc_info.value.code == "ENTRY_ALREADY_REVERSED"

    def test_reversal_cannot_be_reversed(self, reversal_service, posted, tenant_id, test_actor_id):
        result = reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)
        with pytest.raises(CannotReverseReversalError) as exc_info:
            reversal_service.reverse(tenant_id, result.reversal_entry_id, test_actor_id)
        assert exc_info.value.code == "CANNOT_REVERSE_REVERSAL"

    def test_unposted_entry(
        self, reversal_service, session, fiscal_year, tenant_id, test_actor_id
    ):
        draft = JournalEntry(
            tenant_id=tenant_id,
            entry_date=date(2026, 1, 10),
            fiscal_period_id=fiscal_year.periods[0].id,
            source_type="journal_manual",
            source_id="draft-1",
            is_posted=False,
            document_sequence_number="DRAFT-1",
            journal_number=10_000,
            created_by_id=test_actor_id,
        )
        session.add(draft)
        session.flush()

        with pytest.raises(EntryNotPostedError):
            reversal_service.reverse(tenant_id, draft.id, test_actor_id)

    def test_todays_period_must_be_open(
        self, reversal_service, period_service, posting_service, posted, fiscal_year,
        tenant_id, test_actor_id,
    ):
        period_service.close_period(tenant_id, fiscal_year.periods[0].id, test_actor_id)

        with pytest.raises(PeriodLockedError):
            reversal_service.reverse(tenant_id, posted.entry_id, test_actor_id)

        original = posting_service.get_entry(tenant_id, posted.entry_id)
        assert original.reversed_by_entry_id is None

    def test_capability_required(
        self, session, posting_service, deterministic_clock, posted, tenant_id, test_actor_id
    ):
        checker = StaticCapabilityChecker()
        service = ReversalService(
            session, posting_service, clock=deterministic_clock, capabilities=checker
        )
        with pytest.raises(CapabilityDeniedError):
            service.reverse(tenant_id, posted.entry_id, test_actor_id)

        checker.grant(tenant_id, test_actor_id, Capability.CAN_REVERSE)
        assert service.reverse(tenant_id, posted.entry_id, test_actor_id).reversal_entry_id


class TestInvoiceReversedAfterClose:
    """An invoice posted in February is reversed after January closes."""

    def test_scenario(
        self, document_posting_service, reversal_service, period_service, posting_service,
        reporting_service, deterministic_clock, chart, fiscal_year, session, tenant_id,
        test_actor_id,
    ):
        invoice = document_posting_service.post_document(
            tenant_id,
            "invoice",
            InvoiceDocument(
                "INV-2026-0001", date(2026, 2, 1),
                net_amount=Decimal("1000.00"), tax_amount=Decimal("100.00"),
            ),
            test_actor_id,
        )
        january = period_service.resolve_period(tenant_id, date(2026, 1, 31))
        period_service.close_period(tenant_id, january.id, test_actor_id)

        deterministic_clock.set_date(date(2026, 2, 10))
        result = reversal_service.reverse(tenant_id, invoice.entry_id, test_actor_id)

        assert result.entry_date == date(2026, 2, 10)
        assert result.fiscal_period_id == fiscal_year.periods[1].id
        assert result.document_sequence_number == "JE-REV-000001"
        assert result.journal_number == 2

        receivable = LedgerSelector(session).account_totals(tenant_id, chart["1200"].id)
        assert receivable.net == Decimal("0")

        tb = reporting_service.trial_balance(tenant_id, date(2026, 2, 28))
        assert tb.is_balanced
        assert tb.total_debits == Decimal("2200.00")
