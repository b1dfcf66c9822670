"""
Document posting tests.

Verifies:
- Each built-in document type posts through its strategy and role bindings
- Re-posting the same document is idempotent
- Per-document account overrides win over the configured binding
- Missing strategies and bindings fail before anything is written
- A document of the wrong class is rejected with a typed error
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.documents import (
    AssetDisposalDocument,
    BillDocument,
    ExpenseDocument,
    InvoiceDocument,
    InvoicePaymentDocument,
    PayrollRunDocument,
)
from ledger_kernel.domain.dtos import PostingStatus
from ledger_kernel.exceptions import (
    DocumentTypeMismatchError,
    RoleBindingError,
    StrategyNotFoundError,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.document_posting_service import DocumentPostingService


def _balance(session, tenant_id, account):
    row = LedgerSelector(session).account_totals(tenant_id, account.id)
    return row.debit_total - row.credit_total


class TestPostDocument:
    def test_invoice(
        self, document_posting_service, posting_service, chart, fiscal_year, tenant_id,
        test_actor_id,
    ):
        doc = InvoiceDocument(
            source_id="INV-1001", document_date=date(2026, 2, 1),
            net_amount=Decimal("1000.00"), tax_amount=Decimal("100.00"), customer="Acme",
        )

        result = document_posting_service.post_document(tenant_id, "invoice", doc, test_actor_id)

        assert result.document_sequence_number == "JE-INV-000001"
        entry = posting_service.get_entry(tenant_id, result.entry_id)
        assert entry.source_type == "invoice"
        assert entry.source_id == "INV-1001"
        assert entry.memo == "invoice INV-1001"
        assert [(line.account_id, line.debit, line.credit) for line in entry.lines] == [
            (chart["1200"].id, Decimal("1100.00"), Decimal("0")),
            (chart["4010"].id, Decimal("0"), Decimal("1000.00")),
            (chart["2200"].id, Decimal("0"), Decimal("100.00")),
        ]

    def test_invoice_then_payment_clears_receivable(
        self, document_posting_service, chart, fiscal_year, session, tenant_id, test_actor_id
    ):
        document_posting_service.post_document(
            tenant_id, "invoice",
            InvoiceDocument("INV-1", date(2026, 2, 1), net_amount=Decimal("500.00")),
            test_actor_id,
        )
        payment = document_posting_service.post_document(
            tenant_id, "invoice_payment",
            InvoicePaymentDocument("PAY-1", date(2026, 2, 20), amount=Decimal("500.00"),
                                   invoice_id="INV-1"),
            test_actor_id,
        )

        assert payment.document_sequence_number == "JE-PAY-000001"
        assert _balance(session, tenant_id, chart["1200"]) == Decimal("0")
        assert _balance(session, tenant_id, chart["1100"]) == Decimal("500.00")

    def test_bill_payroll_expense_and_disposal(
        self, document_posting_service, chart, fiscal_year, session, tenant_id, test_actor_id
    ):
        day = date(2026, 3, 15)
        post = document_posting_service.post_document
        results = [
            post(tenant_id, "bill", BillDocument(
                "B-1", day, net_amount=Decimal("200.00"), tax_amount=Decimal("20.00")
            ), test_actor_id),
            post(tenant_id, "payroll_run", PayrollRunDocument(
                "PR-1", day, gross_amount=Decimal("5000.00"), net_amount=Decimal("3800.00")
            ), test_actor_id),
            post(tenant_id, "expense", ExpenseDocument(
                "EX-1", day, amount=Decimal("45.00")
            ), test_actor_id),
            post(tenant_id, "asset_disposal", AssetDisposalDocument(
                "AD-1", day, cost=Decimal("1000.00"),
                accumulated_depreciation=Decimal("800.00"), proceeds=Decimal("250.00"),
            ), test_actor_id),
        ]

        assert [r.document_sequence_number for r in results] == [
            "JE-BIL-000001", "JE-PRL-000001", "JE-EXP-000001", "JE-DSP-000001",
        ]
        assert _balance(session, tenant_id, chart["2000"]) == Decimal("-220.00")
        assert _balance(session, tenant_id, chart["2300"]) == Decimal("-1200.00")
        assert _balance(session, tenant_id, chart["4200"]) == Decimal("-50.00")

    def test_repost_is_idempotent(
        self, document_posting_service, chart, fiscal_year, tenant_id, test_actor_id
    ):
        doc = ExpenseDocument("EX-7", date(2026, 3, 1), amount=Decimal("12.00"))
        first = document_posting_service.post_document(tenant_id, "expense", doc, test_actor_id)
        again = document_posting_service.post_document(tenant_id, "expense", doc, test_actor_id)

        assert again.status == PostingStatus.ALREADY_POSTED
        assert again.entry_id == first.entry_id

    def test_account_override(
        self, document_posting_service, posting_service, chart, fiscal_year, tenant_id,
        test_actor_id,
    ):
        doc = BillDocument(
            "B-2", date(2026, 3, 1), net_amount=Decimal("900.00"),
            account_overrides={"expense": "5200"},
        )
        result = document_posting_service.post_document(tenant_id, "bill", doc, test_actor_id)

        entry = posting_service.get_entry(tenant_id, result.entry_id)
        assert entry.lines[0].account_id == chart["5200"].id


class TestResolutionFailures:
    def test_unknown_document_type(
        self, document_posting_service, chart, fiscal_year, tenant_id, test_actor_id
    ):
        with pytest.raises(StrategyNotFoundError):
            document_posting_service.post_document(
                tenant_id, "purchase_order",
                ExpenseDocument("PO-1", date(2026, 3, 1), amount=Decimal("1.00")),
                test_actor_id,
            )

    def test_unbound_role(
        self, session, posting_service, account_service, chart, fiscal_year, tenant_id,
        test_actor_id,
    ):
        service = DocumentPostingService(
            session, posting_service, account_service, {"expense": {"expense": "5900"}}
        )
        with pytest.raises(RoleBindingError) as exc_info:
            service.post_document(
                tenant_id, "expense",
                ExpenseDocument("EX-1", date(2026, 3, 1), amount=Decimal("1.00")),
                test_actor_id,
            )
        assert exc_info.value.role == "cash"

    def test_bound_code_missing_from_chart(
        self, document_posting_service, account_service, fiscal_year, tenant_id, test_actor_id
    ):
        # Tenant without the default chart
        account_service.create_account(tenant_id, "5900", "Misc", "expense", test_actor_id)

        with pytest.raises(RoleBindingError) as exc_info:
            document_posting_service.post_document(
                tenant_id, "expense",
                ExpenseDocument("EX-1", date(2026, 3, 1), amount=Decimal("1.00")),
                test_actor_id,
            )
        assert "1100" in str(exc_info.value)

    def test_document_class_must_match_type(
        self, document_posting_service, session, chart, fiscal_year, tenant_id, test_actor_id
    ):
        bill = BillDocument("BILL-9", date(2026, 3, 1), net_amount=Decimal("40.00"))

        with pytest.raises(DocumentTypeMismatchError) as exc_info:
            document_posting_service.post_document(tenant_id, "invoice", bill, test_actor_id)

        assert exc_info.value.code == "DOCUMENT_TYPE_MISMATCH"
        assert exc_info.value.expected == "InvoiceDocument"
        assert exc_info.value.actual == "BillDocument"
        assert LedgerSelector(session).total_debits_credits(tenant_id) == (
            Decimal("0.00"), Decimal("0.00"),
        )
