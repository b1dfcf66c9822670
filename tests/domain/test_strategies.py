"""
Posting strategy tests.

Strategies are pure: no session, no clock.  Accounts are stand-in UUIDs
keyed by role.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.documents import (
    AssetDisposalDocument,
    BillDocument,
    BillPaymentDocument,
    ExpenseDocument,
    InvoiceDocument,
    InvoicePaymentDocument,
    PayrollRunDocument,
)
from ledger_kernel.domain.strategies import (
    AssetDisposalStrategy,
    BillPaymentStrategy,
    BillStrategy,
    ExpenseStrategy,
    InvoicePaymentStrategy,
    InvoiceStrategy,
    PayrollRunStrategy,
)
from ledger_kernel.exceptions import DocumentTypeMismatchError, RoleBindingError
from ledger_kernel.services.posting_service import check_balance

DAY = date(2026, 2, 1)


def _accounts(strategy):
    return {role: uuid4() for role in strategy.roles}


def _sides(lines, accounts):
    """{role: (debit, credit)} for readable assertions."""
    by_id = {v: k for k, v in accounts.items()}
    return {by_id[line.account_id]: (line.debit, line.credit) for line in lines}


class TestReceivables:
    def test_invoice_with_tax(self):
        strategy = InvoiceStrategy()
        accounts = _accounts(strategy)
        doc = InvoiceDocument(
            source_id="INV-1", document_date=DAY,
            net_amount=Decimal("1000.00"), tax_amount=Decimal("100.00"),
        )

        lines = strategy.build_lines(doc, accounts)

        assert _sides(lines, accounts) == {
            "receivable": (Decimal("1100.00"), Decimal("0")),
            "revenue": (Decimal("0"), Decimal("1000.00")),
            "tax_payable": (Decimal("0"), Decimal("100.00")),
        }
        check_balance(lines)

    def test_invoice_without_tax_skips_tax_role(self):
        strategy = InvoiceStrategy()
        doc = InvoiceDocument(source_id="INV-2", document_date=DAY, net_amount=Decimal("50.00"))

        assert strategy.required_roles(doc) == ("receivable", "revenue")
        accounts = {role: uuid4() for role in strategy.required_roles(doc)}
        assert len(strategy.build_lines(doc, accounts)) == 2

    def test_invoice_payment(self):
        strategy = InvoicePaymentStrategy()
        accounts = _accounts(strategy)
        doc = InvoicePaymentDocument(source_id="PAY-1", document_date=DAY, amount=Decimal("300.00"))

        assert _sides(strategy.build_lines(doc, accounts), accounts) == {
            "cash": (Decimal("300.00"), Decimal("0")),
            "receivable": (Decimal("0"), Decimal("300.00")),
        }


class TestPayables:
    def test_bill_with_tax(self):
        strategy = BillStrategy()
        accounts = _accounts(strategy)
        doc = BillDocument(
            source_id="BILL-1", document_date=DAY,
            net_amount=Decimal("200.00"), tax_amount=Decimal("20.00"),
        )

        lines = strategy.build_lines(doc, accounts)

        assert _sides(lines, accounts)["payable"] == (Decimal("0"), Decimal("220.00"))
        assert check_balance(lines) == (Decimal("220.00"), Decimal("220.00"))

    def test_bill_payment_and_expense(self):
        for strategy, doc in (
            (BillPaymentStrategy(), BillPaymentDocument("BP-1", DAY, amount=Decimal("5.00"))),
            (ExpenseStrategy(), ExpenseDocument("EX-1", DAY, amount=Decimal("5.00"))),
        ):
            lines = strategy.build_lines(doc, _accounts(strategy))
            assert check_balance(lines) == (Decimal("5.00"), Decimal("5.00"))


class TestPayroll:
    def test_deductions_line(self):
        strategy = PayrollRunStrategy()
        accounts = _accounts(strategy)
        doc = PayrollRunDocument(
            source_id="PR-1", document_date=DAY,
            gross_amount=Decimal("5000.00"), net_amount=Decimal("3800.00"),
        )

        sides = _sides(strategy.build_lines(doc, accounts), accounts)

        assert sides["salaries_expense"] == (Decimal("5000.00"), Decimal("0"))
        assert sides["salaries_payable"] == (Decimal("0"), Decimal("3800.00"))
        assert sides["deductions_payable"] == (Decimal("0"), Decimal("1200.00"))

    def test_no_deductions(self):
        strategy = PayrollRunStrategy()
        doc = PayrollRunDocument(
            source_id="PR-2", document_date=DAY,
            gross_amount=Decimal("100.00"), net_amount=Decimal("100.00"),
        )
        assert "deductions_payable" not in strategy.required_roles(doc)


class TestAssetDisposal:
    def test_gain(self):
        strategy = AssetDisposalStrategy()
        accounts = _accounts(strategy)
        doc = AssetDisposalDocument(
            source_id="AD-1", document_date=DAY, cost=Decimal("10000.00"),
            accumulated_depreciation=Decimal("6000.00"), proceeds=Decimal("5000.00"),
        )

        lines = strategy.build_lines(doc, accounts)
        sides = _sides(lines, accounts)

        assert sides["gain_on_disposal"] == (Decimal("0"), Decimal("1000.00"))
        assert "loss_on_disposal" not in sides
        assert check_balance(lines) == (Decimal("11000.00"), Decimal("11000.00"))

    def test_loss_without_proceeds(self):
        strategy = AssetDisposalStrategy()
        accounts = _accounts(strategy)
        doc = AssetDisposalDocument(
            source_id="AD-2", document_date=DAY, cost=Decimal("10000.00"),
            accumulated_depreciation=Decimal("7500.00"),
        )

        assert strategy.required_roles(doc) == (
            "fixed_asset", "accumulated_depreciation", "loss_on_disposal",
        )
        lines = strategy.build_lines(doc, accounts)
        assert _sides(lines, accounts)["loss_on_disposal"] == (Decimal("2500.00"), Decimal("0"))
        check_balance(lines)

    def test_book_value_sale_has_no_gain_or_loss(self):
        strategy = AssetDisposalStrategy()
        doc = AssetDisposalDocument(
            source_id="AD-3", document_date=DAY, cost=Decimal("100.00"),
            accumulated_depreciation=Decimal("40.00"), proceeds=Decimal("60.00"),
        )
        assert strategy.required_roles(doc) == ("fixed_asset", "accumulated_depreciation", "cash")


class TestStrategyContract:
    def test_unresolved_role_raises(self):
        strategy = InvoicePaymentStrategy()
        doc = InvoicePaymentDocument(source_id="PAY-1", document_date=DAY, amount=Decimal("1.00"))

        with pytest.raises(RoleBindingError) as exc_info:
            strategy.build_lines(doc, {"cash": uuid4()})
        assert exc_info.value.code == "ROLE_BINDING_MISSING"

    def test_memo_defaults_to_type_and_source(self):
        doc = ExpenseDocument(source_id="EX-9", document_date=DAY, amount=Decimal("1.00"))
        assert ExpenseStrategy().memo(doc) == "expense EX-9"

        with_memo = ExpenseDocument(
            source_id="EX-9", document_date=DAY, memo="Taxi", amount=Decimal("1.00")
        )
        assert ExpenseStrategy().memo(with_memo) == "Taxi"

    def test_lines_are_deterministic(self):
        strategy = InvoiceStrategy()
        accounts = _accounts(strategy)
        doc = InvoiceDocument(
            source_id="INV-1", document_date=DAY,
            net_amount=Decimal("10.00"), tax_amount=Decimal("1.00"),
        )
        assert strategy.build_lines(doc, accounts) == strategy.build_lines(doc, accounts)

    @pytest.mark.parametrize(
        "strategy,document",
        [
            (InvoiceStrategy(), InvoiceDocument("INV-1", DAY)),
            (BillPaymentStrategy(), BillPaymentDocument("BP-1", DAY)),
            (PayrollRunStrategy(), PayrollRunDocument("PR-1", DAY)),
        ],
    )
    def test_matching_document_accepted(self, strategy, document):
        strategy.check_document(document)

    def test_mismatched_document_rejected(self):
        with pytest.raises(DocumentTypeMismatchError) as exc_info:
            ExpenseStrategy().check_document(InvoiceDocument("INV-1", DAY))
        assert exc_info.value.document_type == "expense"
        assert exc_info.value.expected == "ExpenseDocument"
