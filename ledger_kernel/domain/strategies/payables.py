"""Bill, bill-payment and expense strategies (accounts payable side)."""

from collections.abc import Mapping
from uuid import UUID

from ledger_kernel.domain.documents import BillDocument, BillPaymentDocument, ExpenseDocument
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.strategy import PostingStrategy


class BillStrategy(PostingStrategy):
    """
    Dr expense (net); Dr tax_receivable (tax); Cr payable (total).

    The tax line is omitted when the bill carries no tax.
    """

    document_type = "bill"
    document_class = BillDocument
    roles = ("expense", "tax_receivable", "payable")

    def required_roles(self, document: BillDocument) -> tuple[str, ...]:
        if document.tax_amount > 0:
            return self.roles
        return ("expense", "payable")

    def build_lines(
        self, document: BillDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        lines = [self._dr(accounts, "expense", document.net_amount, document)]
        if document.tax_amount > 0:
            lines.append(self._dr(accounts, "tax_receivable", document.tax_amount, document))
        lines.append(self._cr(accounts, "payable", document.total, document))
        return tuple(lines)


class BillPaymentStrategy(PostingStrategy):
    """Dr payable; Cr cash."""

    document_type = "bill_payment"
    document_class = BillPaymentDocument
    roles = ("payable", "cash")

    def build_lines(
        self, document: BillPaymentDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        return (
            self._dr(accounts, "payable", document.amount, document),
            self._cr(accounts, "cash", document.amount, document),
        )


class ExpenseStrategy(PostingStrategy):
    """Dr expense; Cr cash.  A paid-on-the-spot expense."""

    document_type = "expense"
    document_class = ExpenseDocument
    roles = ("expense", "cash")

    def build_lines(
        self, document: ExpenseDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        return (
            self._dr(accounts, "expense", document.amount, document),
            self._cr(accounts, "cash", document.amount, document),
        )
