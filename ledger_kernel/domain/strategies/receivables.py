"""Invoice and invoice-payment strategies (accounts receivable side)."""

from collections.abc import Mapping
from uuid import UUID

from ledger_kernel.domain.documents import InvoiceDocument, InvoicePaymentDocument
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.strategy import PostingStrategy


class InvoiceStrategy(PostingStrategy):
    """
    Dr receivable (total); Cr revenue (net); Cr tax_payable (tax).

    The tax line is omitted when the invoice carries no tax.
    """

    document_type = "invoice"
    document_class = InvoiceDocument
    roles = ("receivable", "revenue", "tax_payable")

    def required_roles(self, document: InvoiceDocument) -> tuple[str, ...]:
        if document.tax_amount > 0:
            return self.roles
        return ("receivable", "revenue")

    def build_lines(
        self, document: InvoiceDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        lines = [
            self._dr(accounts, "receivable", document.total, document),
            self._cr(accounts, "revenue", document.net_amount, document),
        ]
        if document.tax_amount > 0:
            lines.append(self._cr(accounts, "tax_payable", document.tax_amount, document))
        return tuple(lines)


class InvoicePaymentStrategy(PostingStrategy):
    """Dr cash; Cr receivable."""

    document_type = "invoice_payment"
    document_class = InvoicePaymentDocument
    roles = ("cash", "receivable")

    def build_lines(
        self, document: InvoicePaymentDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        return (
            self._dr(accounts, "cash", document.amount, document),
            self._cr(accounts, "receivable", document.amount, document),
        )
