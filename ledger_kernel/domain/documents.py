"""
Business documents as the posting strategies see them.

Pure, frozen value objects.  Each carries the originating document id
(``source_id``, the idempotency key together with the document type), the
accounting date, and the amounts its strategy needs.  Storage of the
documents themselves lives outside the ledger.

``account_overrides`` maps a posting role to an account code for this one
document (for example the expense account of a bill), taking precedence
over the configured role binding.

``cost_center_id`` tags every line the document posts.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

ZERO = Decimal("0")


@dataclass(frozen=True)
class PostingDocument:
    """Fields shared by every postable document."""

    source_id: str
    document_date: date
    memo: str | None = None
    account_overrides: dict[str, str] = field(default_factory=dict)
    cost_center_id: UUID | None = None


@dataclass(frozen=True)
class InvoiceDocument(PostingDocument):
    net_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    customer: str | None = None

    @property
    def total(self) -> Decimal:
        return self.net_amount + self.tax_amount


@dataclass(frozen=True)
class InvoicePaymentDocument(PostingDocument):
    amount: Decimal = ZERO
    invoice_id: str | None = None


@dataclass(frozen=True)
class BillDocument(PostingDocument):
    net_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    vendor: str | None = None

    @property
    def total(self) -> Decimal:
        return self.net_amount + self.tax_amount


@dataclass(frozen=True)
class BillPaymentDocument(PostingDocument):
    amount: Decimal = ZERO
    bill_id: str | None = None


@dataclass(frozen=True)
class ExpenseDocument(PostingDocument):
    amount: Decimal = ZERO
    category: str | None = None


@dataclass(frozen=True)
class PayrollRunDocument(PostingDocument):
    gross_amount: Decimal = ZERO
    net_amount: Decimal = ZERO

    @property
    def deductions(self) -> Decimal:
        return self.gross_amount - self.net_amount


@dataclass(frozen=True)
class AssetDisposalDocument(PostingDocument):
    cost: Decimal = ZERO
    accumulated_depreciation: Decimal = ZERO
    proceeds: Decimal = ZERO
    asset_tag: str | None = None

    @property
    def book_value(self) -> Decimal:
        return self.cost - self.accumulated_depreciation

    @property
    def gain(self) -> Decimal:
        """Positive for a gain, negative for a loss."""
        return self.proceeds - self.book_value
