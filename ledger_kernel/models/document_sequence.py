"""
Module: ledger_kernel.models.document_sequence
Responsibility: Per-tenant, per-document-type counter rows backing document
    numbers such as JE-INV-000042.
Architecture position: Kernel > Models.  Read and written only by
    SequenceService.

Invariants enforced:
    - (tenant_id, document_type) is unique: one counter per type.
    - next_number only grows, and only under a row lock held by the
      allocating transaction.
"""

from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class DocumentSequence(Base):
    """
    Counter row for one (tenant, document type).

    next_number is the number the next allocation will issue.
    """

    __tablename__ = "document_sequences"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_type", name="uq_docseq_tenant_type"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # e.g. "invoice", "reversal", "journal_entry"
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)

    prefix: Mapped[str] = mapped_column(String(20), nullable=False)

    next_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<DocumentSequence {self.document_type} next={self.next_number}>"
