"""
Module: ledger_kernel.models.budget
Responsibility: Budgeted amounts per account per fiscal period, optionally
    per cost centre.  Used only by budget vs actual reporting; budgets
    never affect posting.
Architecture position: Kernel > Models.

Invariants enforced:
    - One budget per (tenant_id, account_id, fiscal_period_id,
      cost_center_id).  The row without a cost centre is enforced by
      BudgetService, since NULLs never collide in a unique constraint.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import ExactDecimal, TrackedBase, UUIDString


class Budget(TrackedBase):
    """Budgeted amount, expressed in the account's natural-balance sign."""

    __tablename__ = "budgets"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "account_id", "fiscal_period_id", "cost_center_id",
            name="uq_budget_tenant_account_period_cc",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    fiscal_period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    cost_center_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    amount: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<Budget account={self.account_id} period={self.fiscal_period_id} {self.amount}>"
