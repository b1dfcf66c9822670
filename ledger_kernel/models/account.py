"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Account code is unique per tenant (uq_account_tenant_code).
    - Balances are never stored here; they are summed from journal lines.
    - The parent chain is acyclic and stays inside the tenant (enforced by
      AccountService at assignment time).

Failure modes:
    - IntegrityError on a duplicate (tenant_id, code).

Audit relevance:
    Flags (is_active, is_locked, is_system) gate posting.  Deactivation and
    deletion are guarded by the service layer against posting history.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"

    @property
    def natural_balance(self) -> "NormalBalance":
        """The side on which this account type increases."""
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


class AccountTag(str, Enum):
    """Standard tags for account categorization."""

    CASH = "cash"
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    FIXED_ASSET = "fixed_asset"
    ACCUMULATED_DEPRECIATION = "accumulated_depreciation"
    RETAINED_EARNINGS = "retained_earnings"
    TAX = "tax"


class Account(TrackedBase):
    """
    Chart of accounts entry -- one node in a tenant's account tree.

    Contract:
        (tenant_id, code) is unique.  parent_id, when set, names an account
        of the same tenant.

    Guarantees:
        - account_type is one of ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE.
        - normal_balance is DEBIT or CREDIT.

    Non-goals:
        - No stored balance.  The ledger is the only source of amounts.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Financial statement placement
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[str] = mapped_column(String(10), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Seeded accounts the rest of the system depends on
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT.value

    @property
    def is_postable(self) -> bool:
        """True when the account accepts new journal lines."""
        return self.is_active and not self.is_locked

    def has_tag(self, tag: AccountTag | str) -> bool:
        """Check if account has a specific tag."""
        if not self.tags:
            return False
        tag_value = tag.value if isinstance(tag, AccountTag) else tag
        return tag_value in self.tags
