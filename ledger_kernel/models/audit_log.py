"""
Module: ledger_kernel.models.audit_log
Responsibility: Append-only operational trail of ledger mutations (who posted,
    reversed, closed or reconfigured what, and when).
Architecture position: Kernel > Models.  Written only by AuditLogService.

Invariants enforced:
    - Rows are inserted, never updated or deleted.

Audit relevance:
    This trail answers "who did it".  It is not consulted by posting or by
    the integrity auditor, which always derive their answers from journal
    rows.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of recorded ledger actions."""

    # Journal lifecycle
    JOURNAL_POSTED = "journal_posted"
    JOURNAL_REVERSED = "journal_reversed"

    # Calendar lifecycle
    FISCAL_YEAR_CREATED = "fiscal_year_created"
    PERIOD_CREATED = "period_created"
    PERIOD_CLOSED = "period_closed"
    PERIOD_REOPENED = "period_reopened"

    # Account lifecycle
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    ACCOUNT_REACTIVATED = "account_reactivated"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    ACCOUNT_DELETED = "account_deleted"

    # Budgets
    BUDGET_SET = "budget_set"


class AuditLogEntry(Base):
    """One recorded action on one ledger entity."""

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_log_tenant_entity", "tenant_id", "entity_type", "entity_id"),
        Index("idx_audit_log_tenant_action", "tenant_id", "action"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # e.g. "JournalEntry", "FiscalPeriod", "Account"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLogEntry {self.action} on {self.entity_type}:{self.entity_id}>"
