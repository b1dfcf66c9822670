"""
ReversalService -- compensating entries for posted journal entries.

Responsibility:
    Validates reversal preconditions, builds the mirror lines (debit and
    credit swapped), posts them through PostingService dated at the clock's
    current date, and links original and reversal.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes PostingService (which
    in turn resolves the open period and allocates numbers).

Invariants enforced:
    - Posted entries are never mutated, except that the original gains
      reversed_by_entry_id.  Its lines are never touched.
    - An entry is reversed at most once: the FOR UPDATE row lock, the
      reversed_by_entry_id check, and the unique reversed_entry_id column.
    - A reversal is never itself reversed.
    - The reversal date's period must be OPEN, irrespective of the
      original's period.
    - The reversal goes through the full posting validation, so a locked or
      inactive account blocks it.

Failure modes:
    - EntryNotFoundError, EntryNotPostedError, CannotReverseReversalError,
      EntryAlreadyReversedError.
    - PeriodNotFoundError / PeriodLockedError for the reversal date.
    - AccountInactiveError / AccountLockedError from posting validation.
    - CapabilityDeniedError without CAN_REVERSE.

Audit relevance:
    Writes an AuditLogEntry (journal_reversed) in the same transaction and
    logs reversal_completed.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.capabilities import AllowAllCapabilities, Capability, CapabilityChecker
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import (
    CannotReverseReversalError,
    EntryAlreadyReversedError,
    EntryNotFoundError,
    EntryNotPostedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.posting_service import PostingService

logger = get_logger("services.reversal")

REVERSAL_PREFIX = "REVERSAL: "


@dataclass(frozen=True)
class ReversalResult:
    """Immutable result of a successful reversal."""

    original_entry_id: UUID
    reversal_entry_id: UUID
    document_sequence_number: str
    journal_number: int
    entry_date: date
    fiscal_period_id: UUID


def mirror_lines(entry: JournalEntry) -> list[LineSpec]:
    """
    The original's lines with debit and credit exchanged, same order.

    Each mirrored line keeps the cost centre of the line it reverses.
    """
    return [
        LineSpec(
            account_id=line.account_id,
            debit=line.credit,
            credit=line.debit,
            description=f"{REVERSAL_PREFIX}{line.description or ''}".rstrip(),
            cost_center_id=line.cost_center_id,
        )
        for line in entry.lines
    ]


class ReversalService(BaseService[JournalEntry]):
    """
    Reversal engine.

    Contract:
        ``reverse()`` either posts one reversal entry and links it to the
        original, or raises without writing anything.

    Guarantees:
        - Concurrent reversals of one entry produce exactly one reversal;
          the loser sees EntryAlreadyReversedError.

    Non-goals:
        - Partial (line-level) reversals.
        - Back-dated reversals into the original's period.
    """

    def __init__(
        self,
        session: Session,
        posting_service: PostingService,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        capabilities: CapabilityChecker | None = None,
    ):
        super().__init__(session)
        self._posting = posting_service
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._capabilities = capabilities or AllowAllCapabilities()

    def reverse(
        self,
        tenant_id: UUID,
        entry_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ReversalResult:
        """
        Reverse a posted entry as of the clock's current date.

        Preconditions:
            - ``entry_id`` names a posted, non-reversal, unreversed entry of
              the tenant.

        Postconditions:
            - A posted reversal entry exists with is_reversal=True,
              reversed_entry_id=entry_id and mirrored lines.
            - The original's reversed_by_entry_id names the reversal.

        Raises:
            EntryNotFoundError: Missing or foreign-tenant entry.
            EntryNotPostedError: The entry is not posted.
            CannotReverseReversalError: The entry is itself a reversal.
            EntryAlreadyReversedError: The entry was reversed before.
            PeriodNotFoundError / PeriodLockedError: For today's period.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_REVERSE)

        original = self._load_for_update(tenant_id, entry_id)
        self._validate(tenant_id, original, entry_id)

        reversal_date = self._clock.today()
        memo = f"{REVERSAL_PREFIX}{original.memo or original.source_type}"

        result = self._posting.post_reversal(
            tenant_id, reversal_date, original.id, mirror_lines(original), memo, actor_id
        )
        if not result.is_new:
            # A reversal row exists but the original was never linked
            raise EntryAlreadyReversedError(str(original.id), str(result.entry_id))

        original.reversed_by_entry_id = result.entry_id
        self.session.flush()

        self._audit_log.record(
            tenant_id,
            AuditAction.JOURNAL_REVERSED,
            "JournalEntry",
            original.id,
            actor_id,
            {
                "reversal_entry_id": result.entry_id,
                "reversal_date": reversal_date,
                "reason": reason,
            },
        )
        logger.info(
            "reversal_completed",
            extra={
                "tenant_id": str(tenant_id),
                "original_entry_id": str(original.id),
                "reversal_entry_id": str(result.entry_id),
                "document_sequence_number": result.document_sequence_number,
                "reversal_date": str(reversal_date),
                "reason": reason,
            },
        )
        return ReversalResult(
            original_entry_id=original.id,
            reversal_entry_id=result.entry_id,
            document_sequence_number=result.document_sequence_number,
            journal_number=result.journal_number,
            entry_date=reversal_date,
            fiscal_period_id=result.fiscal_period_id,
        )

    def _validate(self, tenant_id: UUID, original: JournalEntry | None, entry_id: UUID) -> None:
        if original is None:
            raise EntryNotFoundError(str(entry_id))

        if not original.is_posted:
            raise EntryNotPostedError(str(original.id))

        if original.is_reversal:
            raise CannotReverseReversalError(str(original.id), str(original.reversed_entry_id))

        if original.reversed_by_entry_id is not None:
            raise EntryAlreadyReversedError(str(original.id), str(original.reversed_by_entry_id))

        referencing = self.session.execute(
            select(JournalEntry.id).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.reversed_entry_id == original.id,
            )
        ).scalar_one_or_none()
        if referencing is not None:
            raise EntryAlreadyReversedError(str(original.id), str(referencing))

    def _load_for_update(self, tenant_id: UUID, entry_id: UUID) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.tenant_id == tenant_id, JournalEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
