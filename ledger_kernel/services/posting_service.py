"""
PostingService -- the only writer of journal entries and lines.

Responsibility:
    Validates a requested entry (period, lines, accounts, balance), assigns
    its document sequence number and journal number, and inserts the entry
    with all of its lines in the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes PeriodService and
    SequenceService.  Called by DocumentPostingService, ReversalService and
    any document adapter posting raw LineSpecs.

Invariants enforced:
    - Double entry: sum(debit) == sum(credit) > 0, exact Decimal arithmetic.
    - At least two lines; each line non-negative, one-sided, and within the
      configured minor-unit precision.
    - Every line account exists in the entry's tenant, is active and is not
      locked.
    - The entry date falls in an OPEN period (share lock held until commit).
    - Idempotency: one entry per (tenant, source_type, source_id).
    - Atomicity: entry, lines and both sequence allocations commit or roll
      back together.  A rejected posting leaves no row and consumes no
      number.

Failure modes:
    - ValidationError subclasses and AccountError subclasses for bad input.
    - ReservedSourceTypeError: post() called with the reversal source type.
    - PeriodNotFoundError / PeriodLockedError from period resolution.
    - SequenceExhaustedError when counter contention outlasts the retries.
    - CapabilityDeniedError without CAN_POST.
    None of these are retried.

Audit relevance:
    Every posting writes an AuditLogEntry (journal_posted) and an INFO log
    record carrying the document and journal numbers.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import MINOR_UNIT_PLACES, ZERO
from ledger_kernel.domain.capabilities import AllowAllCapabilities, Capability, CapabilityChecker
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    FiscalPeriodInfo,
    JournalEntryInfo,
    LineSpec,
    PostingResult,
    PostingStatus,
)
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountLockedError,
    AccountNotFoundError,
    InsufficientLinesError,
    InvalidLineAmountError,
    ReservedSourceTypeError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.posting")

# Posted only through post_reversal
REVERSAL_SOURCE_TYPE = "reversal"


def validate_line_amounts(
    lines: Sequence[LineSpec], minor_unit_places: int = MINOR_UNIT_PLACES
) -> None:
    """
    Check line count and per-line amounts.  Pure; no I/O.

    Raises:
        InsufficientLinesError: Fewer than two lines.
        InvalidLineAmountError: A negative, two-sided, zero, non-finite or
            over-precise amount.  Line numbers are 1-based.
    """
    if len(lines) < 2:
        raise InsufficientLinesError(len(lines))

    quantum = Decimal(1).scaleb(-minor_unit_places)
    for number, line in enumerate(lines, start=1):
        for side, amount in (("debit", line.debit), ("credit", line.credit)):
            if not isinstance(amount, Decimal) or not amount.is_finite():
                raise InvalidLineAmountError(number, f"{side} {amount!r} is not a finite Decimal")
            if amount < 0:
                raise InvalidLineAmountError(number, f"{side} {amount} is negative")
            if amount != amount.quantize(quantum):
                raise InvalidLineAmountError(
                    number, f"{side} {amount} has more than {minor_unit_places} decimal places"
                )
        if line.debit > 0 and line.credit > 0:
            raise InvalidLineAmountError(number, "both debit and credit are non-zero")
        if line.debit == 0 and line.credit == 0:
            raise InvalidLineAmountError(number, "debit and credit are both zero")


def check_balance(lines: Sequence[LineSpec]) -> tuple[Decimal, Decimal]:
    """
    Sum both sides and require equality over a non-zero total.

    Returns:
        (total_debits, total_credits)

    Raises:
        UnbalancedEntryError
    """
    debits = sum((line.debit for line in lines), ZERO)
    credits = sum((line.credit for line in lines), ZERO)
    if debits != credits or debits == 0:
        raise UnbalancedEntryError(debits, credits)
    return debits, credits


class PostingService(BaseService[JournalEntry]):
    """
    Journal posting engine.

    Contract:
        ``post()`` either inserts exactly one balanced, posted entry with its
        lines, or returns the existing entry for the same source with
        status ALREADY_POSTED, or raises without writing anything.

    Guarantees:
        - Validation order: capability, idempotency, open period, lines,
          accounts, balance, numbering, insert.
        - Flush-only.  The caller's ``session_scope()`` commits.

    Non-goals:
        - Mapping business documents to lines.  See DocumentPostingService
          and the posting strategies.
        - Stored balances.  None are written anywhere.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        period_service: PeriodService | None = None,
        sequence_service: SequenceService | None = None,
        audit_log: AuditLogService | None = None,
        capabilities: CapabilityChecker | None = None,
        minor_unit_places: int = MINOR_UNIT_PLACES,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._capabilities = capabilities or AllowAllCapabilities()
        self._periods = period_service or PeriodService(
            session, self._clock, self._audit_log, self._capabilities
        )
        self._sequences = sequence_service or SequenceService(session)
        self._minor_unit_places = minor_unit_places

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def post(
        self,
        tenant_id: UUID,
        entry_date: date,
        source_type: str,
        source_id: str,
        lines: Sequence[LineSpec],
        memo: str | None,
        actor_id: UUID,
    ) -> PostingResult:
        """
        Post a balanced journal entry.

        Preconditions:
            - Called inside the caller's transaction.

        Postconditions:
            - On POSTED: one JournalEntry (is_posted=True, posted_at=clock
              now) and len(lines) JournalLines exist, numbered from 1.
            - On ALREADY_POSTED: nothing was written.

        Args:
            tenant_id: Owning tenant.
            entry_date: Accounting date; selects the fiscal period.
            source_type: Document type, also the sequence document type.
                ``reversal`` is reserved for post_reversal.
            source_id: Originating document id.
            lines: Requested lines in order.
            memo: Free text for the entry header.
            actor_id: Who is posting.

        Returns:
            PostingResult.

        Raises:
            See module docstring.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_POST)
        if source_type == REVERSAL_SOURCE_TYPE:
            raise ReservedSourceTypeError(source_type)
        return self._post(
            tenant_id, entry_date, source_type, str(source_id), lines, memo, actor_id
        )

    def post_reversal(
        self,
        tenant_id: UUID,
        entry_date: date,
        original_entry_id: UUID,
        lines: Sequence[LineSpec],
        memo: str | None,
        actor_id: UUID,
    ) -> PostingResult:
        """
        Post the compensating entry for ``original_entry_id``.

        Only ReversalService calls this; it checks CAN_REVERSE and the
        reversal preconditions.  The entry is posted with source type
        ``reversal``, source id ``str(original_entry_id)`` and the reversal
        link set.
        """
        return self._post(
            tenant_id,
            entry_date,
            REVERSAL_SOURCE_TYPE,
            str(original_entry_id),
            lines,
            memo,
            actor_id,
            reversed_entry_id=original_entry_id,
        )

    def get_entry(self, tenant_id: UUID, entry_id: UUID) -> JournalEntryInfo | None:
        entry = self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.id == entry_id,
            )
        ).scalar_one_or_none()
        return JournalEntryInfo.from_model(entry) if entry else None

    def get_entry_by_source(
        self, tenant_id: UUID, source_type: str, source_id: str
    ) -> JournalEntryInfo | None:
        entry = self._find_by_source(tenant_id, source_type, str(source_id))
        return JournalEntryInfo.from_model(entry) if entry else None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _post(
        self,
        tenant_id: UUID,
        entry_date: date,
        source_type: str,
        source_id: str,
        lines: Sequence[LineSpec],
        memo: str | None,
        actor_id: UUID,
        reversed_entry_id: UUID | None = None,
    ) -> PostingResult:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            existing = self._find_by_source(tenant_id, source_type, source_id)
            if existing is not None:
                return self._already_posted(existing)

            period = self._periods.resolve_open_period(tenant_id, entry_date)

            lines = list(lines)
            validate_line_amounts(lines, self._minor_unit_places)
            self._validate_accounts(tenant_id, lines)
            total_debits, _ = check_balance(lines)

            # Numbering and insert share a savepoint so that losing the
            # idempotency race also returns the allocated numbers.
            savepoint = self.session.begin_nested()
            try:
                document_number = self._sequences.next_sequence(tenant_id, source_type)
                journal_number = self._sequences.next_number(
                    tenant_id, SequenceService.JOURNAL_ENTRY
                )
                entry = self._insert_entry(
                    tenant_id, entry_date, period, source_type, source_id, lines, memo,
                    actor_id, document_number, journal_number, reversed_entry_id,
                )
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                winner = self._find_by_source(tenant_id, source_type, source_id)
                if winner is None:
                    raise
                logger.info(
                    "journal_idempotency_race_resolved",
                    extra={"source_type": source_type, "source_id": source_id},
                )
                return self._already_posted(winner)

            self._audit_log.record(
                tenant_id,
                AuditAction.JOURNAL_POSTED,
                "JournalEntry",
                entry.id,
                actor_id,
                {
                    "source_type": source_type,
                    "source_id": source_id,
                    "document_sequence_number": document_number,
                    "journal_number": journal_number,
                    "total": total_debits,
                },
            )
            logger.info(
                "journal_posted",
                extra={
                    "entry_id": str(entry.id),
                    "source_type": source_type,
                    "source_id": source_id,
                    "document_sequence_number": document_number,
                    "journal_number": journal_number,
                    "entry_date": str(entry_date),
                    "period": period.name,
                    "line_count": len(lines),
                    "total": str(total_debits),
                },
            )
            return PostingResult(
                status=PostingStatus.POSTED,
                entry_id=entry.id,
                document_sequence_number=document_number,
                journal_number=journal_number,
                fiscal_period_id=period.id,
            )

    def _insert_entry(
        self,
        tenant_id: UUID,
        entry_date: date,
        period: FiscalPeriodInfo,
        source_type: str,
        source_id: str,
        lines: list[LineSpec],
        memo: str | None,
        actor_id: UUID,
        document_number: str,
        journal_number: int,
        reversed_entry_id: UUID | None,
    ) -> JournalEntry:
        entry = JournalEntry(
            tenant_id=tenant_id,
            entry_date=entry_date,
            fiscal_period_id=period.id,
            source_type=source_type,
            source_id=source_id,
            memo=memo,
            is_posted=True,
            posted_at=self._clock.now(),
            is_reversal=reversed_entry_id is not None,
            reversed_entry_id=reversed_entry_id,
            document_sequence_number=document_number,
            journal_number=journal_number,
            created_by_id=actor_id,
        )
        for number, spec in enumerate(lines, start=1):
            entry.lines.append(
                JournalLine(
                    tenant_id=tenant_id,
                    account_id=spec.account_id,
                    line_number=number,
                    debit=spec.debit,
                    credit=spec.credit,
                    description=spec.description,
                    cost_center_id=spec.cost_center_id,
                    created_by_id=actor_id,
                )
            )
        self.session.add(entry)
        self.session.flush()
        return entry

    def _validate_accounts(self, tenant_id: UUID, lines: list[LineSpec]) -> None:
        wanted = {line.account_id for line in lines}
        accounts = {
            account.id: account
            for account in self.session.execute(
                select(Account).where(Account.tenant_id == tenant_id, Account.id.in_(wanted))
            ).scalars()
        }
        for line in lines:
            account = accounts.get(line.account_id)
            if account is None:
                raise AccountNotFoundError(str(line.account_id))
            if not account.is_active:
                raise AccountInactiveError(account.code)
            if account.is_locked:
                raise AccountLockedError(account.code)

    def _find_by_source(
        self, tenant_id: UUID, source_type: str, source_id: str
    ) -> JournalEntry | None:
        return self.session.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _already_posted(entry: JournalEntry) -> PostingResult:
        logger.info(
            "journal_already_posted",
            extra={
                "entry_id": str(entry.id),
                "source_type": entry.source_type,
                "source_id": entry.source_id,
            },
        )
        return PostingResult(
            status=PostingStatus.ALREADY_POSTED,
            entry_id=entry.id,
            document_sequence_number=entry.document_sequence_number,
            journal_number=entry.journal_number,
            fiscal_period_id=entry.fiscal_period_id,
        )
