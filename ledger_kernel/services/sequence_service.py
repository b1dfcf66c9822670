"""
SequenceService -- per-tenant, per-document-type numbering via locked counter rows.

Responsibility:
    Issues document numbers such as ``JE-INV-000042`` and the tenant-wide
    journal numbers that order the general ledger.  Each (tenant, document
    type) has one DocumentSequence row; allocation locks that row,
    increments it and returns the previous value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    PostingService inside the posting transaction.

Invariants enforced:
    - Numbers for a (tenant, type) are strictly increasing and never reused.
      The counter row is the only source of truth; max(existing)+1 is never
      used.
    - Transactional: the increment is visible only when the caller commits.
      A rolled-back posting returns its number.
    - Lock order: a posting locks its document-type counter before the
      journal counter.  Every caller follows that order.

Failure modes:
    - IntegrityError on the first-use creation race (absorbed: savepoint
      rollback, then lock the row the other transaction created).
    - OperationalError on lock contention (lock timeout, deadlock,
      serialization failure, SQLite busy): retried inside a savepoint with
      bounded exponential backoff, then SequenceExhaustedError.

Audit relevance:
    Allocation is logged at DEBUG with tenant, document type and number.
    Every retry is logged at WARNING.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import SequenceContentionError, SequenceExhaustedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.document_sequence import DocumentSequence
from ledger_kernel.services.base import BaseService

logger = get_logger("services.sequence")

DEFAULT_PREFIXES: dict[str, str] = {
    "invoice": "JE-INV-",
    "invoice_payment": "JE-PAY-",
    "bill": "JE-BIL-",
    "bill_payment": "JE-BPY-",
    "journal_manual": "JE-MAN-",
    "expense": "JE-EXP-",
    "payroll_run": "JE-PRL-",
    "asset_disposal": "JE-DSP-",
    "reversal": "JE-REV-",
}

DEFAULT_PADDING = 6

# PostgreSQL SQLSTATEs: serialization_failure, deadlock_detected, lock_not_available
_CONTENTION_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
_CONTENTION_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock timeout")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for counter-row contention."""

    max_attempts: int = 5
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)


def default_prefix(document_type: str) -> str:
    """Prefix for a type with no configured prefix: ``JE-`` + 3 letters + ``-``."""
    return f"JE-{document_type[:3].upper()}-"


def is_lock_contention(exc: OperationalError) -> bool:
    """True when the database refused a lock rather than failing outright."""
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _CONTENTION_SQLSTATES:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


class SequenceService(BaseService[DocumentSequence]):
    """
    Transactional document-number allocation.

    Contract:
        ``next_number`` returns the next integer for (tenant, type);
        ``next_sequence`` returns it formatted as ``prefix + zero-padded``.

    Guarantees:
        - Concurrent callers for the same (tenant, type) receive pairwise
          distinct, increasing numbers; committed numbers form a contiguous
          run.
        - ``SELECT ... FOR UPDATE`` on PostgreSQL; on SQLite the
          transaction already holds the database write lock
          (BEGIN IMMEDIATE).

    Non-goals:
        - Does NOT commit.  The caller's transaction owns the number.

    Usage:
        with session_scope() as session:
            number = SequenceService(session).next_sequence(tenant_id, "invoice")
    """

    JOURNAL_ENTRY = "journal_entry"

    def __init__(
        self,
        session: Session,
        prefixes: Mapping[str, str] | None = None,
        padding: int = DEFAULT_PADDING,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(session)
        self._prefixes = dict(DEFAULT_PREFIXES if prefixes is None else prefixes)
        self._padding = padding
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def next_sequence(self, tenant_id: UUID, document_type: str) -> str:
        """
        Allocate and format the next document number.

        Preconditions:
            - The caller is inside an active transaction.

        Returns:
            e.g. ``"JE-INV-000001"`` for the first invoice of a tenant.

        Raises:
            SequenceExhaustedError: If contention outlasts the retry policy.
        """
        prefix, number = self._allocate_with_retry(tenant_id, document_type)
        return self.format_number(prefix, number)

    def next_number(self, tenant_id: UUID, document_type: str) -> int:
        """Allocate the next raw integer for (tenant, type)."""
        _, number = self._allocate_with_retry(tenant_id, document_type)
        return number

    def format_number(self, prefix: str, number: int) -> str:
        return f"{prefix}{str(number).zfill(self._padding)}"

    def prefix_for(self, document_type: str) -> str:
        """Configured prefix, or the derived default for unknown types."""
        return self._prefixes.get(document_type) or default_prefix(document_type)

    def current_value(self, tenant_id: UUID, document_type: str) -> int | None:
        """Last number issued, or None if the counter was never used."""
        counter = self._get_counter(tenant_id, document_type)
        if counter is None or counter.next_number <= 1:
            return None
        return counter.next_number - 1

    def peek_next(self, tenant_id: UUID, document_type: str) -> str:
        """The number the next allocation would issue.  Does not lock."""
        counter = self._get_counter(tenant_id, document_type)
        if counter is None:
            return self.format_number(self.prefix_for(document_type), 1)
        return self.format_number(counter.prefix, counter.next_number)

    def configure_prefix(self, tenant_id: UUID, document_type: str, prefix: str) -> None:
        """
        Set the tenant's prefix for a document type.

        Numbers already issued keep their old prefix; the counter continues.
        """
        if not prefix:
            raise ValueError("prefix must be non-empty")
        counter = self._lock_counter(tenant_id, document_type)
        if counter is None:
            counter = DocumentSequence(
                tenant_id=tenant_id,
                document_type=document_type,
                prefix=prefix,
                next_number=1,
            )
            self.session.add(counter)
        else:
            counter.prefix = prefix
        self.session.flush()
        logger.info(
            "sequence_prefix_configured",
            extra={
                "tenant_id": str(tenant_id),
                "document_type": document_type,
                "prefix": prefix,
            },
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _allocate_with_retry(self, tenant_id: UUID, document_type: str) -> tuple[str, int]:
        for attempt in range(1, self._retry.max_attempts + 1):
            try:
                with self.session.begin_nested():
                    return self._allocate(tenant_id, document_type)
            except OperationalError as exc:
                if not is_lock_contention(exc):
                    raise
                contention = SequenceContentionError(document_type, attempt)
                logger.warning(
                    "sequence_contention_retry",
                    extra={
                        "tenant_id": str(tenant_id),
                        "document_type": document_type,
                        "attempt": attempt,
                        "max_attempts": self._retry.max_attempts,
                        "error": str(contention),
                    },
                )
                if attempt < self._retry.max_attempts:
                    self._sleep(self._retry.delay_for(attempt))

        logger.error(
            "sequence_exhausted",
            extra={
                "tenant_id": str(tenant_id),
                "document_type": document_type,
                "attempts": self._retry.max_attempts,
            },
        )
        raise SequenceExhaustedError(document_type, self._retry.max_attempts)

    def _allocate(self, tenant_id: UUID, document_type: str) -> tuple[str, int]:
        counter = self._lock_counter(tenant_id, document_type)

        if counter is None:
            # First use.  Another transaction may be creating the same row.
            savepoint = self.session.begin_nested()
            try:
                counter = DocumentSequence(
                    tenant_id=tenant_id,
                    document_type=document_type,
                    prefix=self.prefix_for(document_type),
                    next_number=2,
                )
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                self._log_allocated(tenant_id, document_type, 1)
                return counter.prefix, 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"tenant_id": str(tenant_id), "document_type": document_type},
                )
                savepoint.rollback()
                counter = self._lock_counter(tenant_id, document_type)
                if counter is None:
                    raise

        issued = counter.next_number
        counter.next_number = issued + 1
        self.session.flush()
        self._log_allocated(tenant_id, document_type, issued)
        return counter.prefix, issued

    def _lock_counter(self, tenant_id: UUID, document_type: str) -> DocumentSequence | None:
        return self.session.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.document_type == document_type,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _get_counter(self, tenant_id: UUID, document_type: str) -> DocumentSequence | None:
        return self.session.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.document_type == document_type,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _log_allocated(tenant_id: UUID, document_type: str, number: int) -> None:
        logger.debug(
            "sequence_allocated",
            extra={
                "tenant_id": str(tenant_id),
                "document_type": document_type,
                "value": number,
            },
        )
