"""
IntegrityAuditor -- on-demand consistency scan of a tenant's ledger.

Responsibility:
    Loads every journal entry and line of a tenant (plus the periods they
    reference) into plain snapshots and runs pure detectors over them,
    collecting Anomaly records.  Reports, never repairs.

Architecture position:
    Kernel > Services -- read-only.  The detectors are pure functions over
    snapshots so that corrupt states the ORM would refuse to create can be
    tested without a database.

Invariants checked:
    - Every entry balances and has at least two lines.
    - Every line belongs to an entry and an account of the same tenant, and
      is non-negative and one-sided.
    - Entries are posted, dated inside their period, and not posted after
      their period closed.
    - Document sequence numbers are unique.
    - Reversal links are reciprocal, acyclic, and reversal lines mirror the
      original.
    - Ledger-wide posted debits equal credits.
    - A receivable or payable subledger (the caller's open documents)
      agrees with its control accounts within a tolerance.

Failure modes:
    - None raised for integrity violations; they become anomalies.

Audit relevance:
    Logs integrity_audit_completed with the counts; each anomaly is logged
    at WARNING.
"""

from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountTag
from ledger_kernel.models.fiscal_calendar import FiscalPeriod, PeriodStatus
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.integrity_auditor")


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


class AnomalyCode(str, Enum):
    UNBALANCED_ENTRY = "UNBALANCED_ENTRY"
    INSUFFICIENT_LINES = "INSUFFICIENT_LINES"
    ORPHAN_LINE = "ORPHAN_LINE"
    INVALID_LINE_AMOUNT = "INVALID_LINE_AMOUNT"
    CROSS_TENANT_LINE = "CROSS_TENANT_LINE"
    UNPOSTED_ENTRY = "UNPOSTED_ENTRY"
    POSTED_AFTER_PERIOD_CLOSE = "POSTED_AFTER_PERIOD_CLOSE"
    PERIOD_MISMATCH = "PERIOD_MISMATCH"
    DUPLICATE_SEQUENCE_NUMBER = "DUPLICATE_SEQUENCE_NUMBER"
    REVERSAL_LINK_BROKEN = "REVERSAL_LINK_BROKEN"
    REVERSAL_CYCLE = "REVERSAL_CYCLE"
    REVERSAL_NOT_MIRRORED = "REVERSAL_NOT_MIRRORED"
    SUBLEDGER_MISMATCH = "SUBLEDGER_MISMATCH"


_SEVERITY = {code: Severity.CRITICAL for code in AnomalyCode}
_SEVERITY[AnomalyCode.UNPOSTED_ENTRY] = Severity.WARNING


@dataclass(frozen=True)
class Anomaly:
    """One integrity finding."""

    code: AnomalyCode
    message: str
    entry_id: UUID | None = None
    line_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> Severity:
        return _SEVERITY[self.code]


@dataclass(frozen=True)
class AuditReport:
    """Result of IntegrityAuditor.audit_tenant."""

    tenant_id: UUID
    is_balanced: bool
    total_debits: Decimal
    total_credits: Decimal
    entries_scanned: int
    lines_scanned: int
    anomalies: tuple[Anomaly, ...]
    checked_at: datetime

    @property
    def is_clean(self) -> bool:
        return self.is_balanced and not self.anomalies

    @property
    def critical_count(self) -> int:
        return sum(1 for a in self.anomalies if a.severity == Severity.CRITICAL)

    def codes(self) -> set[AnomalyCode]:
        return {a.code for a in self.anomalies}


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EntrySnapshot:
    id: UUID
    entry_date: date
    fiscal_period_id: UUID | None
    is_posted: bool
    posted_at: datetime | None
    is_reversal: bool
    reversed_entry_id: UUID | None
    reversed_by_entry_id: UUID | None
    document_sequence_number: str


@dataclass(frozen=True)
class LineSnapshot:
    id: UUID
    tenant_id: UUID
    journal_entry_id: UUID
    account_id: UUID
    account_tenant_id: UUID | None
    line_number: int
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class PeriodSnapshot:
    id: UUID
    name: str
    start_date: date
    end_date: date
    status: str
    closed_at: datetime | None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _group_lines(lines: Iterable[LineSnapshot]) -> dict[UUID, list[LineSnapshot]]:
    grouped: dict[UUID, list[LineSnapshot]] = defaultdict(list)
    for line in lines:
        grouped[line.journal_entry_id].append(line)
    return grouped


# ---------------------------------------------------------------------------
# Detectors (pure)
# ---------------------------------------------------------------------------


def detect_entry_anomalies(
    entries: Sequence[EntrySnapshot], lines_by_entry: Mapping[UUID, Sequence[LineSnapshot]]
) -> list[Anomaly]:
    """Unbalanced entries and entries with fewer than two lines."""
    found: list[Anomaly] = []
    for entry in entries:
        lines = lines_by_entry.get(entry.id, ())
        if len(lines) < 2:
            found.append(
                Anomaly(
                    AnomalyCode.INSUFFICIENT_LINES,
                    f"entry {entry.document_sequence_number} has {len(lines)} line(s)",
                    entry_id=entry.id,
                    details={"line_count": len(lines)},
                )
            )
        debits = sum((line.debit for line in lines), ZERO)
        credits = sum((line.credit for line in lines), ZERO)
        if debits != credits:
            found.append(
                Anomaly(
                    AnomalyCode.UNBALANCED_ENTRY,
                    f"entry {entry.document_sequence_number} debits {debits} ≠ credits {credits}",
                    entry_id=entry.id,
                    details={"debits": debits, "credits": credits},
                )
            )
    return found


def detect_line_anomalies(
    tenant_id: UUID, lines: Sequence[LineSnapshot], entry_ids: set[UUID]
) -> list[Anomaly]:
    """Orphan lines, malformed amounts and lines crossing tenants."""
    found: list[Anomaly] = []
    for line in lines:
        if line.journal_entry_id not in entry_ids:
            found.append(
                Anomaly(
                    AnomalyCode.ORPHAN_LINE,
                    f"line {line.id} references missing entry {line.journal_entry_id}",
                    entry_id=line.journal_entry_id,
                    line_id=line.id,
                )
            )

        reason = None
        if line.debit < 0 or line.credit < 0:
            reason = "negative amount"
        elif (line.debit > 0) == (line.credit > 0):
            reason = "not exactly one non-zero side"
        if reason is not None:
            found.append(
                Anomaly(
                    AnomalyCode.INVALID_LINE_AMOUNT,
                    f"line {line.line_number} of entry {line.journal_entry_id}: {reason}",
                    entry_id=line.journal_entry_id,
                    line_id=line.id,
                    details={"debit": line.debit, "credit": line.credit},
                )
            )

        if line.tenant_id != tenant_id or line.account_tenant_id != tenant_id:
            found.append(
                Anomaly(
                    AnomalyCode.CROSS_TENANT_LINE,
                    f"line {line.id} crosses tenants",
                    entry_id=line.journal_entry_id,
                    line_id=line.id,
                    details={
                        "line_tenant_id": line.tenant_id,
                        "account_tenant_id": line.account_tenant_id,
                    },
                )
            )
    return found


def detect_unposted_entries(entries: Sequence[EntrySnapshot]) -> list[Anomaly]:
    return [
        Anomaly(
            AnomalyCode.UNPOSTED_ENTRY,
            f"entry {entry.document_sequence_number} persisted without posting",
            entry_id=entry.id,
        )
        for entry in entries
        if not entry.is_posted
    ]


def detect_period_anomalies(
    entries: Sequence[EntrySnapshot], periods: Mapping[UUID, PeriodSnapshot]
) -> list[Anomaly]:
    """Entries outside their period, and postings made after a period closed."""
    found: list[Anomaly] = []
    for entry in entries:
        period = periods.get(entry.fiscal_period_id) if entry.fiscal_period_id else None
        if period is None:
            found.append(
                Anomaly(
                    AnomalyCode.PERIOD_MISMATCH,
                    f"entry {entry.document_sequence_number} references no known period",
                    entry_id=entry.id,
                    details={"fiscal_period_id": entry.fiscal_period_id},
                )
            )
            continue

        if not period.start_date <= entry.entry_date <= period.end_date:
            found.append(
                Anomaly(
                    AnomalyCode.PERIOD_MISMATCH,
                    f"entry {entry.document_sequence_number} dated {entry.entry_date} "
                    f"outside {period.name}",
                    entry_id=entry.id,
                    details={"entry_date": entry.entry_date, "period": period.name},
                )
            )

        if (
            period.status == PeriodStatus.CLOSED.value
            and period.closed_at is not None
            and entry.posted_at is not None
            and _as_utc(entry.posted_at) > _as_utc(period.closed_at)
        ):
            found.append(
                Anomaly(
                    AnomalyCode.POSTED_AFTER_PERIOD_CLOSE,
                    f"entry {entry.document_sequence_number} posted into closed {period.name}",
                    entry_id=entry.id,
                    details={"posted_at": entry.posted_at, "closed_at": period.closed_at},
                )
            )
    return found


def detect_duplicate_sequence_numbers(entries: Sequence[EntrySnapshot]) -> list[Anomaly]:
    by_number: dict[str, list[UUID]] = defaultdict(list)
    for entry in entries:
        by_number[entry.document_sequence_number].append(entry.id)
    return [
        Anomaly(
            AnomalyCode.DUPLICATE_SEQUENCE_NUMBER,
            f"{number} is used by {len(ids)} entries",
            entry_id=ids[0],
            details={"entry_ids": ids},
        )
        for number, ids in sorted(by_number.items())
        if len(ids) > 1
    ]


def _mirror_key(lines: Iterable[LineSnapshot], swap: bool) -> Counter:
    if swap:
        return Counter((line.account_id, line.credit, line.debit) for line in lines)
    return Counter((line.account_id, line.debit, line.credit) for line in lines)


def detect_reversal_anomalies(
    entries: Sequence[EntrySnapshot], lines_by_entry: Mapping[UUID, Sequence[LineSnapshot]]
) -> list[Anomaly]:
    """Broken or one-sided links, cycles, and reversals that do not mirror."""
    by_id = {entry.id: entry for entry in entries}
    found: list[Anomaly] = []

    for entry in entries:
        if entry.reversed_entry_id is not None:
            target = by_id.get(entry.reversed_entry_id)
            if target is None:
                found.append(
                    Anomaly(
                        AnomalyCode.REVERSAL_LINK_BROKEN,
                        f"reversal {entry.document_sequence_number} targets a missing entry",
                        entry_id=entry.id,
                        details={"reversed_entry_id": entry.reversed_entry_id},
                    )
                )
            else:
                if target.reversed_by_entry_id != entry.id or not entry.is_reversal:
                    found.append(
                        Anomaly(
                            AnomalyCode.REVERSAL_LINK_BROKEN,
                            f"reversal {entry.document_sequence_number} and "
                            f"{target.document_sequence_number} are not linked both ways",
                            entry_id=entry.id,
                            details={
                                "reversed_entry_id": target.id,
                                "target_reversed_by": target.reversed_by_entry_id,
                            },
                        )
                    )
                reversal_lines = lines_by_entry.get(entry.id, ())
                original_lines = lines_by_entry.get(target.id, ())
                if _mirror_key(reversal_lines, swap=False) != _mirror_key(original_lines, swap=True):
                    found.append(
                        Anomaly(
                            AnomalyCode.REVERSAL_NOT_MIRRORED,
                            f"reversal {entry.document_sequence_number} does not mirror "
                            f"{target.document_sequence_number}",
                            entry_id=entry.id,
                            details={"reversed_entry_id": target.id},
                        )
                    )

        if entry.reversed_by_entry_id is not None:
            reversal = by_id.get(entry.reversed_by_entry_id)
            if reversal is None or reversal.reversed_entry_id != entry.id:
                found.append(
                    Anomaly(
                        AnomalyCode.REVERSAL_LINK_BROKEN,
                        f"entry {entry.document_sequence_number} names a reversal "
                        f"that does not point back",
                        entry_id=entry.id,
                        details={"reversed_by_entry_id": entry.reversed_by_entry_id},
                    )
                )

    found.extend(_detect_reversal_cycles(by_id))
    return found


def _detect_reversal_cycles(by_id: Mapping[UUID, EntrySnapshot]) -> list[Anomaly]:
    found: list[Anomaly] = []
    reported: set[frozenset[UUID]] = set()
    for start in by_id.values():
        path: list[UUID] = []
        seen: set[UUID] = set()
        node = start
        while node is not None and node.reversed_entry_id is not None:
            if node.id in seen:
                cycle = frozenset(path[path.index(node.id):])
                if cycle not in reported:
                    reported.add(cycle)
                    found.append(
                        Anomaly(
                            AnomalyCode.REVERSAL_CYCLE,
                            f"reversal links form a cycle through {len(cycle)} entries",
                            entry_id=node.id,
                            details={"entry_ids": sorted(cycle, key=str)},
                        )
                    )
                break
            seen.add(node.id)
            path.append(node.id)
            node = by_id.get(node.reversed_entry_id)
    return found


# ---------------------------------------------------------------------------
# Subledger reconciliation
# ---------------------------------------------------------------------------


class SubledgerType(str, Enum):
    AR = "ar"
    AP = "ap"


# Control accounts are found by tag, not by code
_CONTROL_TAG = {
    SubledgerType.AR: AccountTag.RECEIVABLE,
    SubledgerType.AP: AccountTag.PAYABLE,
}

DEFAULT_RECONCILIATION_TOLERANCE = Decimal("0.01")


class OpenItem(Protocol):
    """Anything with an outstanding amount and a date, e.g. an open invoice."""

    document_date: date
    amount_due: Decimal


@dataclass(frozen=True)
class SubledgerReconciliation:
    """
    Subledger total compared with its control accounts at a date.

    variance is subledger_balance - control_account_balance, so a positive
    variance means documents are outstanding that the ledger does not carry.
    """

    tenant_id: UUID
    subledger_type: SubledgerType
    as_of_date: date
    subledger_balance: Decimal
    control_account_balance: Decimal
    variance: Decimal
    tolerance: Decimal
    documents_checked: int
    checked_at: datetime

    @property
    def is_balanced(self) -> bool:
        return self.variance == ZERO

    @property
    def is_reconciled(self) -> bool:
        return abs(self.variance) <= self.tolerance

    def anomaly(self) -> Anomaly | None:
        if self.is_reconciled:
            return None
        return Anomaly(
            AnomalyCode.SUBLEDGER_MISMATCH,
            f"{self.subledger_type.value} subledger {self.subledger_balance} ≠ "
            f"control {self.control_account_balance} at {self.as_of_date}",
            details={
                "subledger_balance": self.subledger_balance,
                "control_account_balance": self.control_account_balance,
                "variance": self.variance,
                "tolerance": self.tolerance,
            },
        )


def subledger_total(documents: Iterable[OpenItem], as_of: date) -> tuple[Decimal, int]:
    """Sum of amount_due over documents dated on or before as_of, and their count."""
    total = ZERO
    count = 0
    for document in documents:
        if document.document_date > as_of:
            continue
        total += document.amount_due
        count += 1
    return total, count


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class IntegrityAuditor:
    """
    Scans a tenant and reports anomalies.

    Contract:
        ``audit_tenant`` is read-only and tolerant of any stored state.

    Non-goals:
        - Repair.  Findings are for an operator to act on.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def audit_tenant(self, tenant_id: UUID) -> AuditReport:
        entries = self._load_entries(tenant_id)
        lines = self._load_lines(tenant_id)
        periods = self._load_periods(tenant_id, entries)

        entry_ids = {entry.id for entry in entries}
        lines_by_entry = _group_lines(line for line in lines if line.journal_entry_id in entry_ids)

        anomalies: list[Anomaly] = []
        anomalies.extend(detect_entry_anomalies(entries, lines_by_entry))
        anomalies.extend(detect_line_anomalies(tenant_id, lines, entry_ids))
        anomalies.extend(detect_unposted_entries(entries))
        anomalies.extend(detect_period_anomalies(entries, periods))
        anomalies.extend(detect_duplicate_sequence_numbers(entries))
        anomalies.extend(detect_reversal_anomalies(entries, lines_by_entry))

        posted = {entry.id for entry in entries if entry.is_posted}
        total_debits = sum(
            (line.debit for line in lines if line.journal_entry_id in posted), ZERO
        )
        total_credits = sum(
            (line.credit for line in lines if line.journal_entry_id in posted), ZERO
        )

        for anomaly in anomalies:
            logger.warning(
                "integrity_anomaly",
                extra={
                    "tenant_id": str(tenant_id),
                    "code": anomaly.code.value,
                    "severity": anomaly.severity.value,
                    "entry_id": str(anomaly.entry_id) if anomaly.entry_id else None,
                    "detail": anomaly.message,
                },
            )

        report = AuditReport(
            tenant_id=tenant_id,
            is_balanced=total_debits == total_credits,
            total_debits=total_debits,
            total_credits=total_credits,
            entries_scanned=len(entries),
            lines_scanned=len(lines),
            anomalies=tuple(anomalies),
            checked_at=self._clock.now(),
        )
        logger.info(
            "integrity_audit_completed",
            extra={
                "tenant_id": str(tenant_id),
                "entries_scanned": report.entries_scanned,
                "lines_scanned": report.lines_scanned,
                "anomaly_count": len(anomalies),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def reconcile_subledger(
        self,
        tenant_id: UUID,
        subledger_type: SubledgerType,
        documents: Iterable[OpenItem],
        as_of: date,
        tolerance: Decimal = DEFAULT_RECONCILIATION_TOLERANCE,
    ) -> SubledgerReconciliation:
        """
        Compare the caller's open documents with the control account balance.

        The control balance is the posted balance, as of ``as_of``, of every
        account tagged receivable (AR) or payable (AP).  Documents dated
        after ``as_of`` are ignored.
        """
        subledger_type = SubledgerType(subledger_type)
        tag = _CONTROL_TAG[subledger_type]
        subledger_balance, documents_checked = subledger_total(documents, as_of)

        control_balance = sum(
            (
                row.balance
                for row in LedgerSelector(self._session).trial_balance(tenant_id, to_date=as_of)
                if row.account.has_tag(tag)
            ),
            ZERO,
        )

        result = SubledgerReconciliation(
            tenant_id=tenant_id,
            subledger_type=subledger_type,
            as_of_date=as_of,
            subledger_balance=subledger_balance,
            control_account_balance=control_balance,
            variance=subledger_balance - control_balance,
            tolerance=tolerance,
            documents_checked=documents_checked,
            checked_at=self._clock.now(),
        )

        extra = {
            "tenant_id": str(tenant_id),
            "subledger_type": subledger_type.value,
            "as_of_date": as_of.isoformat(),
            "subledger_balance": str(result.subledger_balance),
            "control_account_balance": str(result.control_account_balance),
            "variance": str(result.variance),
        }
        if result.is_reconciled:
            logger.info("subledger_reconciled", extra=extra)
        else:
            logger.warning("subledger_mismatch", extra=extra)
        return result

    def _load_entries(self, tenant_id: UUID) -> list[EntrySnapshot]:
        rows = self._session.execute(
            select(
                JournalEntry.id,
                JournalEntry.entry_date,
                JournalEntry.fiscal_period_id,
                JournalEntry.is_posted,
                JournalEntry.posted_at,
                JournalEntry.is_reversal,
                JournalEntry.reversed_entry_id,
                JournalEntry.reversed_by_entry_id,
                JournalEntry.document_sequence_number,
            )
            .where(JournalEntry.tenant_id == tenant_id)
            .order_by(JournalEntry.journal_number)
        ).all()
        return [EntrySnapshot(*row) for row in rows]

    def _load_lines(self, tenant_id: UUID) -> list[LineSnapshot]:
        tenant_entries = select(JournalEntry.id).where(JournalEntry.tenant_id == tenant_id)
        rows = self._session.execute(
            select(
                JournalLine.id,
                JournalLine.tenant_id,
                JournalLine.journal_entry_id,
                JournalLine.account_id,
                Account.tenant_id,
                JournalLine.line_number,
                JournalLine.debit,
                JournalLine.credit,
            )
            .outerjoin(Account, JournalLine.account_id == Account.id)
            .where(
                or_(
                    JournalLine.tenant_id == tenant_id,
                    JournalLine.journal_entry_id.in_(tenant_entries),
                )
            )
            .order_by(JournalLine.journal_entry_id, JournalLine.line_number)
        ).all()
        return [LineSnapshot(*row) for row in rows]

    def _load_periods(
        self, tenant_id: UUID, entries: Sequence[EntrySnapshot]
    ) -> dict[UUID, PeriodSnapshot]:
        period_ids = {entry.fiscal_period_id for entry in entries if entry.fiscal_period_id}
        if not period_ids:
            return {}
        rows = self._session.execute(
            select(
                FiscalPeriod.id,
                FiscalPeriod.name,
                FiscalPeriod.start_date,
                FiscalPeriod.end_date,
                FiscalPeriod.status,
                FiscalPeriod.closed_at,
            ).where(FiscalPeriod.tenant_id == tenant_id, FiscalPeriod.id.in_(period_ids))
        ).all()
        return {row[0]: PeriodSnapshot(*row) for row in rows}
