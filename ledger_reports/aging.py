"""
Receivables and payables aging (pure).

Open documents are supplied by the caller; the ledger does not track
document settlement.  ZERO I/O.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from ledger_kernel.db.types import ZERO
from ledger_reports.models import (
    AgingBucketTotal,
    AgingLine,
    AgingReport,
    CounterpartyAging,
    OpenDocument,
    ReportMetadata,
)

CURRENT = "Current"
DAYS_1_30 = "1-30 days"
DAYS_31_60 = "31-60 days"
DAYS_61_90 = "61-90 days"
DAYS_OVER_90 = "90+ days"

BUCKETS: tuple[str, ...] = (CURRENT, DAYS_1_30, DAYS_31_60, DAYS_61_90, DAYS_OVER_90)


def days_overdue(as_of: date, due_date: date | None) -> int:
    """Days past due at ``as_of``; 0 when not yet due or without a due date."""
    if due_date is None:
        return 0
    return max((as_of - due_date).days, 0)


def bucket_for(days: int) -> str:
    if days <= 0:
        return CURRENT
    if days <= 30:
        return DAYS_1_30
    if days <= 60:
        return DAYS_31_60
    if days <= 90:
        return DAYS_61_90
    return DAYS_OVER_90


def _bucket_totals(lines: Iterable[AgingLine]) -> tuple[AgingBucketTotal, ...]:
    amounts: dict[str, Decimal] = {bucket: ZERO for bucket in BUCKETS}
    counts: dict[str, int] = {bucket: 0 for bucket in BUCKETS}
    for line in lines:
        amounts[line.bucket] += line.amount_due
        counts[line.bucket] += 1
    return tuple(
        AgingBucketTotal(bucket=bucket, amount=amounts[bucket], count=counts[bucket])
        for bucket in BUCKETS
    )


def build_aging(
    documents: Iterable[OpenDocument],
    as_of: date,
    metadata: ReportMetadata,
) -> AgingReport:
    """
    Age open documents into the standard buckets.

    Documents dated after ``as_of`` are excluded.  Every bucket appears in
    the totals, in bucket order, even when empty.
    """
    lines: list[AgingLine] = []
    for doc in documents:
        if doc.document_date > as_of:
            continue
        days = days_overdue(as_of, doc.due_date)
        lines.append(
            AgingLine(
                document_id=doc.id,
                number=doc.number,
                counterparty=doc.counterparty,
                document_date=doc.document_date,
                due_date=doc.due_date,
                days_overdue=days,
                bucket=bucket_for(days),
                amount_due=doc.amount_due,
            )
        )
    lines.sort(key=lambda line: (line.counterparty, line.document_date, line.number))

    by_counterparty: dict[str, list[AgingLine]] = defaultdict(list)
    for line in lines:
        by_counterparty[line.counterparty].append(line)

    counterparties = tuple(
        CounterpartyAging(
            counterparty=name,
            buckets=_bucket_totals(party_lines),
            total=sum((line.amount_due for line in party_lines), ZERO),
        )
        for name, party_lines in sorted(by_counterparty.items())
    )

    return AgingReport(
        metadata=metadata,
        lines=tuple(lines),
        buckets=_bucket_totals(lines),
        by_counterparty=counterparties,
        total=sum((line.amount_due for line in lines), ZERO),
    )
