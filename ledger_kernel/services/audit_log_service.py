"""
AuditLogService -- append-only operational trail of ledger mutations.

Responsibility:
    Records who performed which ledger action on which entity, with a small
    JSON payload of the facts that mattered (amounts, document numbers,
    period names).  Read helpers serve investigations and tests.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the account, period,
    posting, reversal and budget services inside their own transaction.

Invariants enforced:
    - Append-only: this service never updates or deletes rows.
    - A recorded action commits or rolls back with the mutation it
      describes, because both share the caller's transaction.

Audit relevance:
    This is the "who did it" trail.  It is never an input to posting rules
    or to the integrity auditor.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditLogEntry
from ledger_kernel.services.base import BaseService

logger = get_logger("services.audit_log")


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AuditLogService(BaseService[AuditLogEntry]):
    """
    Writes and reads AuditLogEntry rows.

    Non-goals:
        - No hash chain.  Tamper evidence is out of scope for this trail.
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        tenant_id: UUID,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Append one row and flush it."""
        entry = AuditLogEntry(
            tenant_id=tenant_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            recorded_at=self._clock.now(),
            payload=_json_safe(payload) if payload else None,
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "audit_log_recorded",
            extra={
                "tenant_id": str(tenant_id),
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return entry

    def list_for_entity(
        self, tenant_id: UUID, entity_type: str, entity_id: UUID
    ) -> list[AuditLogEntry]:
        return list(
            self.session.execute(
                select(AuditLogEntry)
                .where(
                    AuditLogEntry.tenant_id == tenant_id,
                    AuditLogEntry.entity_type == entity_type,
                    AuditLogEntry.entity_id == entity_id,
                )
                .order_by(AuditLogEntry.recorded_at)
            ).scalars()
        )

    def list_actions(
        self, tenant_id: UUID, action: AuditAction | None = None
    ) -> list[AuditLogEntry]:
        query = select(AuditLogEntry).where(AuditLogEntry.tenant_id == tenant_id)
        if action is not None:
            query = query.where(AuditLogEntry.action == action.value)
        return list(self.session.execute(query.order_by(AuditLogEntry.recorded_at)).scalars())
