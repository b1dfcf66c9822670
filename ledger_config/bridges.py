"""
Config -> Kernel Bridges.

Functions that convert a LedgerConfig into kernel-compatible inputs.
These live in ledger_config (the producer) because the kernel must NEVER
import ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_services

    config = get_active_config()
    with session_scope() as session:
        services = build_services(session, config)
        services.posting.post(...)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.capabilities import CapabilityChecker
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.strategy_registry import StrategyRegistry
from ledger_kernel.services.account_service import (
    AccountService,
    ChartAccountSpec,
    DeactivationPolicy,
)
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.budget_service import BudgetService
from ledger_kernel.services.document_posting_service import DocumentPostingService
from ledger_kernel.services.integrity_auditor import IntegrityAuditor
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.posting_service import PostingService
from ledger_kernel.services.reversal_service import ReversalService
from ledger_kernel.services.sequence_service import RetryPolicy, SequenceService
from ledger_reports.config import ReportingConfig
from ledger_reports.service import ReportingService


def build_retry_policy(config: LedgerConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay_seconds=config.retry.base_delay_seconds,
        max_delay_seconds=config.retry.max_delay_seconds,
    )


def build_sequence_service(session: Session, config: LedgerConfig) -> SequenceService:
    return SequenceService(
        session,
        prefixes=config.sequence.prefix_map(),
        padding=config.sequence.padding,
        retry_policy=build_retry_policy(config),
    )


def build_role_bindings(config: LedgerConfig) -> dict[str, dict[str, str]]:
    """``{document_type: {role: account_code}}`` for DocumentPostingService."""
    bindings: dict[str, dict[str, str]] = {}
    for binding in config.posting.role_bindings:
        bindings.setdefault(binding.document_type, {})[binding.role] = binding.account_code
    return bindings


def build_chart_template(config: LedgerConfig) -> list[ChartAccountSpec]:
    return [
        ChartAccountSpec(
            code=account.code,
            name=account.name,
            account_type=account.account_type,
            normal_balance=account.normal_balance,
            parent_code=account.parent_code,
            is_system=account.is_system,
            tags=account.tags,
            description=account.description,
        )
        for account in config.chart_template
    ]


def build_reporting_config(config: LedgerConfig) -> ReportingConfig:
    return ReportingConfig.from_dict(config.reporting)


@dataclass(frozen=True)
class LedgerServices:
    """Services wired to one session, one clock and one capability checker."""

    accounts: AccountService
    periods: PeriodService
    sequences: SequenceService
    posting: PostingService
    documents: DocumentPostingService
    reversals: ReversalService
    budgets: BudgetService
    reporting: ReportingService
    auditor: IntegrityAuditor


def build_services(
    session: Session,
    config: LedgerConfig,
    clock: Clock | None = None,
    capabilities: CapabilityChecker | None = None,
    registry: StrategyRegistry | None = None,
) -> LedgerServices:
    """Wire every kernel service from configuration.

    All services share the session, the clock, the audit log writer and
    the capability checker.
    """
    clock = clock or SystemClock()
    audit_log = AuditLogService(session, clock)
    places = config.posting.minor_unit_places

    accounts = AccountService(
        session,
        clock=clock,
        audit_log=audit_log,
        capabilities=capabilities,
        deactivation_policy=DeactivationPolicy(config.posting.deactivation_policy),
    )
    periods = PeriodService(session, clock=clock, audit_log=audit_log, capabilities=capabilities)
    sequences = build_sequence_service(session, config)
    posting = PostingService(
        session,
        clock=clock,
        period_service=periods,
        sequence_service=sequences,
        audit_log=audit_log,
        capabilities=capabilities,
        minor_unit_places=places,
    )

    return LedgerServices(
        accounts=accounts,
        periods=periods,
        sequences=sequences,
        posting=posting,
        documents=DocumentPostingService(
            session, posting, accounts, build_role_bindings(config), registry=registry,
        ),
        reversals=ReversalService(
            session, posting, clock=clock, audit_log=audit_log, capabilities=capabilities,
        ),
        budgets=BudgetService(
            session, clock=clock, audit_log=audit_log, capabilities=capabilities,
        ),
        reporting=ReportingService(
            session, clock=clock, config=build_reporting_config(config), minor_unit_places=places,
        ),
        auditor=IntegrityAuditor(session, clock=clock),
    )
