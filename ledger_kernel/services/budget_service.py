"""
BudgetService -- the only writer of budget rows.

Responsibility:
    Upserts the budgeted amount for an (account, fiscal period) pair, or
    for an (account, fiscal period, cost centre) triple.
    Budgets feed budget vs actual reporting only and never gate posting.

Architecture position:
    Kernel > Services -- imperative shell.

Failure modes:
    - AccountNotFoundError / PeriodNotFoundError for ids outside the tenant.
    - CapabilityDeniedError without CAN_MANAGE_BUDGETS.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.capabilities import AllowAllCapabilities, Capability, CapabilityChecker
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AccountNotFoundError, PeriodNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.budget import Budget
from ledger_kernel.models.fiscal_calendar import FiscalPeriod
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.budget")


class BudgetService(BaseService[Budget]):
    """Budget maintenance.  Amounts are in the account's natural-balance sign."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        capabilities: CapabilityChecker | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._capabilities = capabilities or AllowAllCapabilities()

    def set_budget(
        self,
        tenant_id: UUID,
        account_id: UUID,
        period_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        notes: str | None = None,
        cost_center_id: UUID | None = None,
    ) -> Budget:
        """
        Create or replace the budget for (account, period, cost centre).

        Raises:
            AccountNotFoundError: Account not in the tenant.
            PeriodNotFoundError: Period not in the tenant.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_BUDGETS)

        account = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id == account_id)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))

        period = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id, FiscalPeriod.id == period_id
            )
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))

        budget = self.get_budget(tenant_id, account_id, period_id, cost_center_id)
        if budget is None:
            budget = Budget(
                tenant_id=tenant_id,
                account_id=account_id,
                fiscal_period_id=period_id,
                cost_center_id=cost_center_id,
                amount=Decimal(amount),
                notes=notes,
                created_by_id=actor_id,
            )
            self.session.add(budget)
        else:
            budget.amount = Decimal(amount)
            budget.notes = notes
            budget.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.BUDGET_SET, "Budget", budget.id, actor_id,
            {
                "account_code": account.code,
                "period": period.name,
                "amount": amount,
                "cost_center_id": cost_center_id,
            },
        )
        logger.info(
            "budget_set",
            extra={
                "tenant_id": str(tenant_id),
                "account_code": account.code,
                "period": period.name,
                "amount": str(amount),
                "cost_center_id": str(cost_center_id) if cost_center_id else None,
            },
        )
        return budget

    def get_budget(
        self,
        tenant_id: UUID,
        account_id: UUID,
        period_id: UUID,
        cost_center_id: UUID | None = None,
    ) -> Budget | None:
        if cost_center_id is None:
            cost_center = Budget.cost_center_id.is_(None)
        else:
            cost_center = Budget.cost_center_id == cost_center_id
        return self.session.execute(
            select(Budget).where(
                Budget.tenant_id == tenant_id,
                Budget.account_id == account_id,
                Budget.fiscal_period_id == period_id,
                cost_center,
            )
        ).scalar_one_or_none()

    def list_budgets(self, tenant_id: UUID, period_ids: list[UUID] | None = None) -> list[Budget]:
        query = select(Budget).where(Budget.tenant_id == tenant_id)
        if period_ids is not None:
            query = query.where(Budget.fiscal_period_id.in_(period_ids))
        return list(self.session.execute(query).scalars())
