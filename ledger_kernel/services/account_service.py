"""
AccountService -- chart of accounts maintenance.

Responsibility:
    Creates accounts, maintains the parent tree, toggles the active/locked
    flags, guards deletion and deactivation, and seeds a tenant's chart from
    a template.

Architecture position:
    Kernel > Services -- imperative shell.  Read by every other component;
    only this service mutates accounts.

Invariants enforced:
    - Account codes are unique per tenant.
    - The parent tree is acyclic and tenant-local; cycles are rejected at
      assignment time, never detected after the fact.
    - System accounts are never deactivated or deleted.
    - Accounts referenced by journal lines are never deleted; deactivation
      follows the configured DeactivationPolicy.
    - No balance is ever stored on an account.

Failure modes:
    - DuplicateAccountCodeError, InvalidParentError,
      SystemAccountProtectedError, AccountInUseError, AccountNotFoundError.
    - ValueError for an unknown account type or normal balance.

Audit relevance:
    Every mutation writes an audit log row and an INFO log record.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.capabilities import AllowAllCapabilities, Capability, CapabilityChecker
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import (
    AccountInUseError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    InvalidParentError,
    SystemAccountProtectedError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.fiscal_calendar import FiscalPeriod, FiscalYear, PeriodStatus
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.services.audit_log_service import AuditLogService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class DeactivationPolicy(str, Enum):
    """When posting history blocks deactivating an account."""

    # Never blocked by history
    ALLOW = "allow"
    # Blocked by posted lines in an open period of the fiscal year containing today
    BLOCK_IF_OPEN_PERIOD_POSTINGS = "block_if_open_period_postings"
    # Blocked by any posted line
    BLOCK_IF_ANY_POSTINGS = "block_if_any_postings"


@dataclass(frozen=True)
class ChartAccountSpec:
    """One account of a chart-of-accounts template."""

    code: str
    name: str
    account_type: str
    normal_balance: str | None = None
    parent_code: str | None = None
    is_system: bool = False
    tags: tuple[str, ...] = ()
    description: str | None = None


class AccountService(BaseService[Account]):
    """
    Chart of accounts service.

    Contract:
        All operations are tenant-scoped.  An account id of another tenant
        is reported as AccountNotFoundError.

    Guarantees:
        - Returns frozen AccountInfo DTOs.
        - Flush-only.

    Non-goals:
        - Balances.  See ledger_kernel.selectors.ledger_selector.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_log: AuditLogService | None = None,
        capabilities: CapabilityChecker | None = None,
        deactivation_policy: DeactivationPolicy = DeactivationPolicy.BLOCK_IF_OPEN_PERIOD_POSTINGS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLogService(session, self._clock)
        self._capabilities = capabilities or AllowAllCapabilities()
        self._deactivation_policy = DeactivationPolicy(deactivation_policy)

    @property
    def deactivation_policy(self) -> DeactivationPolicy:
        return self._deactivation_policy

    # ------------------------------------------------------------------
    # Creation and structure
    # ------------------------------------------------------------------

    def create_account(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        account_type: AccountType | str,
        actor_id: UUID,
        normal_balance: NormalBalance | str | None = None,
        parent_id: UUID | None = None,
        description: str | None = None,
        is_system: bool = False,
        tags: Iterable[str] | None = None,
    ) -> AccountInfo:
        """
        Create an account.

        Preconditions:
            - ``code`` is not used by another account of the tenant.
            - ``parent_id``, when given, names an account of the tenant.

        Postconditions:
            - The account is active and unlocked.
            - normal_balance defaults to the account type's natural side.

        Raises:
            DuplicateAccountCodeError: If the code exists in the tenant.
            InvalidParentError: If the parent is missing or foreign.
            ValueError: If account_type or normal_balance is unknown.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_ACCOUNTS)

        acct_type = AccountType(account_type)
        balance = NormalBalance(normal_balance) if normal_balance else acct_type.natural_balance

        if self._get_by_code(tenant_id, code) is not None:
            raise DuplicateAccountCodeError(code)

        if parent_id is not None and self._get_account(tenant_id, parent_id) is None:
            raise InvalidParentError(code, str(parent_id), "parent not found in tenant")

        account = Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            description=description,
            account_type=acct_type.value,
            normal_balance=balance.value,
            parent_id=parent_id,
            is_active=True,
            is_locked=False,
            is_system=is_system,
            tags=sorted(set(getattr(t, "value", t) for t in tags)) if tags else None,
            created_by_id=actor_id,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            # Lost a concurrent race for the same code
            savepoint.rollback()
            raise DuplicateAccountCodeError(code)

        self._audit_log.record(
            tenant_id, AuditAction.ACCOUNT_CREATED, "Account", account.id, actor_id,
            {"code": code, "account_type": acct_type.value, "parent_id": parent_id},
        )
        logger.info(
            "account_created",
            extra={
                "tenant_id": str(tenant_id),
                "account_code": code,
                "account_type": acct_type.value,
                "is_system": is_system,
            },
        )
        return AccountInfo.from_model(account)

    def set_parent(
        self,
        tenant_id: UUID,
        account_id: UUID,
        parent_id: UUID | None,
        actor_id: UUID,
    ) -> AccountInfo:
        """
        Move an account under a new parent (or to the root with None).

        Raises:
            AccountNotFoundError: If the account is not in the tenant.
            InvalidParentError: If the parent is missing/foreign or the move
                would make the account its own ancestor.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_ACCOUNTS)

        account = self._require_account(tenant_id, account_id)
        if parent_id is not None:
            self._validate_parent(tenant_id, account, parent_id)

        account.parent_id = parent_id
        account.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.ACCOUNT_UPDATED, "Account", account.id, actor_id,
            {"parent_id": parent_id},
        )
        logger.info(
            "account_reparented",
            extra={
                "tenant_id": str(tenant_id),
                "account_code": account.code,
                "parent_id": str(parent_id) if parent_id else None,
            },
        )
        return AccountInfo.from_model(account)

    def _validate_parent(self, tenant_id: UUID, account: Account, parent_id: UUID) -> None:
        parent = self._get_account(tenant_id, parent_id)
        if parent is None:
            raise InvalidParentError(account.code, str(parent_id), "parent not found in tenant")

        # Walk up from the proposed parent; reaching the account is a cycle
        seen: set[UUID] = set()
        node: Account | None = parent
        while node is not None:
            if node.id == account.id:
                raise InvalidParentError(
                    account.code, str(parent_id), "assignment would create a cycle"
                )
            if node.id in seen:
                raise InvalidParentError(
                    account.code, str(parent_id), "existing parent chain is cyclic"
                )
            seen.add(node.id)
            node = self._get_account(tenant_id, node.parent_id) if node.parent_id else None

    def update_account(
        self,
        tenant_id: UUID,
        account_id: UUID,
        actor_id: UUID,
        name: str | None = None,
        description: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> AccountInfo:
        """Change descriptive fields.  Type and normal balance never change."""
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_ACCOUNTS)

        account = self._require_account(tenant_id, account_id)
        changes: dict[str, object] = {}
        if name is not None:
            account.name = name
            changes["name"] = name
        if description is not None:
            account.description = description
            changes["description"] = description
        if tags is not None:
            account.tags = sorted(set(getattr(t, "value", t) for t in tags))
            changes["tags"] = account.tags
        account.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.ACCOUNT_UPDATED, "Account", account.id, actor_id, changes
        )
        return AccountInfo.from_model(account)

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def deactivate_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> AccountInfo:
        """
        Mark an account inactive so it rejects new postings.

        Raises:
            SystemAccountProtectedError: For system accounts.
            AccountInUseError: When the deactivation policy finds blocking
                posting history.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_ACCOUNTS)

        account = self._require_account(tenant_id, account_id)
        if account.is_system:
            raise SystemAccountProtectedError(account.code, "deactivate")

        reason = self._deactivation_blocker(tenant_id, account)
        if reason is not None:
            logger.warning(
                "account_deactivation_blocked",
                extra={
                    "tenant_id": str(tenant_id),
                    "account_code": account.code,
                    "policy": self._deactivation_policy.value,
                    "reason": reason,
                },
            )
            raise AccountInUseError(account.code, "deactivate", reason)

        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.ACCOUNT_DEACTIVATED, "Account", account.id, actor_id,
            {"code": account.code, "policy": self._deactivation_policy.value},
        )
        logger.info(
            "account_deactivated",
            extra={"tenant_id": str(tenant_id), "account_code": account.code},
        )
        return AccountInfo.from_model(account)

    def _deactivation_blocker(self, tenant_id: UUID, account: Account) -> str | None:
        policy = self._deactivation_policy
        if policy == DeactivationPolicy.ALLOW:
            return None

        if policy == DeactivationPolicy.BLOCK_IF_ANY_POSTINGS:
            if self._posted_line_count(tenant_id, account.id) > 0:
                return "account has posted journal lines"
            return None

        today = self._clock.today()
        year = self.session.execute(
            select(FiscalYear).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.start_date <= today,
                FiscalYear.end_date >= today,
            )
        ).scalars().first()
        if year is None:
            return None

        count = self.session.execute(
            select(func.count(JournalLine.id))
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .join(FiscalPeriod, JournalEntry.fiscal_period_id == FiscalPeriod.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.account_id == account.id,
                JournalEntry.is_posted.is_(True),
                FiscalPeriod.fiscal_year_id == year.id,
                FiscalPeriod.status == PeriodStatus.OPEN.value,
            )
        ).scalar_one()
        if count > 0:
            return f"account has postings in open periods of {year.name}"
        return None

    def reactivate_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> AccountInfo:
        return self._set_flag(
            tenant_id, account_id, actor_id, "is_active", True, AuditAction.ACCOUNT_REACTIVATED
        )

    def lock_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> AccountInfo:
        """Lock an account against new postings.  History is untouched."""
        return self._set_flag(
            tenant_id, account_id, actor_id, "is_locked", True, AuditAction.ACCOUNT_LOCKED
        )

    def unlock_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> AccountInfo:
        return self._set_flag(
            tenant_id, account_id, actor_id, "is_locked", False, AuditAction.ACCOUNT_UNLOCKED
        )

    def _set_flag(
        self,
        tenant_id: UUID,
        account_id: UUID,
        actor_id: UUID,
        flag: str,
        value: bool,
        action: AuditAction,
    ) -> AccountInfo:
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_ACCOUNTS)

        account = self._require_account(tenant_id, account_id)
        setattr(account, flag, value)
        account.updated_by_id = actor_id
        self.session.flush()

        self._audit_log.record(
            tenant_id, action, "Account", account.id, actor_id, {"code": account.code}
        )
        logger.info(
            action.value,
            extra={"tenant_id": str(tenant_id), "account_code": account.code},
        )
        return AccountInfo.from_model(account)

    def delete_account(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> None:
        """
        Hard-delete an account that nothing references.

        Raises:
            SystemAccountProtectedError: For system accounts.
            AccountInUseError: If journal lines or child accounts reference it.
        """
        self._capabilities.require(tenant_id, actor_id, Capability.CAN_MANAGE_ACCOUNTS)

        account = self._require_account(tenant_id, account_id)
        if account.is_system:
            raise SystemAccountProtectedError(account.code, "delete")

        line_count = self.session.execute(
            select(func.count(JournalLine.id)).where(JournalLine.account_id == account.id)
        ).scalar_one()
        if line_count > 0:
            raise AccountInUseError(account.code, "delete", "account is referenced by journal lines")

        child_count = self.session.execute(
            select(func.count(Account.id)).where(Account.parent_id == account.id)
        ).scalar_one()
        if child_count > 0:
            raise AccountInUseError(account.code, "delete", "account has child accounts")

        code = account.code
        self.session.delete(account)
        self.session.flush()

        self._audit_log.record(
            tenant_id, AuditAction.ACCOUNT_DELETED, "Account", account_id, actor_id, {"code": code}
        )
        logger.info("account_deleted", extra={"tenant_id": str(tenant_id), "account_code": code})

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed_chart(
        self,
        tenant_id: UUID,
        actor_id: UUID,
        template: Sequence[ChartAccountSpec],
    ) -> list[AccountInfo]:
        """
        Create the template's accounts that the tenant does not have yet.

        Parents must precede their children in the template.  Existing codes
        are left untouched, so seeding twice is harmless.

        Returns:
            The accounts created by this call.
        """
        created: list[AccountInfo] = []
        for spec in template:
            if self._get_by_code(tenant_id, spec.code) is not None:
                continue
            parent_id = None
            if spec.parent_code:
                parent = self._get_by_code(tenant_id, spec.parent_code)
                if parent is None:
                    raise InvalidParentError(spec.code, spec.parent_code, "parent not in chart")
                parent_id = parent.id
            created.append(
                self.create_account(
                    tenant_id,
                    spec.code,
                    spec.name,
                    spec.account_type,
                    actor_id,
                    normal_balance=spec.normal_balance,
                    parent_id=parent_id,
                    description=spec.description,
                    is_system=spec.is_system,
                    tags=spec.tags,
                )
            )
        logger.info(
            "chart_seeded",
            extra={"tenant_id": str(tenant_id), "accounts_created": len(created)},
        )
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_account(self, tenant_id: UUID, account_id: UUID) -> AccountInfo | None:
        account = self._get_account(tenant_id, account_id)
        return AccountInfo.from_model(account) if account else None

    def get_account_by_code(self, tenant_id: UUID, code: str) -> AccountInfo | None:
        account = self._get_by_code(tenant_id, code)
        return AccountInfo.from_model(account) if account else None

    def list_accounts(self, tenant_id: UUID, include_inactive: bool = True) -> list[AccountInfo]:
        query = select(Account).where(Account.tenant_id == tenant_id)
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))
        accounts = self.session.execute(query.order_by(Account.code)).scalars()
        return [AccountInfo.from_model(a) for a in accounts]

    def get_children(self, tenant_id: UUID, account_id: UUID) -> list[AccountInfo]:
        children = self.session.execute(
            select(Account)
            .where(Account.tenant_id == tenant_id, Account.parent_id == account_id)
            .order_by(Account.code)
        ).scalars()
        return [AccountInfo.from_model(a) for a in children]

    def get_accounts_by_codes(self, tenant_id: UUID, codes: Iterable[str]) -> dict[str, AccountInfo]:
        """Map each requested code that exists in the tenant to its account."""
        wanted = set(codes)
        if not wanted:
            return {}
        accounts = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code.in_(wanted))
        ).scalars()
        return {a.code: AccountInfo.from_model(a) for a in accounts}

    # ------------------------------------------------------------------
    # ORM access (internal)
    # ------------------------------------------------------------------

    def _get_account(self, tenant_id: UUID, account_id: UUID) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.id == account_id)
        ).scalar_one_or_none()

    def _require_account(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self._get_account(tenant_id, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _get_by_code(self, tenant_id: UUID, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()

    def _posted_line_count(self, tenant_id: UUID, account_id: UUID) -> int:
        return self.session.execute(
            select(func.count(JournalLine.id))
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.account_id == account_id,
                JournalEntry.is_posted.is_(True),
            )
        ).scalar_one()
