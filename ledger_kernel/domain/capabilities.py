"""
Capabilities -- the single authorization seam the ledger consults.

Responsibility:
    Enumerates the abstract capabilities gating mutating ledger operations
    and defines the CapabilityChecker interface that services call before
    writing.  Authentication and role resolution live outside the ledger;
    the surrounding application supplies a checker.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Failure modes:
    - CapabilityDeniedError when the checker refuses.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from enum import Enum
from uuid import UUID

from ledger_kernel.exceptions import CapabilityDeniedError


class Capability(str, Enum):
    """Abstract permissions, independent of any role naming scheme."""

    CAN_POST = "can_post"
    CAN_REVERSE = "can_reverse"
    CAN_CLOSE_PERIOD = "can_close_period"
    CAN_REOPEN_PERIOD = "can_reopen_period"
    CAN_MANAGE_ACCOUNTS = "can_manage_accounts"
    CAN_MANAGE_CALENDAR = "can_manage_calendar"
    CAN_MANAGE_BUDGETS = "can_manage_budgets"


class CapabilityChecker(ABC):
    """
    Decides whether an actor holds a capability within a tenant.

    Contract:
        ``has()`` is a pure predicate.  ``require()`` raises
        CapabilityDeniedError when ``has()`` is False.
    """

    @abstractmethod
    def has(self, tenant_id: UUID, actor_id: UUID, capability: Capability) -> bool:
        ...

    def require(self, tenant_id: UUID, actor_id: UUID, capability: Capability) -> None:
        if not self.has(tenant_id, actor_id, capability):
            raise CapabilityDeniedError(str(actor_id), capability.value)


class AllowAllCapabilities(CapabilityChecker):
    """Grants everything.  For callers that gate permissions upstream."""

    def has(self, tenant_id: UUID, actor_id: UUID, capability: Capability) -> bool:
        return True


class StaticCapabilityChecker(CapabilityChecker):
    """
    Grants from a fixed map of (tenant_id, actor_id) -> capabilities.

    Usage:
        checker = StaticCapabilityChecker({
            (tenant_id, clerk_id): {Capability.CAN_POST},
        })
    """

    def __init__(
        self,
        grants: Mapping[tuple[UUID, UUID], Iterable[Capability]] | None = None,
    ):
        self._grants: dict[tuple[UUID, UUID], frozenset[Capability]] = {
            key: frozenset(caps) for key, caps in (grants or {}).items()
        }

    def grant(self, tenant_id: UUID, actor_id: UUID, *capabilities: Capability) -> None:
        key = (tenant_id, actor_id)
        self._grants[key] = self._grants.get(key, frozenset()) | frozenset(capabilities)

    def has(self, tenant_id: UUID, actor_id: UUID, capability: Capability) -> bool:
        return capability in self._grants.get((tenant_id, actor_id), frozenset())
