"""
DocumentPostingService -- business document in, journal entry out.

Responsibility:
    Looks up the posting strategy for a document type, resolves the
    strategy's posting roles to account ids through the configured role
    bindings, and hands the resulting lines to PostingService.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes StrategyRegistry
    (pure), AccountService and PostingService.  Role bindings arrive as a
    plain mapping; ledger_config builds it from YAML.

Invariants enforced:
    - source_type is the document type and source_id the document's id,
      so re-posting a document is idempotent.
    - Every role the strategy needs is bound to an account code that exists
      in the tenant before any line is built.

Failure modes:
    - StrategyNotFoundError for an unregistered document type.
    - DocumentTypeMismatchError when the document does not fit the strategy.
    - RoleBindingError for an unbound role or a bound code with no account.
    - Everything PostingService.post raises.
"""

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.documents import PostingDocument
from ledger_kernel.domain.dtos import PostingResult
from ledger_kernel.domain.strategies import default_registry
from ledger_kernel.domain.strategy import PostingStrategy
from ledger_kernel.domain.strategy_registry import StrategyRegistry
from ledger_kernel.exceptions import RoleBindingError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.posting_service import PostingService

logger = get_logger("services.document_posting")

# document_type -> role -> account code
RoleBindings = Mapping[str, Mapping[str, str]]


class DocumentPostingService:
    """
    Posts business documents through registered strategies.

    Non-goals:
        - Does NOT store documents or track their settlement status.
    """

    def __init__(
        self,
        session: Session,
        posting_service: PostingService,
        account_service: AccountService,
        role_bindings: RoleBindings,
        registry: StrategyRegistry | None = None,
    ):
        self._session = session
        self._posting = posting_service
        self._accounts = account_service
        self._bindings = {k: dict(v) for k, v in role_bindings.items()}
        self._registry = registry or default_registry()

    @property
    def registry(self) -> StrategyRegistry:
        return self._registry

    def post_document(
        self,
        tenant_id: UUID,
        document_type: str,
        document: PostingDocument,
        actor_id: UUID,
    ) -> PostingResult:
        """
        Post one document.

        Returns:
            PostingResult from PostingService (ALREADY_POSTED on repeat).

        Raises:
            StrategyNotFoundError: No strategy for ``document_type``.
            DocumentTypeMismatchError: ``document`` is not the strategy's
                document class.
            RoleBindingError: A needed role cannot be resolved.
        """
        strategy = self._registry.get(document_type)
        strategy.check_document(document)
        accounts = self.resolve_roles(tenant_id, strategy, document)
        lines = strategy.build_lines(document, accounts)

        logger.debug(
            "document_lines_built",
            extra={
                "tenant_id": str(tenant_id),
                "document_type": document_type,
                "source_id": document.source_id,
                "line_count": len(lines),
            },
        )
        return self._posting.post(
            tenant_id=tenant_id,
            entry_date=document.document_date,
            source_type=document_type,
            source_id=document.source_id,
            lines=lines,
            memo=strategy.memo(document),
            actor_id=actor_id,
        )

    def resolve_roles(
        self,
        tenant_id: UUID,
        strategy: PostingStrategy,
        document: PostingDocument,
    ) -> dict[str, UUID]:
        """Map each role the document needs to the bound account's id."""
        document_type = strategy.document_type
        bound = self._bindings.get(document_type, {})

        codes: dict[str, str] = {}
        for role in strategy.required_roles(document):
            code = document.account_overrides.get(role) or bound.get(role)
            if not code:
                raise RoleBindingError(document_type, role)
            codes[role] = code

        found = self._accounts.get_accounts_by_codes(tenant_id, codes.values())
        resolved: dict[str, UUID] = {}
        for role, code in codes.items():
            account = found.get(code)
            if account is None:
                raise RoleBindingError(
                    document_type, role, f"account code {code} not found in tenant"
                )
            resolved[role] = account.id
        return resolved
