"""
Posting strategy base class.

A PostingStrategy is a pure function that turns a business document into
journal lines.  It has NO side effects and NO access to:
- Database
- Clock/time
- I/O

Accounts arrive already resolved, as a mapping from posting role (e.g.
``receivable``) to account id.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.documents import PostingDocument
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import DocumentTypeMismatchError, RoleBindingError


class PostingStrategy(ABC):
    """
    Maps one document type to journal lines.

    Contract:
        ``build_lines`` is deterministic: the same document and accounts
        always yield the same lines, in the same order.

    Non-goals:
        - Validation of balance or amounts.  PostingService does that for
          every entry, whatever its origin.
    """

    document_type: str = ""
    roles: tuple[str, ...] = ()
    document_class: type[PostingDocument] = PostingDocument

    def check_document(self, document: object) -> None:
        """
        Raises:
            DocumentTypeMismatchError: ``document`` is not a document_class.
        """
        if not isinstance(document, self.document_class):
            raise DocumentTypeMismatchError(
                self.document_type, self.document_class.__name__, type(document).__name__
            )

    def required_roles(self, document: PostingDocument) -> tuple[str, ...]:
        """Roles this document needs resolved.  Defaults to all roles."""
        return self.roles

    @abstractmethod
    def build_lines(
        self, document: PostingDocument, accounts: Mapping[str, UUID]
    ) -> tuple[LineSpec, ...]:
        ...

    def memo(self, document: PostingDocument) -> str:
        return document.memo or f"{self.document_type} {document.source_id}"

    def _account(self, accounts: Mapping[str, UUID], role: str) -> UUID:
        try:
            return accounts[role]
        except KeyError:
            raise RoleBindingError(self.document_type, role, "role not resolved") from None

    def _dr(
        self, accounts: Mapping[str, UUID], role: str, amount: Decimal, document: PostingDocument
    ) -> LineSpec:
        return LineSpec.dr(
            self._account(accounts, role), amount, self._describe(role, document),
            document.cost_center_id,
        )

    def _cr(
        self, accounts: Mapping[str, UUID], role: str, amount: Decimal, document: PostingDocument
    ) -> LineSpec:
        return LineSpec.cr(
            self._account(accounts, role), amount, self._describe(role, document),
            document.cost_center_id,
        )

    def _describe(self, role: str, document: PostingDocument) -> str:
        return f"{self.document_type} {document.source_id} {role}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.document_type}>"
