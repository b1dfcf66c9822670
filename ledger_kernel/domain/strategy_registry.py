"""StrategyRegistry -- document-type to PostingStrategy dispatch registry."""

from collections.abc import Iterable

from ledger_kernel.domain.strategy import PostingStrategy
from ledger_kernel.exceptions import StrategyNotFoundError


class StrategyRegistry:
    """Registry for posting strategies, one per document type."""

    def __init__(self, strategies: Iterable[PostingStrategy] = ()):
        self._strategies: dict[str, PostingStrategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: PostingStrategy) -> None:
        """Register a strategy.  A second strategy for a type is a ValueError."""
        document_type = strategy.document_type
        if not document_type:
            raise ValueError(f"{strategy.__class__.__name__} has no document_type")

        if document_type in self._strategies:
            existing = self._strategies[document_type]
            raise ValueError(
                f"Strategy already registered for {document_type}: "
                f"{existing.__class__.__name__}"
            )
        self._strategies[document_type] = strategy

    def get(self, document_type: str) -> PostingStrategy:
        try:
            return self._strategies[document_type]
        except KeyError:
            raise StrategyNotFoundError(document_type) from None

    def has_strategy(self, document_type: str) -> bool:
        return document_type in self._strategies

    def document_types(self) -> list[str]:
        return sorted(self._strategies)

    def __len__(self) -> int:
        return len(self._strategies)
