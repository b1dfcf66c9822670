"""
Built-in posting strategies, one per document type.

``default_registry()`` returns a fresh registry holding all of them.
"""

from ledger_kernel.domain.strategies.assets import AssetDisposalStrategy
from ledger_kernel.domain.strategies.payables import (
    BillPaymentStrategy,
    BillStrategy,
    ExpenseStrategy,
)
from ledger_kernel.domain.strategies.payroll import PayrollRunStrategy
from ledger_kernel.domain.strategies.receivables import InvoicePaymentStrategy, InvoiceStrategy
from ledger_kernel.domain.strategy_registry import StrategyRegistry

BUILT_IN_STRATEGIES = (
    InvoiceStrategy,
    InvoicePaymentStrategy,
    BillStrategy,
    BillPaymentStrategy,
    ExpenseStrategy,
    PayrollRunStrategy,
    AssetDisposalStrategy,
)


def default_registry() -> StrategyRegistry:
    return StrategyRegistry(cls() for cls in BUILT_IN_STRATEGIES)


__all__ = [
    "AssetDisposalStrategy",
    "BUILT_IN_STRATEGIES",
    "BillPaymentStrategy",
    "BillStrategy",
    "ExpenseStrategy",
    "InvoicePaymentStrategy",
    "InvoiceStrategy",
    "PayrollRunStrategy",
    "default_registry",
]
