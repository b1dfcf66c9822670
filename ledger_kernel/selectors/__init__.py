"""Read-only query selectors."""

from ledger_kernel.selectors.ledger_selector import (
    AccountActivityRow,
    LedgerLine,
    LedgerSelector,
    TrialBalanceRow,
)

__all__ = [
    "AccountActivityRow",
    "LedgerLine",
    "LedgerSelector",
    "TrialBalanceRow",
]
