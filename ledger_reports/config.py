"""
Reporting Configuration Schema.

Defines classification rules and report presentation options.
Account classification uses code prefixes consistent with the default
chart of accounts (1xxx=assets, 2xxx=liabilities, 3xxx=equity,
4xxx=revenue, 5xxx=expenses).  Cash accounts and depreciation contra
accounts are recognised by tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Self

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountTag

logger = get_logger("reports.config")


@dataclass(frozen=True)
class AccountClassification:
    """
    Rules for classifying accounts into financial statement sections.

    Prefix matching: an account matches a section if its code starts with
    any of the configured prefixes.  Asset and liability accounts that
    match no non-current prefix are current.
    """

    # Balance sheet
    non_current_asset_prefixes: tuple[str, ...] = ("13", "14", "15", "16", "17", "18", "19")
    non_current_liability_prefixes: tuple[str, ...] = ("25", "26", "27", "28", "29")

    # Income statement -- multi-step breakdown
    cogs_prefixes: tuple[str, ...] = ("50",)
    other_income_prefixes: tuple[str, ...] = ("41", "42", "43", "44")
    other_expense_prefixes: tuple[str, ...] = ("55", "60", "61", "62")

    # Cash flow
    cash_tags: tuple[str, ...] = (AccountTag.CASH.value,)
    cash_account_prefixes: tuple[str, ...] = ()
    non_cash_addback_tags: tuple[str, ...] = (AccountTag.ACCUMULATED_DEPRECIATION.value,)

    def matches_prefix(self, code: str, prefixes: tuple[str, ...]) -> bool:
        """Check if an account code matches any of the given prefixes."""
        return any(code.startswith(p) for p in prefixes)


@dataclass(frozen=True)
class ReportingConfig:
    """
    Configuration for ReportingService.

    Controls account classification and presentation.
    """

    classification: AccountClassification = field(default_factory=AccountClassification)

    # Entity name shown on reports
    entity_name: str = "Company"

    currency: str = "USD"

    # Whether the trial balance lists active accounts without activity
    include_zero_balances: bool = False

    def __post_init__(self):
        if len(self.currency) != 3:
            raise ValueError("currency must be a 3-letter ISO 4217 code")

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a mapping; list values become tuples."""
        data = dict(data)
        classification = data.pop("classification", None)
        if isinstance(classification, dict):
            data["classification"] = AccountClassification(
                **{key: tuple(value) for key, value in classification.items()}
            )
        logger.info(
            "reporting_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
