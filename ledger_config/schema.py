"""
LedgerConfig schema.

Defines the human-authored, reviewable configuration of a ledger
deployment: document-number prefixes, contention retry, posting
precision, account deactivation policy, document role bindings, the
default chart-of-accounts template and reporting classification.
YAML is parsed into these types by the loader and turned into kernel
inputs by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Sequences
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SequenceConfig:
    """Document-number format: ``prefix + zero-padded counter``."""

    prefixes: tuple[tuple[str, str], ...] = ()  # (document_type, prefix)
    padding: int = 6

    def prefix_map(self) -> dict[str, str]:
        return dict(self.prefixes)


@dataclass(frozen=True)
class RetryConfig:
    """Bounded backoff for counter-row lock contention."""

    max_attempts: int = 5
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0


# ---------------------------------------------------------------------------
# Posting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleBinding:
    """Maps a posting-strategy role of one document type to a COA code."""

    document_type: str  # e.g., "invoice"
    role: str  # e.g., "receivable"
    account_code: str  # e.g., "1200"


@dataclass(frozen=True)
class PostingConfig:
    """Posting precision, deactivation policy and document role bindings."""

    minor_unit_places: int = 2
    deactivation_policy: str = "block_if_open_period_postings"
    role_bindings: tuple[RoleBinding, ...] = ()


# ---------------------------------------------------------------------------
# Chart of accounts template
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChartTemplateAccount:
    """One account of the default chart seeded for a new tenant."""

    code: str
    name: str
    account_type: str  # asset, liability, equity, revenue, expense
    normal_balance: str | None = None  # defaults from account_type
    parent_code: str | None = None
    is_system: bool = False
    tags: tuple[str, ...] = ()
    description: str | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Complete ledger configuration.

    Attributes:
        config_id: Unique identifier (e.g., "ledger-defaults")
        version: Configuration version number
        checksum: SHA-256 of the canonical serialization of the source YAML
        sequence: Document-number prefixes and padding
        retry: Counter contention retry policy
        posting: Precision, deactivation policy and role bindings
        chart_template: Default chart of accounts
        reporting: Raw mapping for ``ReportingConfig.from_dict``
    """

    config_id: str
    version: int
    checksum: str
    sequence: SequenceConfig = field(default_factory=SequenceConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    posting: PostingConfig = field(default_factory=PostingConfig)
    chart_template: tuple[ChartTemplateAccount, ...] = ()
    reporting: dict[str, Any] = field(default_factory=dict)

    def bindings_for(self, document_type: str) -> dict[str, str]:
        """role -> account code for one document type."""
        return {
            b.role: b.account_code
            for b in self.posting.role_bindings
            if b.document_type == document_type
        }
