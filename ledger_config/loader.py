"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``ledger_config.schema`` dataclasses.  The single public entry point for
runtime config is ``ledger_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on kernel enums only
to validate names; the kernel never imports this package.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys in parsed dict  -> ``KeyError`` propagates.
* Out-of-range or inconsistent values  -> ``ValueError``.

Audit relevance
---------------
``compute_checksum`` lets auditors verify that the active configuration
matches a known, version-controlled baseline.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.services.account_service import DeactivationPolicy
from ledger_config.schema import (
    ChartTemplateAccount,
    LedgerConfig,
    PostingConfig,
    RetryConfig,
    RoleBinding,
    SequenceConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_sequence(data: dict[str, Any]) -> SequenceConfig:
    """Parse a SequenceConfig; prefixes map document type -> prefix."""
    prefixes = data.get("prefixes") or {}
    if not isinstance(prefixes, dict):
        raise ValueError("sequence.prefixes must be a mapping of document type to prefix")
    for doc_type, prefix in prefixes.items():
        if not isinstance(prefix, str) or not prefix:
            raise ValueError(f"sequence prefix for {doc_type!r} must be a non-empty string")

    padding = int(data.get("padding", 6))
    if padding < 1:
        raise ValueError(f"sequence.padding must be >= 1, got {padding}")

    return SequenceConfig(
        prefixes=tuple(sorted((str(k), v) for k, v in prefixes.items())),
        padding=padding,
    )


def parse_retry(data: dict[str, Any]) -> RetryConfig:
    retry = RetryConfig(
        max_attempts=int(data.get("max_attempts", 5)),
        base_delay_seconds=float(data.get("base_delay_seconds", 0.05)),
        max_delay_seconds=float(data.get("max_delay_seconds", 1.0)),
    )
    if retry.max_attempts < 1:
        raise ValueError("retry.max_attempts must be >= 1")
    if retry.base_delay_seconds < 0 or retry.max_delay_seconds < 0:
        raise ValueError("retry delays must be non-negative")
    return retry


def parse_role_bindings(data: dict[str, Any]) -> tuple[RoleBinding, ...]:
    """
    Parse role bindings given as ``{document_type: {role: account_code}}``.

    Codes are always strings, even when YAML reads them as integers.
    """
    bindings: list[RoleBinding] = []
    for doc_type, roles in sorted(data.items()):
        if not isinstance(roles, dict):
            raise ValueError(f"role_bindings.{doc_type} must be a mapping of role to account code")
        for role, code in sorted(roles.items()):
            bindings.append(
                RoleBinding(document_type=str(doc_type), role=str(role), account_code=str(code))
            )
    return tuple(bindings)


def parse_posting(data: dict[str, Any]) -> PostingConfig:
    places = int(data.get("minor_unit_places", 2))
    if not 0 <= places <= 9:
        raise ValueError(f"posting.minor_unit_places must be between 0 and 9, got {places}")

    policy = data.get("deactivation_policy", DeactivationPolicy.BLOCK_IF_OPEN_PERIOD_POSTINGS.value)
    valid = {p.value for p in DeactivationPolicy}
    if policy not in valid:
        raise ValueError(
            f"posting.deactivation_policy {policy!r} is not one of {sorted(valid)}"
        )

    return PostingConfig(
        minor_unit_places=places,
        deactivation_policy=policy,
        role_bindings=parse_role_bindings(data.get("role_bindings") or {}),
    )


def parse_chart_account(data: dict[str, Any]) -> ChartTemplateAccount:
    """
    Parse one ChartTemplateAccount.

    Raises:
        KeyError: if code, name or account_type is missing.
        ValueError: if account_type or normal_balance is unknown.
    """
    account_type = data["account_type"]
    if account_type not in {t.value for t in AccountType}:
        raise ValueError(f"Unknown account_type {account_type!r} for account {data['code']}")
    normal_balance = data.get("normal_balance")
    if normal_balance is not None and normal_balance not in {n.value for n in NormalBalance}:
        raise ValueError(
            f"Unknown normal_balance {normal_balance!r} for account {data['code']}"
        )
    parent = data.get("parent_code")

    return ChartTemplateAccount(
        code=str(data["code"]),
        name=data["name"],
        account_type=account_type,
        normal_balance=normal_balance,
        parent_code=str(parent) if parent is not None else None,
        is_system=bool(data.get("is_system", False)),
        tags=tuple(data.get("tags", ())),
        description=data.get("description"),
    )


def parse_chart_template(items: list[dict[str, Any]]) -> tuple[ChartTemplateAccount, ...]:
    """Parse the chart template; codes are unique and parents precede children."""
    accounts: list[ChartTemplateAccount] = []
    seen: set[str] = set()
    for item in items:
        account = parse_chart_account(item)
        if account.code in seen:
            raise ValueError(f"Duplicate account code {account.code} in chart template")
        if account.parent_code is not None and account.parent_code not in seen:
            raise ValueError(
                f"Account {account.code} references parent {account.parent_code} "
                "which is not defined before it"
            )
        seen.add(account.code)
        accounts.append(account)
    return tuple(accounts)


def _validate_bindings_against_chart(config: LedgerConfig) -> None:
    if not config.chart_template:
        return
    codes = {a.code for a in config.chart_template}
    missing = [
        f"{b.document_type}.{b.role} -> {b.account_code}"
        for b in config.posting.role_bindings
        if b.account_code not in codes
    ]
    if missing:
        raise ValueError(
            "Role bindings reference codes missing from the chart template: "
            + ", ".join(missing)
        )


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a complete LedgerConfig from a loaded YAML mapping.

    Raises:
        KeyError: if config_id or version is missing.
        ValueError: if any section is invalid.
    """
    config = LedgerConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        checksum=compute_checksum(data),
        sequence=parse_sequence(data.get("sequence") or {}),
        retry=parse_retry(data.get("retry") or {}),
        posting=parse_posting(data.get("posting") or {}),
        chart_template=parse_chart_template(data.get("chart_template") or []),
        reporting=dict(data.get("reporting") or {}),
    )
    _validate_bindings_against_chart(config)
    return config


def load_config(path: Path) -> LedgerConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path))
