"""
Configuration loader (``treasury_config.loader``).

Loads the treasury YAML document and parses it into the frozen dataclasses
of ``treasury_config.schema`` and ``treasury_kernel.domain.policies``.
Callers use ``treasury_config.get_active_config()``, not this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (bad split table, bad time)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import time
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from treasury_config.schema import DatabaseConfig, SchedulerConfig, TreasuryConfig
from treasury_kernel.domain.policies import (
    PayoutPolicy,
    RetryPolicy,
    RiskPolicy,
    SplitShare,
    TreasuryPolicy,
)
from treasury_kernel.domain.splits import validate_split_shares
from treasury_kernel.domain.values import EntityType
from treasury_kernel.exceptions import SplitPercentageError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_time(value: Any) -> time:
    """
    Parse a UTC wall-clock time such as ``"02:00"``.

    Unquoted ``02:00`` reaches us as the YAML 1.1 sexagesimal integer 120;
    that form is accepted as minutes after midnight.
    """
    if isinstance(value, time):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if not 0 <= value < 24 * 60:
            raise ValueError(f"Cannot parse time from {value!r}")
        return time(value // 60, value % 60)
    if isinstance(value, str):
        return time.fromisoformat(value)
    raise ValueError(f"Cannot parse time from {value!r}")


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def parse_payout_policy(data: dict[str, Any]) -> PayoutPolicy:
    defaults = PayoutPolicy()
    review = data.get("review_timeout_days")
    return PayoutPolicy(
        min_payout=int(data.get("min_payout", defaults.min_payout)),
        instant_max=int(data.get("instant_max", defaults.instant_max)),
        batch_time_utc=parse_time(data.get("batch_time_utc", defaults.batch_time_utc)),
        batch_size=int(data.get("batch_size", defaults.batch_size)),
        transfer_timeout_seconds=float(
            data.get("transfer_timeout_seconds", defaults.transfer_timeout_seconds)
        ),
        review_timeout_days=int(review) if review is not None else None,
    )


def parse_risk_policy(data: dict[str, Any]) -> RiskPolicy:
    defaults = RiskPolicy()
    int_fields = {
        "new_account_hold_days",
        "large_amount",
        "very_large_amount",
        "history_window",
        "dispute_window_days",
    }
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if not hasattr(defaults, key):
            raise ValueError(f"Unknown risk setting: {key}")
        kwargs[key] = int(value) if key in int_fields else _decimal(value)
    return RiskPolicy(**kwargs)


def parse_retry_policy(data: dict[str, Any]) -> RetryPolicy:
    defaults = RetryPolicy()
    return RetryPolicy(
        max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
        base_delay_seconds=float(data.get("base_delay_seconds", defaults.base_delay_seconds)),
        backoff_multiplier=float(data.get("backoff_multiplier", defaults.backoff_multiplier)),
        max_delay_seconds=float(data.get("max_delay_seconds", defaults.max_delay_seconds)),
    )


def parse_split_tables(
    data: dict[str, Any],
) -> MappingProxyType:
    """
    Parse ``default_splits``: entity type -> list of ``{role, percent}``.

    Every table must sum to 100.
    """
    tables: dict[EntityType, tuple[SplitShare, ...]] = {}
    for entity_type, rows in data.items():
        shares = tuple(SplitShare.from_dict(row) for row in rows)
        try:
            validate_split_shares(shares)
        except SplitPercentageError as exc:
            raise ValueError(f"Invalid default split for {entity_type}: {exc}") from exc
        tables[EntityType(entity_type)] = shares
    if EntityType.EVENT not in tables:
        raise ValueError("default_splits must define an 'event' table")
    return MappingProxyType(tables)


def parse_policy(data: dict[str, Any]) -> TreasuryPolicy:
    accounts = data["accounts"]
    return TreasuryPolicy(
        platform_reserve_account=accounts["platform_reserve"],
        payout_clearing_account=accounts["payout_clearing"],
        currency=data.get("currency", "usd"),
        payout=parse_payout_policy(data.get("payouts") or {}),
        risk=parse_risk_policy(data.get("risk") or {}),
        retry=parse_retry_policy(data.get("retry") or {}),
        default_splits=parse_split_tables(data["default_splits"]),
    )


def parse_config(data: dict[str, Any], database_url: str | None = None) -> TreasuryConfig:
    """Parse a whole configuration document."""
    database = data.get("database") or {}
    scheduler = data.get("scheduler") or {}
    return TreasuryConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        policy=parse_policy(data),
        database=DatabaseConfig(
            url=database_url or database["url"],
            echo=bool(database.get("echo", False)),
            pool_size=int(database.get("pool_size", 10)),
            max_overflow=int(database.get("max_overflow", 5)),
        ),
        scheduler=SchedulerConfig(
            tick_interval_seconds=float(scheduler.get("tick_interval_seconds", 60.0)),
        ),
        log_level=str((data.get("logging") or {}).get("level", "INFO")).upper(),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
