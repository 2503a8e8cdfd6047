"""
Configuration schema (``treasury_config.schema``).

Frozen dataclasses produced by the loader.  The payout, risk and retry
policies are the kernel's own dataclasses; this package only wraps them
with deployment settings the kernel does not see.
"""

from __future__ import annotations

from dataclasses import dataclass

from treasury_kernel.domain.policies import TreasuryPolicy


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class SchedulerConfig:
    """Batch scheduler loop settings."""

    tick_interval_seconds: float = 60.0


@dataclass(frozen=True)
class TreasuryConfig:
    """
    Complete runtime configuration.

    ``checksum`` is the SHA-256 of the parsed YAML document; it identifies
    the configuration version in logs.
    """

    config_id: str
    version: int
    policy: TreasuryPolicy
    database: DatabaseConfig
    scheduler: SchedulerConfig
    log_level: str
    checksum: str
