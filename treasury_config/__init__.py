"""
treasury_config -- single public entrypoint for treasury configuration.

Responsibility:
    ``get_active_config()`` is the only place that reads configuration
    files or environment variables.  It returns a frozen ``TreasuryConfig``
    whose ``policy`` is handed to kernel services.  The kernel never imports
    this package.

Environment:
    TREASURY_CONFIG_PATH   -- YAML file to load instead of defaults.yaml
    TREASURY_DATABASE_URL  -- overrides ``database.url``

Failure modes:
    - ``FileNotFoundError`` -- configured path does not exist.
    - ``ValueError`` / ``KeyError`` -- invalid or incomplete document.
"""

from __future__ import annotations

import os
from pathlib import Path

from treasury_config.loader import load_yaml_file, parse_config
from treasury_config.schema import DatabaseConfig, SchedulerConfig, TreasuryConfig
from treasury_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "TREASURY_CONFIG_PATH"
DATABASE_URL_ENV = "TREASURY_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> TreasuryConfig:
    """
    Load and parse the active treasury configuration.

    Resolution order for the file: explicit ``path``, then
    ``$TREASURY_CONFIG_PATH``, then the bundled defaults.
    """
    env_path = os.environ.get(CONFIG_PATH_ENV)
    config_path = Path(path or env_path or DEFAULT_CONFIG_PATH)

    data = load_yaml_file(config_path)
    config = parse_config(data, database_url=os.environ.get(DATABASE_URL_ENV))

    _logger.info(
        "treasury_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
            "platform_reserve_account": config.policy.platform_reserve_account,
        },
    )
    return config


__all__ = [
    "DatabaseConfig",
    "SchedulerConfig",
    "TreasuryConfig",
    "get_active_config",
]
