"""
marketplace_config -- single public entrypoint for settlement configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Engines receive the returned
    ``SettlementConfig`` by injection and never read files or environment
    variables themselves.

Architecture position:
    Configuration.  Sits above ``marketplace_kernel`` and below
    ``marketplace_services``.  The kernel MUST NEVER import from
    ``marketplace_config``.

Failure modes:
    - ``FileNotFoundError`` -- the selected configuration file is missing.
    - ``ValueError`` -- schema or range validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``MARKETPLACE_CONFIG_TRACE`` log entry with the config id, version,
    checksum and fee percentage, tying every payment to the configuration
    that priced it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from marketplace_config.loader import load_yaml_file, parse_settlement_config
from marketplace_config.schema import GatewayConfig, SettlementConfig

_logger = logging.getLogger("marketplace_kernel.config")

CONFIG_ENV_VAR = "MARKETPLACE_CONFIG"

# Default configuration file
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> SettlementConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then the ``MARKETPLACE_CONFIG``
    environment variable, then the packaged ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If configuration validation fails.
    """
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH)
    config = parse_settlement_config(load_yaml_file(resolved))

    _logger.info(
        "MARKETPLACE_CONFIG_TRACE",
        extra={
            "trace_type": "MARKETPLACE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(resolved),
            "platform_fee_percent": str(config.platform_fee_percent),
            "gateway_provider": config.gateway.provider,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "GatewayConfig",
    "SettlementConfig",
    "get_active_config",
]
