"""
Configuration Loader (``marketplace_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``marketplace_config.schema`` dataclasses.  The single public entry point
for runtime config is ``marketplace_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Parse errors raise ``ValueError`` with a descriptive message; unknown
  keys are rejected rather than silently ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from marketplace_config.schema import GatewayConfig, SettlementConfig

_GATEWAY_PROVIDERS = ("stripe", "in_memory")

_TOP_LEVEL_KEYS = frozenset(
    {
        "config_id",
        "version",
        "settlement",
        "contracts",
        "gateway",
        "database",
    }
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
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_percent(value: Any) -> Decimal:
    try:
        percent = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"platform_fee_percent is not a number: {value!r}") from e
    if percent < 0 or percent > 100:
        raise ValueError(f"platform_fee_percent must be within 0..100, got {percent}")
    return percent


def _parse_currency(value: Any) -> str:
    if not isinstance(value, str) or len(value) != 3 or not value.isalpha():
        raise ValueError(f"Invalid currency code: {value!r}")
    return value.lower()


def _non_negative_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def parse_gateway(data: dict[str, Any]) -> GatewayConfig:
    """Parse the ``gateway`` section."""
    provider = data.get("provider", "stripe")
    if provider not in _GATEWAY_PROVIDERS:
        raise ValueError(
            f"gateway.provider must be one of {', '.join(_GATEWAY_PROVIDERS)}, got {provider!r}"
        )
    return GatewayConfig(
        provider=provider,
        api_key_env=data.get("api_key_env", "STRIPE_API_KEY"),
        webhook_secret_env=data.get("webhook_secret_env", "STRIPE_WEBHOOK_SECRET"),
    )


def parse_settlement_config(data: dict[str, Any]) -> SettlementConfig:
    """
    Parse a ``SettlementConfig`` from a loaded YAML dict.

    Postconditions:
        - ``default_currency`` is in ``supported_currencies``.
        - ``checksum`` is the SHA-256 of ``data``.

    Raises:
        ValueError: on unknown top-level keys or invalid values.
    """
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    settlement = data.get("settlement", {}) or {}
    contracts = data.get("contracts", {}) or {}
    database = data.get("database", {}) or {}

    default_currency = _parse_currency(settlement.get("default_currency", "usd"))
    supported = tuple(
        _parse_currency(c) for c in settlement.get("supported_currencies", [default_currency])
    )
    if default_currency not in supported:
        raise ValueError(
            f"default_currency {default_currency!r} not in supported_currencies {supported}"
        )

    return SettlementConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        platform_fee_percent=_parse_percent(settlement.get("platform_fee_percent", "12.00")),
        default_currency=default_currency,
        supported_currencies=supported,
        settlement_hold_days=_non_negative_int(
            "settlement_hold_days", settlement.get("settlement_hold_days", 2)
        ),
        minimum_payout=_non_negative_int("minimum_payout", settlement.get("minimum_payout", 100)),
        instant_payouts_enabled=bool(settlement.get("instant_payouts_enabled", True)),
        cancel_on_optional_party_decline=bool(
            contracts.get("cancel_on_optional_party_decline", False)
        ),
        gateway=parse_gateway(data.get("gateway", {}) or {}),
        database_url=database.get("url"),
        checksum=compute_checksum(data),
    )
