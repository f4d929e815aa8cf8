"""
Nite Ledger Configuration

Supports local, testnet and mainnet deployments with separate chain ids.

All values are read from environment variables once, at import time.
Contracts receive the values they need as constructor arguments, so tests
can override any of them without touching the environment.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkType(Enum):
    LOCAL = "local"
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


DEFAULT_CHAIN_IDS = {
    NetworkType.LOCAL: 31337,
    NetworkType.TESTNET: 84532,
    NetworkType.MAINNET: 8453,
}


def _get_int(env_var: str, default: int) -> int:
    """Read an integer environment variable, rejecting malformed values."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError as exc:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from exc


def _get_flag(env_var: str, default: bool = False) -> bool:
    raw = os.getenv(env_var, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def resolve_network(name: str) -> NetworkType:
    """Map a network name to its NetworkType.

    Raises:
        ConfigurationError: If the name is not a known network
    """
    try:
        return NetworkType(name.strip().lower())
    except ValueError as exc:
        known = ", ".join(n.value for n in NetworkType)
        raise ConfigurationError(f"Unknown network {name!r} (expected one of: {known})") from exc


# Get network type from environment variable
NETWORK = resolve_network(os.getenv("NITE_NETWORK", "testnet"))  # Default to testnet for safety

CHAIN_ID = _get_int("NITE_CHAIN_ID", DEFAULT_CHAIN_IDS[NETWORK])

# EIP-712 domain shared by every ledger; verifyingContract is the ledger itself
PERMIT_DOMAIN_NAME = os.getenv("NITE_PERMIT_DOMAIN_NAME", "DtravelNT")
PERMIT_DOMAIN_VERSION = os.getenv("NITE_PERMIT_DOMAIN_VERSION", "1")

FEATURE_FLAGS = {
    "track_bookings": _get_flag("NITE_TRACK_BOOKINGS"),
    "metrics": _get_flag("NITE_METRICS_ENABLED", default=True),
}

LOG_LEVEL = os.getenv("NITE_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("NITE_LOG_FILE", "").strip() or None

if CHAIN_ID <= 0:
    raise ConfigurationError(f"NITE_CHAIN_ID must be positive, got {CHAIN_ID}")

if NETWORK is NetworkType.MAINNET and CHAIN_ID != DEFAULT_CHAIN_IDS[NetworkType.MAINNET]:
    logger.warning(
        "Mainnet selected with non-default chain id %s",
        CHAIN_ID,
        extra={"event": "config.chain_id_override", "chain_id": CHAIN_ID},
    )

__all__ = [
    "NetworkType",
    "ConfigurationError",
    "DEFAULT_CHAIN_IDS",
    "NETWORK",
    "CHAIN_ID",
    "PERMIT_DOMAIN_NAME",
    "PERMIT_DOMAIN_VERSION",
    "FEATURE_FLAGS",
    "LOG_LEVEL",
    "LOG_FILE",
    "resolve_network",
]
