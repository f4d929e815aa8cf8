"""
Address helpers shared by every contract.

Addresses are kept in EIP-55 checksum form so that equality checks between
callers, owners and operators are plain string comparisons.
"""

from __future__ import annotations

from eth_utils import is_address, to_checksum_address

ZERO_ADDRESS = "0x" + "0" * 40


def normalize(address: str) -> str:
    """Return the checksum form of ``address``.

    Raises:
        ValueError: If ``address`` is not a 20-byte hex address
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def is_zero(address: str) -> bool:
    return int(address, 16) == 0


def short(address: str) -> str:
    """Truncated form used in log records."""
    return address[:10]
