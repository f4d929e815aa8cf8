"""
Nite - Booking Rights Ledger

A ledger of non-fungible booking rights ("nites") for a property, with
off-band signed authorization and a metered per-transfer service fee.

Main Components:
- Ledger: implicit host ownership, approvals, single and bulk transfers
- Permits: EIP-712 Permit / PermitForAll with EOA and ERC-1271 signers
- Fees: per-transfer fee charged in a separate fungible token
- Registry: deterministic per-(host, slot) ledger deployment
- Payments: multi-recipient payment splitter with treasury fees
"""

__version__ = "0.1.0"
__author__ = "Nite Development Team"

__all__ = []
