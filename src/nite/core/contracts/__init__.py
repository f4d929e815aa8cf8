"""
Nite Contracts.

This module provides the contracts of the nite booking system:
- ERC721Booking / ERC721Permit: booking-rights ledger with signature approvals
- NiteToken: per-property ledger with pause, privileges, fees and bookings
- Factory: registry of fee configuration and deterministic ledger deployment
- Payment: multi-recipient payment splitter
- ERC20Token: fungible fee token
- SmartWallet: ERC-1271 contract account
"""

from .bookings import Booking, BookingTracker
from .erc20 import ERC20Token
from .erc721_booking import ERC721Booking
from .factory import Factory, compute_property_address
from .fees import FeeMeter, FeeSchedule
from .nite_token import NiteToken
from .payment import Payment, PaymentItem
from .permit import ERC721Permit
from .smart_wallet import SmartWallet

__all__ = [
    # Ledger
    "ERC721Booking",
    "ERC721Permit",
    "NiteToken",
    "Booking",
    "BookingTracker",
    "FeeMeter",
    "FeeSchedule",
    # Registry
    "Factory",
    "compute_property_address",
    # Payments
    "Payment",
    "PaymentItem",
    # Accounts and tokens
    "ERC20Token",
    "SmartWallet",
]
