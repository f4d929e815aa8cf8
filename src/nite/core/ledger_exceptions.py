"""
Ledger-specific exception hierarchy for nite contracts.

Every failed contract call raises one of these typed exceptions after the
surrounding transaction has rolled back all state, fee movements and events.
Callers can match on the concrete class to learn *why* a call aborted.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ContractError(Exception):
    """Base exception for all contract call failures.

    Attributes:
        message: Human-readable error description
        details: Additional context about the failed call
    """

    def __init__(
        self,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = message or self.__class__.__name__
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ==================== Addressing ====================


class ZeroAddressError(ContractError):
    """Raised when the zero address is used where a real account is required."""


class OwnableInvalidOwnerError(ZeroAddressError):
    """Raised when a contract is constructed with a zero owner."""


# ==================== Authorization ====================


class UnauthorizedError(ContractError):
    """Raised when the caller is not allowed to perform the operation."""


class OwnableUnauthorizedAccountError(UnauthorizedError):
    """Raised when a non-owner calls an owner-restricted operation."""


class OnlyHostError(OwnableUnauthorizedAccountError):
    """Raised when a non-host calls a host-restricted ledger operation."""


class TransferWhilePausedError(UnauthorizedError):
    """Raised when a non-privileged caller transfers while the ledger is paused."""


# ==================== Ledger ====================


class WrongFromError(ContractError):
    """Raised when ``from`` is not the current owner of a transferred token."""


class ApprovalExistedError(ContractError):
    """Raised when approving the token owner as its own spender."""


class ApprovalToCurrentOwnerError(ContractError):
    """Raised when a permit names the current token owner as spender."""


class WrongOperatorError(ContractError):
    """Raised when an account tries to make itself its own operator."""


class InvalidTokenIdError(ContractError):
    """Raised for a bulk range whose lower bound exceeds its upper bound."""


class UnsafeRecipientError(ContractError):
    """Raised when a contract recipient does not acknowledge a safe transfer."""


# ==================== Permits ====================


class PermitExpiredError(ContractError):
    """Raised when a permit is submitted after its deadline."""


class InvalidPermitSignatureError(ContractError):
    """Raised for any permit signature that does not verify.

    Wrong signer, wrong field, stale nonce and malformed bytes all map to this
    single error so a failing call reveals nothing about which part was wrong.
    """


# ==================== Bookings ====================


class MismatchedBookingIdsError(ContractError):
    """Raised when a transferred range does not map to exactly one booking."""


class InvalidCheckinTokenIdError(ContractError):
    """Raised when a cancelled range does not start at the booking check-in."""


class InvalidCheckoutTokenIdError(ContractError):
    """Raised when a cancelled range does not end at the booking check-out."""


# ==================== Registry & Payments ====================


class TokenDeployedAlreadyError(ContractError):
    """Raised when a ledger already exists for a (host, slot) pair."""


class EmptyPaymentListError(ContractError):
    """Raised when a payment call carries no payment items."""


class TransferFailedError(ContractError):
    """Raised when a native coin transfer cannot be completed."""


__all__ = [
    "ContractError",
    "ZeroAddressError",
    "OwnableInvalidOwnerError",
    "UnauthorizedError",
    "OwnableUnauthorizedAccountError",
    "OnlyHostError",
    "TransferWhilePausedError",
    "WrongFromError",
    "ApprovalExistedError",
    "ApprovalToCurrentOwnerError",
    "WrongOperatorError",
    "InvalidTokenIdError",
    "UnsafeRecipientError",
    "PermitExpiredError",
    "InvalidPermitSignatureError",
    "MismatchedBookingIdsError",
    "InvalidCheckinTokenIdError",
    "InvalidCheckoutTokenIdError",
    "TokenDeployedAlreadyError",
    "EmptyPaymentListError",
    "TransferFailedError",
]
