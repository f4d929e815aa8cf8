"""
ERC20 Token Standard Implementation.

Fungible token used by the ledgers as the fee ("gas") token and by the
payment splitter for token payments, including:
- Basic token operations (transfer, approve, transferFrom)
- Owner-restricted minting and holder burning
- Metadata (name, symbol, decimals)
- Events (Transfer, Approval)

Failures raise the OpenZeppelin-style errors defined here. Contracts that
move fee tokens let these propagate unchanged so callers can tell a fee
shortfall apart from a ledger-level rejection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..addresses import ZERO_ADDRESS, is_zero, normalize
from ..chain import Contract, ContractEvent, atomic
from ..ledger_exceptions import (
    ContractError,
    OwnableInvalidOwnerError,
    OwnableUnauthorizedAccountError,
)

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1


class ERC20InsufficientBalanceError(ContractError):
    """Raised when an account's balance does not cover a transfer."""

    def __init__(self, sender: str, balance: int, needed: int) -> None:
        super().__init__(
            f"ERC20: insufficient balance ({balance} < {needed})",
            {"sender": sender, "balance": balance, "needed": needed},
        )
        self.sender = sender
        self.balance = balance
        self.needed = needed


class ERC20InsufficientAllowanceError(ContractError):
    """Raised when a spender's allowance does not cover a transferFrom."""

    def __init__(self, spender: str, allowance: int, needed: int) -> None:
        super().__init__(
            f"ERC20: insufficient allowance ({allowance} < {needed})",
            {"spender": spender, "allowance": allowance, "needed": needed},
        )
        self.spender = spender
        self.allowance = allowance
        self.needed = needed


class ERC20InvalidReceiverError(ContractError):
    """Raised when tokens are sent to the zero address."""


class ERC20InvalidSpenderError(ContractError):
    """Raised when the zero address is approved as spender."""


@dataclass
class ERC20Token(Contract):
    """
    ERC20 token with owner-restricted minting.

    Balances and allowances live in plain dicts keyed by checksum address.
    """

    chain: "Chain" = field(repr=False, compare=False)
    name: str = ""
    symbol: str = ""
    owner: str = ""
    decimals: int = 18
    address: str = ""

    total_supply: int = 0
    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)  # owner -> spender -> amount

    events: list[ContractEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.owner or is_zero(self.owner):
            raise OwnableInvalidOwnerError("ERC20: owner is the zero address")
        self.owner = normalize(self.owner)
        self._deploy()

    # ==================== View Functions ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(normalize(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(normalize(owner), {}).get(normalize(spender), 0)

    # ==================== State-Changing Functions ====================

    @atomic
    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (msg.sender)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Raises:
            ERC20InsufficientBalanceError: If sender's balance is too low
        """
        self._move(normalize(sender), normalize(recipient), amount)
        return True

    @atomic
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Set ``spender``'s allowance over ``owner``'s tokens to ``amount``."""
        owner_norm = normalize(owner)
        spender_norm = normalize(spender)
        if is_zero(spender_norm):
            raise ERC20InvalidSpenderError("ERC20: approve to the zero address")
        self._validate_amount(amount)

        self.allowances.setdefault(owner_norm, {})[spender_norm] = amount
        self._emit("Approval", owner=owner_norm, spender=spender_norm, value=amount)
        return True

    @atomic
    def transfer_from(
        self, spender: str, from_addr: str, to_addr: str, amount: int
    ) -> bool:
        """
        Transfer tokens using an allowance.

        Allowance is checked before balance.

        Raises:
            ERC20InsufficientAllowanceError: If the allowance is too low
            ERC20InsufficientBalanceError: If ``from_addr``'s balance is too low
        """
        spender_norm = normalize(spender)
        from_norm = normalize(from_addr)
        self._validate_amount(amount)

        current_allowance = self.allowance(from_norm, spender_norm)
        if current_allowance < amount:
            raise ERC20InsufficientAllowanceError(spender_norm, current_allowance, amount)

        # Unlimited allowances are never decremented
        if current_allowance != UINT256_MAX:
            self.allowances[from_norm][spender_norm] = current_allowance - amount

        self._move(from_norm, normalize(to_addr), amount)
        return True

    @atomic
    def mint(self, caller: str, to: str, amount: int) -> bool:
        """Mint new tokens (owner only)."""
        if normalize(caller) != self.owner:
            raise OwnableUnauthorizedAccountError(
                "ERC20: caller is not the owner", {"account": normalize(caller)}
            )
        to_norm = normalize(to)
        if is_zero(to_norm):
            raise ERC20InvalidReceiverError("ERC20: mint to the zero address")
        self._validate_amount(amount)

        self.total_supply += amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", from_address=ZERO_ADDRESS, to_address=to_norm, value=amount)

        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to_norm[:10],
                "amount": amount,
            }
        )
        return True

    @atomic
    def burn(self, caller: str, amount: int) -> bool:
        """Burn tokens from the caller's balance."""
        caller_norm = normalize(caller)
        self._validate_amount(amount)
        balance = self.balances.get(caller_norm, 0)
        if balance < amount:
            raise ERC20InsufficientBalanceError(caller_norm, balance, amount)

        self.balances[caller_norm] = balance - amount
        self.total_supply -= amount
        self._emit("Transfer", from_address=caller_norm, to_address=ZERO_ADDRESS, value=amount)
        return True

    # ==================== Helpers ====================

    def _move(self, from_norm: str, to_norm: str, amount: int) -> None:
        if is_zero(to_norm):
            raise ERC20InvalidReceiverError("ERC20: transfer to the zero address")
        self._validate_amount(amount)

        from_balance = self.balances.get(from_norm, 0)
        if from_balance < amount:
            raise ERC20InsufficientBalanceError(from_norm, from_balance, amount)

        self.balances[from_norm] = from_balance - amount
        self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
        self._emit("Transfer", from_address=from_norm, to_address=to_norm, value=amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": from_norm[:10],
                "to": to_norm[:10],
                "amount": amount,
            }
        )

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount < 0 or amount > UINT256_MAX:
            raise ValueError(f"ERC20: invalid amount {amount!r}")
