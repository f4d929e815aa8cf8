"""
Multi-recipient payment splitter.

Collects several payments in one call, in native coin or ERC20 tokens,
and sends each recipient its amount plus a proportional and flat fee to
the treasury.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from eth_abi.packed import encode_packed
from eth_utils import keccak

from ..addresses import ZERO_ADDRESS, is_zero, normalize, short
from ..chain import Contract, ContractEvent, atomic
from ..ledger_exceptions import (
    ContractError,
    EmptyPaymentListError,
    OwnableInvalidOwnerError,
    OwnableUnauthorizedAccountError,
    TransferFailedError,
    ZeroAddressError,
)

if TYPE_CHECKING:
    from ..chain import Chain
    from .erc20 import ERC20Token

logger = logging.getLogger(__name__)

FEE_DENOMINATOR = 10_000

# Token address that denotes the chain's native coin
NATIVE_TOKEN = ZERO_ADDRESS


@dataclass(frozen=True)
class PaymentItem:
    """One leg of a payment call."""

    token: str
    receiver: str
    amount: int

    def encode(self) -> bytes:
        return encode_packed(
            ["address", "address", "uint256"],
            [normalize(self.token), normalize(self.receiver), self.amount],
        )


@dataclass
class Payment(Contract):
    """
    Payment splitter with a treasury fee.

    fee(item) = item.amount * fee_numerator / 10000 + fixed_fees[item.token]
    """

    chain: "Chain" = field(repr=False, compare=False)
    owner: str = ""
    treasury: str = ""
    fee_numerator: int = 0
    address: str = ""

    fixed_fees: dict[str, int] = field(default_factory=dict)  # token -> flat fee

    events: list[ContractEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.owner or is_zero(self.owner):
            raise OwnableInvalidOwnerError("Payment: owner is the zero address")
        if not self.treasury or is_zero(self.treasury):
            raise ZeroAddressError("Payment: treasury is the zero address")
        self.owner = normalize(self.owner)
        self.treasury = normalize(self.treasury)
        self._validate_fee_numerator(self.fee_numerator)
        self._deploy()

    # ==================== View Functions ====================

    def get_fixed_fee(self, token: str) -> int:
        return self.fixed_fees.get(normalize(token), 0)

    def fee_for(self, item: PaymentItem) -> int:
        return item.amount * self.fee_numerator // FEE_DENOMINATOR + self.get_fixed_fee(item.token)

    # ==================== Payments ====================

    @atomic
    def make_payment(
        self,
        caller: str,
        payment_id: int,
        payments: Sequence[PaymentItem],
        value: int = 0,
    ) -> bytes:
        """
        Pay every item and its treasury fee.

        Args:
            caller: Payer (msg.sender)
            payment_id: Off-chain payment reference
            payments: Payment legs
            value: Native coin attached to the call

        Returns:
            keccak256 of the packed payment items (indexed in the event)

        Raises:
            EmptyPaymentListError: If ``payments`` is empty
            TransferFailedError: If ``value`` does not cover the native legs
        """
        if not payments:
            raise EmptyPaymentListError("Payment: empty payment list")

        caller_norm = normalize(caller)
        # Attached value moves to the splitter first, like msg.value
        self.chain.transfer_native(caller_norm, self.address, value)

        native_due = 0
        for item in payments:
            fee = self.fee_for(item)
            if is_zero(item.token):
                native_due += item.amount + fee
                if native_due > value:
                    raise TransferFailedError(
                        "Payment: insufficient native value",
                        {"value": value, "required": native_due},
                    )
                self._send_native(item.receiver, item.amount)
                self._send_native(self.treasury, fee)
            else:
                token = self._token(item.token)
                self._pull_token(token, caller_norm, item.receiver, item.amount)
                self._pull_token(token, caller_norm, self.treasury, fee)

        refund = value - native_due
        if refund:
            self._send_native(caller_norm, refund)

        indexed_hash = keccak(b"".join(item.encode() for item in payments))
        self._emit(
            "MakePayment",
            payment_id=payment_id,
            sender=caller_norm,
            indexed_hash=indexed_hash,
        )

        logger.info(
            "Payment made",
            extra={
                "event": "payment.made",
                "payment_id": payment_id,
                "sender": short(caller_norm),
                "items": len(payments),
            }
        )
        return indexed_hash

    # ==================== Admin Functions ====================

    @atomic
    def set_treasury(self, caller: str, treasury: str) -> bool:
        self._require_owner(caller)
        treasury_norm = normalize(treasury)
        if is_zero(treasury_norm):
            raise ZeroAddressError("Payment: treasury is the zero address")
        self.treasury = treasury_norm
        self._emit("NewTreasury", treasury=treasury_norm)
        return True

    @atomic
    def set_fee(self, caller: str, fee_numerator: int) -> bool:
        self._require_owner(caller)
        self._validate_fee_numerator(fee_numerator)
        self.fee_numerator = fee_numerator
        self._emit("NewFeeNumerator", fee_numerator=fee_numerator)
        return True

    @atomic
    def set_fixed_fee(self, caller: str, token: str, fee: int) -> bool:
        self._require_owner(caller)
        if not isinstance(fee, int) or fee < 0:
            raise ValueError(f"Payment: invalid fixed fee {fee!r}")
        token_norm = normalize(token)
        self.fixed_fees[token_norm] = fee
        self._emit("NewFixedFee", token=token_norm, fee=fee)
        return True

    # ==================== Helpers ====================

    def _send_native(self, to_addr: str, amount: int) -> None:
        if amount:
            self.chain.transfer_native(self.address, to_addr, amount)

    def _pull_token(self, token: "ERC20Token", payer: str, to_addr: str, amount: int) -> None:
        if amount:
            token.transfer_from(self.address, payer, to_addr, amount)

    def _token(self, address: str) -> "ERC20Token":
        token = self.chain.get_contract(address)
        if token is None:
            raise ContractError("Payment: token is not deployed", {"token": address})
        return token

    def _require_owner(self, caller: str) -> None:
        caller_norm = normalize(caller)
        if caller_norm != self.owner:
            raise OwnableUnauthorizedAccountError(
                "Payment: caller is not the owner", {"account": caller_norm}
            )

    @staticmethod
    def _validate_fee_numerator(fee_numerator: int) -> None:
        if not isinstance(fee_numerator, int) or not 0 <= fee_numerator <= FEE_DENOMINATOR:
            raise ValueError(f"Payment: invalid fee numerator {fee_numerator!r}")
