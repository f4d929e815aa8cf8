"""
Smart wallet: a contract account controlled by a single key.

Implements ERC-1271 so that the wallet can sign ledger permits, and the
ERC721 receiver hook so that nites can be safe-transferred to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..addresses import is_zero, normalize, short
from ..chain import Contract, ContractEvent, atomic
from ..ledger_exceptions import (
    ContractError,
    OwnableInvalidOwnerError,
    OwnableUnauthorizedAccountError,
)
from ..typed_signing import recover_hash_signer
from .erc721_booking import RECEIVER_MAGIC_VALUE
from .permit import ERC1271_MAGIC_VALUE

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)

ERC1271_INVALID_VALUE = bytes.fromhex("ffffffff")


@dataclass
class SmartWallet(Contract):
    """Contract account whose signatures are the owner key's signatures."""

    chain: "Chain" = field(repr=False, compare=False)
    owner: str = ""
    address: str = ""

    events: list[ContractEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.owner or is_zero(self.owner):
            raise OwnableInvalidOwnerError("SmartWallet: owner is the zero address")
        self.owner = normalize(self.owner)
        self._deploy()

    def is_valid_signature(self, caller: str, digest: bytes, signature: bytes) -> bytes:
        """ERC-1271: magic value when the owner key signed ``digest``."""
        try:
            signer = recover_hash_signer(digest, signature)
        except ValueError:
            return ERC1271_INVALID_VALUE
        if signer != self.owner:
            return ERC1271_INVALID_VALUE
        return ERC1271_MAGIC_VALUE

    def on_erc721_received(
        self, caller: str, operator: str, from_addr: str, token_id: int, data: bytes
    ) -> bytes:
        self._emit(
            "Received",
            ledger=caller,
            operator=operator,
            from_address=from_addr,
            token_id=token_id,
        )
        return RECEIVER_MAGIC_VALUE

    @atomic
    def execute(self, caller: str, target: str, method: str, *args: Any, **kwargs: Any) -> Any:
        """
        Call ``method`` on the contract at ``target`` with the wallet as
        message sender (owner only).
        """
        caller_norm = normalize(caller)
        if caller_norm != self.owner:
            raise OwnableUnauthorizedAccountError(
                "SmartWallet: caller is not the owner", {"account": caller_norm}
            )
        contract = self.chain.get_contract(target)
        if contract is None:
            raise ContractError("SmartWallet: no contract at target", {"target": target})

        logger.debug(
            "Smart wallet call",
            extra={
                "event": "smart_wallet.execute",
                "wallet": short(self.address),
                "target": short(contract.address),
                "method": method,
            }
        )
        return getattr(contract, method)(self.address, *args, **kwargs)
