"""
Per-transfer fee metering.

Fees are denominated in the registry's fee token and forwarded to the
registry's treasury. Who pays depends on who started the transfer:

- host or registry operator: the ledger pays out of its own fee-token
  balance (``transfer``)
- anyone else: the token owner pays through an allowance granted to the
  ledger (``transferFrom``)

Fee-token errors are never wrapped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..addresses import short
from ..ledger_exceptions import ContractError

if TYPE_CHECKING:
    from ..chain import Chain
    from .erc20 import ERC20Token

logger = logging.getLogger(__name__)

SOURCE_LEDGER = "ledger"
SOURCE_HOLDER = "holder"


@dataclass(frozen=True)
class FeeSchedule:
    """Snapshot of registry fee configuration for a single call."""

    operator: str
    treasury: str
    fee_token: str
    fee_per_transfer: int

    @classmethod
    def from_registry(cls, registry) -> "FeeSchedule":
        return cls(
            operator=registry.operator,
            treasury=registry.treasury,
            fee_token=registry.fee_token,
            fee_per_transfer=registry.fee_amount_per_transfer,
        )

    def amount_for(self, token_count: int) -> int:
        return self.fee_per_transfer * token_count


class FeeMeter:
    """Moves fees for one ledger according to a :class:`FeeSchedule`."""

    def __init__(self, chain: "Chain", ledger_address: str) -> None:
        self.chain = chain
        self.ledger_address = ledger_address

    def charge(
        self,
        schedule: FeeSchedule,
        payer: str,
        token_count: int,
        privileged: bool,
    ) -> Optional[tuple[str, int]]:
        """
        Charge the fee for ``token_count`` moved ids.

        Returns:
            ``(source, amount)`` when a fee moved, None when the fee is zero
        """
        amount = schedule.amount_for(token_count)
        if amount == 0:
            return None

        fee_token = self.resolve_token(schedule.fee_token)
        if privileged:
            fee_token.transfer(self.ledger_address, schedule.treasury, amount)
            source = SOURCE_LEDGER
        else:
            fee_token.transfer_from(self.ledger_address, payer, schedule.treasury, amount)
            source = SOURCE_HOLDER

        logger.debug(
            "Transfer fee charged",
            extra={
                "event": "fees.charged",
                "source": source,
                "payer": short(self.ledger_address if privileged else payer),
                "amount": amount,
                "tokens": token_count,
            }
        )
        return source, amount

    def resolve_token(self, address: str) -> "ERC20Token":
        token = self.chain.get_contract(address)
        if token is None:
            raise ContractError("Fee token is not deployed", {"fee_token": address})
        return token
