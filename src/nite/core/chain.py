"""
In-process chain state for nite contracts.

``Chain`` plays the part of the EVM runtime for the ledger contracts:
it owns the contract registry, native coin balances and the block clock,
and it gives every public contract call all-or-nothing semantics.

Each call runs inside :meth:`Chain.transaction`. Entering a transaction
takes a savepoint of every registered contract plus native balances; an
exception restores the savepoint before propagating. Nested calls (for
example a receiver calling back into the ledger during a safe transfer)
get their own savepoint, so a caller that catches a failed inner call
sees exactly the state from before that call, as an EVM ``try/catch``
would.
"""

from __future__ import annotations

import copy
import dataclasses
import functools
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

from eth_utils import keccak, to_checksum_address

from . import config
from .addresses import ZERO_ADDRESS, is_zero, normalize
from .ledger_exceptions import TransferFailedError, ZeroAddressError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class ContractEvent:
    """Represents an emitted contract event."""

    event_type: str
    args: Dict[str, Any]
    block_timestamp: int = 0


class Contract:
    """
    Behaviour shared by every contract dataclass.

    Subclasses are dataclasses that declare ``chain``, ``address`` and
    ``events`` fields. ``chain`` is a live handle and is never part of a
    snapshot.
    """

    _transient_fields = ("chain",)

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of all persistent fields."""
        return {
            f.name: copy.deepcopy(getattr(self, f.name))
            for f in dataclasses.fields(self)
            if f.name not in self._transient_fields
        }

    def restore(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)

    def _deploy(self, salt: Optional[bytes] = None) -> None:
        """Allocate an address if needed and register with the chain."""
        if not self.address:
            self.address = self.chain.new_address(salt)
        else:
            self.address = normalize(self.address)
        self.chain.register(self)

    def _emit(self, event_type: str, **args: Any) -> None:
        self.events.append(
            ContractEvent(
                event_type=event_type,
                args=args,
                block_timestamp=self.chain.block_timestamp(),
            )
        )

    def events_named(self, event_type: str) -> List[ContractEvent]:
        return [e for e in self.events if e.event_type == event_type]


def atomic(method: F) -> F:
    """Run a contract method inside a chain transaction."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.chain.transaction():
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


@dataclass
class _Savepoint:
    contracts: Dict[str, Dict[str, Any]]
    native_balances: Dict[str, int]
    on_commit: List[Callable[[], None]] = field(default_factory=list)


class Chain:
    """World state shared by all contracts of one simulated network."""

    def __init__(self, chain_id: Optional[int] = None, timestamp: Optional[int] = None) -> None:
        """
        Args:
            chain_id: EIP-155 chain id, defaults to NITE_CHAIN_ID
            timestamp: Pinned block timestamp; wall clock when omitted
        """
        self.chain_id = chain_id if chain_id is not None else config.CHAIN_ID
        self._timestamp = timestamp
        self.contracts: Dict[str, Contract] = {}
        self.native_balances: Dict[str, int] = {}
        self._savepoints: List[_Savepoint] = []
        self._address_nonce = 0

    # ==================== Block clock ====================

    def block_timestamp(self) -> int:
        if self._timestamp is None:
            return int(time.time())
        return self._timestamp

    def set_timestamp(self, timestamp: int) -> None:
        self._timestamp = int(timestamp)

    def advance_time(self, seconds: int) -> int:
        self._timestamp = self.block_timestamp() + int(seconds)
        return self._timestamp

    # ==================== Contract registry ====================

    def new_address(self, salt: Optional[bytes] = None) -> str:
        """Allocate a fresh, deterministic contract address."""
        self._address_nonce += 1
        seed = b"nite-contract" + self._address_nonce.to_bytes(32, "big") + (salt or b"")
        return to_checksum_address(keccak(seed)[12:])

    def register(self, contract: Contract) -> str:
        address = normalize(contract.address)
        if address in self.contracts:
            raise ValueError(f"Address {address} already has a contract")
        self.contracts[address] = contract
        logger.debug(
            "Contract registered",
            extra={
                "event": "chain.contract_registered",
                "contract": type(contract).__name__,
                "address": address[:10],
            },
        )
        return address

    def is_contract(self, address: str) -> bool:
        """An account is a contract when code (an object) lives at it."""
        return normalize(address) in self.contracts

    def get_contract(self, address: str) -> Optional[Contract]:
        return self.contracts.get(normalize(address))

    # ==================== Native coin ====================

    def native_balance(self, address: str) -> int:
        return self.native_balances.get(normalize(address), 0)

    def fund(self, address: str, amount: int) -> None:
        """Credit native coin out of thin air (genesis allocation)."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        address = normalize(address)
        self.native_balances[address] = self.native_balances.get(address, 0) + amount

    def transfer_native(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move native coin between accounts.

        Raises:
            ZeroAddressError: If the recipient is the zero address
            TransferFailedError: If the sender cannot cover ``amount``
        """
        sender = normalize(sender)
        recipient = normalize(recipient)
        if is_zero(recipient):
            raise ZeroAddressError("native transfer to the zero address")
        balance = self.native_balances.get(sender, 0)
        if amount < 0 or balance < amount:
            raise TransferFailedError(
                "native transfer failed",
                {"sender": sender, "balance": balance, "amount": amount},
            )
        with self.transaction():
            self.native_balances[sender] = balance - amount
            self.native_balances[recipient] = self.native_balances.get(recipient, 0) + amount

    # ==================== Transactions ====================

    @property
    def in_transaction(self) -> bool:
        return bool(self._savepoints)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Savepoint scope for one contract call.

        Any exception restores every contract and native balance to its
        state at entry, drops contracts deployed inside the scope and
        discards queued commit callbacks. Callbacks queued with
        :meth:`on_commit` run once the outermost scope exits cleanly.
        """
        savepoint = _Savepoint(
            contracts={addr: c.snapshot() for addr, c in self.contracts.items()},
            native_balances=dict(self.native_balances),
        )
        self._savepoints.append(savepoint)
        try:
            yield
        except BaseException:
            self._savepoints.pop()
            self._rollback(savepoint)
            raise
        self._savepoints.pop()
        if self._savepoints:
            self._savepoints[-1].on_commit.extend(savepoint.on_commit)
            return
        for callback in savepoint.on_commit:
            callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Queue ``callback`` to run after the enclosing call commits."""
        if self._savepoints:
            self._savepoints[-1].on_commit.append(callback)
        else:
            callback()

    def _rollback(self, savepoint: _Savepoint) -> None:
        for address in list(self.contracts):
            if address not in savepoint.contracts:
                del self.contracts[address]
        for address, state in savepoint.contracts.items():
            self.contracts[address].restore(state)
        self.native_balances = savepoint.native_balances
        logger.debug(
            "Transaction reverted",
            extra={"event": "chain.revert", "depth": len(self._savepoints)},
        )


__all__ = ["Chain", "Contract", "ContractEvent", "atomic", "ZERO_ADDRESS"]
