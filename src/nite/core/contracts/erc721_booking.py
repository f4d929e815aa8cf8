"""
ERC721 Booking Ledger.

Non-fungible ledger of booking rights where every token id is owned by the
host until it is transferred away. Token supply is unbounded: an id with no
ownership record belongs to the host, and transferring an id to the zero
address hands it back to the host instead of burning it.

This module provides:
- Ownership store with implicit host default and an explicit balance counter
- Per-token and operator approvals
- Single and inclusive-range bulk transfers, with "safe" variants that
  require contract recipients to acknowledge receipt
- Metadata (name, symbol, tokenURI)

Subclasses plug in policy through hooks: ``_require_transfer_allowed``
(pause gate), ``_is_privileged`` (approval bypass), ``_after_ownership_change``
(booking bookkeeping) and ``_charge_fee`` (fee metering).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from ..addresses import ZERO_ADDRESS, is_zero, normalize, short
from ..chain import Contract, ContractEvent, atomic
from ..ledger_exceptions import (
    ApprovalExistedError,
    InvalidTokenIdError,
    OwnableInvalidOwnerError,
    UnauthorizedError,
    UnsafeRecipientError,
    WrongFromError,
    WrongOperatorError,
    ZeroAddressError,
)

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)

# bytes4(keccak256("onERC721Received(address,address,uint256,bytes)"))
RECEIVER_MAGIC_VALUE = bytes.fromhex("150b7a02")

INTERFACE_IDS = {
    "ERC165": bytes.fromhex("01ffc9a7"),
    "ERC721": bytes.fromhex("80ac58cd"),
    "ERC721Metadata": bytes.fromhex("5b5e139f"),
}


@dataclass
class ERC721Booking(Contract):
    """
    Booking-rights ledger owned by a single host account.

    State:
    - ``owners`` only holds explicit records; absence means "owned by host"
    - ``balances`` counts explicit records per account and is adjusted on
      every record change, never derived by enumeration
    """

    chain: "Chain" = field(repr=False, compare=False)
    host: str = ""
    name: str = ""
    symbol: str = ""
    base_uri: str = ""
    address: str = ""

    owners: dict[int, str] = field(default_factory=dict)  # tokenId -> explicit owner
    balances: dict[str, int] = field(default_factory=dict)  # owner -> explicit record count
    token_approvals: dict[int, str] = field(default_factory=dict)  # tokenId -> approved
    operator_approvals: dict[str, dict[str, bool]] = field(
        default_factory=dict
    )  # owner -> operator -> approved

    events: list[ContractEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.host or is_zero(self.host):
            raise OwnableInvalidOwnerError("ERC721: host is the zero address")
        self.host = normalize(self.host)
        self._deploy()

    # ==================== View Functions ====================

    def owner_of(self, token_id: int) -> str:
        """
        Get the owner of a token. Never fails: ids without a record
        belong to the host.
        """
        return self.owners.get(token_id, self.host)

    def balance_of(self, owner: str) -> int:
        """
        Number of explicit ownership records held by ``owner``.

        Raises:
            ZeroAddressError: If queried for the zero address
        """
        owner_norm = normalize(owner)
        if is_zero(owner_norm):
            raise ZeroAddressError("ERC721: balance query for the zero address")
        return self.balances.get(owner_norm, 0)

    def get_approved(self, token_id: int) -> str:
        return self.token_approvals.get(token_id, ZERO_ADDRESS)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self.operator_approvals.get(normalize(owner), {}).get(normalize(operator), False)

    def token_uri(self, token_id: int) -> str:
        if self.base_uri:
            return f"{self.base_uri}{token_id}"
        return ""

    def supports_interface(self, interface_id: Union[bytes, str]) -> bool:
        if isinstance(interface_id, str):
            interface_id = bytes.fromhex(interface_id.removeprefix("0x"))
        return interface_id in INTERFACE_IDS.values()

    # ==================== Approvals ====================

    @atomic
    def approve(self, caller: str, spender: str, token_id: int) -> bool:
        """
        Approve ``spender`` to transfer ``token_id``.

        Args:
            caller: Message sender, the owner or one of its operators
            spender: Address to approve (zero clears the approval)
            token_id: Token ID

        Raises:
            ApprovalExistedError: If ``spender`` already owns the token
            UnauthorizedError: If caller is neither owner nor operator
        """
        caller_norm = normalize(caller)
        spender_norm = normalize(spender)
        owner = self.owner_of(token_id)

        if spender_norm == owner:
            raise ApprovalExistedError(
                "ERC721: approval to current owner", {"token_id": token_id}
            )

        if caller_norm != owner and not self.is_approved_for_all(owner, caller_norm):
            raise UnauthorizedError(
                "ERC721: approve caller is not owner nor operator",
                {"caller": caller_norm, "token_id": token_id},
            )

        self._approve(owner, spender_norm, token_id)
        return True

    @atomic
    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> bool:
        """
        Grant or revoke ``operator`` rights over all of the caller's tokens.

        Raises:
            ZeroAddressError: If ``operator`` is the zero address
            WrongOperatorError: If ``operator`` is the caller
        """
        self._set_approval_for_all(normalize(caller), normalize(operator), approved)
        return True

    def _approve(self, owner: str, spender: str, token_id: int) -> None:
        if is_zero(spender):
            self.token_approvals.pop(token_id, None)
        else:
            self.token_approvals[token_id] = spender
        self._emit("Approval", owner=owner, spender=spender, token_id=token_id)

    def _set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        if is_zero(operator):
            raise ZeroAddressError("ERC721: operator is the zero address")
        if operator == owner:
            raise WrongOperatorError("ERC721: approve to caller", {"operator": operator})

        self.operator_approvals.setdefault(owner, {})[operator] = bool(approved)
        self._emit("ApprovalForAll", owner=owner, operator=operator, approved=bool(approved))

    # ==================== Transfers ====================

    @atomic
    def transfer_from(self, caller: str, from_addr: str, to_addr: str, token_id: int) -> bool:
        """
        Transfer a token. ``to_addr`` may be the zero address to return
        the token to the host.

        Raises:
            TransferWhilePausedError: If paused and caller is not privileged
            WrongFromError: If ``from_addr`` does not own the token
            UnauthorizedError: If caller is not owner, approved or operator
        """
        self._transfer_range(caller, from_addr, to_addr, token_id, token_id, b"", safe=False)
        return True

    @atomic
    def safe_transfer_from(
        self,
        caller: str,
        from_addr: str,
        to_addr: str,
        token_id: int,
        data: bytes = b"",
    ) -> bool:
        """Transfer a token, requiring contract recipients to acknowledge it."""
        self._transfer_range(caller, from_addr, to_addr, token_id, token_id, data, safe=True)
        return True

    @atomic
    def bulk_transfer_from(
        self,
        caller: str,
        from_addr: str,
        to_addr: str,
        from_id: int,
        to_id: int,
    ) -> bool:
        """
        Transfer every id in the inclusive range ``[from_id, to_id]``.

        Raises:
            InvalidTokenIdError: If ``from_id > to_id``
        """
        self._transfer_range(caller, from_addr, to_addr, from_id, to_id, b"", safe=False)
        return True

    @atomic
    def safe_bulk_transfer_from(
        self,
        caller: str,
        from_addr: str,
        to_addr: str,
        from_id: int,
        to_id: int,
        data: bytes = b"",
    ) -> bool:
        """Bulk transfer with one receiver acknowledgement per id."""
        self._transfer_range(caller, from_addr, to_addr, from_id, to_id, data, safe=True)
        return True

    def _transfer_range(
        self,
        caller: str,
        from_addr: str,
        to_addr: str,
        from_id: int,
        to_id: int,
        data: bytes,
        safe: bool,
    ) -> None:
        """
        Validate, authorize, mutate, meter the fee, notify, then emit.

        All ownership and fee state is final before any receiver is called,
        so a re-entrant receiver observes the completed transfer.
        """
        caller_norm = normalize(caller)
        from_norm = normalize(from_addr)
        to_norm = normalize(to_addr)

        if from_id > to_id:
            raise InvalidTokenIdError(
                "ERC721: invalid token range", {"from_id": from_id, "to_id": to_id}
            )

        self._require_transfer_allowed(caller_norm)
        privileged = self._is_privileged(caller_norm)

        token_ids = range(from_id, to_id + 1)
        for token_id in token_ids:
            owner = self.owner_of(token_id)
            if owner != from_norm:
                raise WrongFromError(
                    "ERC721: transfer from incorrect owner",
                    {"token_id": token_id, "owner": owner, "from": from_norm},
                )
            # privilege only covers the host's own stock
            if privileged and owner == self.host:
                continue
            if not self._is_approved_or_owner(caller_norm, owner, token_id):
                raise UnauthorizedError(
                    "ERC721: caller is not owner nor approved",
                    {"caller": caller_norm, "token_id": token_id},
                )

        for token_id in token_ids:
            self._update_ownership(to_norm, token_id)

        self._after_ownership_change(from_norm, to_norm, from_id, to_id, data)
        self._charge_fee(caller_norm, from_norm, len(token_ids))

        if safe:
            for token_id in token_ids:
                self._check_on_erc721_received(caller_norm, from_norm, to_norm, token_id, data)

        for token_id in token_ids:
            self._emit("Transfer", from_address=from_norm, to_address=to_norm, token_id=token_id)

        logger.debug(
            "ERC721 transfer",
            extra={
                "event": "erc721.transfer",
                "collection": self.symbol,
                "from_id": from_id,
                "to_id": to_id,
                "from": short(from_norm),
                "to": short(to_norm),
                "safe": safe,
            }
        )

    def _update_ownership(self, to_norm: str, token_id: int) -> None:
        previous = self.owners.get(token_id)
        if previous is not None:
            self.balances[previous] -= 1

        # Approval is cleared silently
        self.token_approvals.pop(token_id, None)

        if is_zero(to_norm):
            self.owners.pop(token_id, None)
        else:
            self.owners[token_id] = to_norm
            self.balances[to_norm] = self.balances.get(to_norm, 0) + 1

    def _check_on_erc721_received(
        self, operator: str, from_norm: str, to_norm: str, token_id: int, data: bytes
    ) -> None:
        if is_zero(to_norm):
            return
        receiver = self.chain.get_contract(to_norm)
        if receiver is None:
            return

        on_received = getattr(receiver, "on_erc721_received", None)
        if on_received is None:
            raise UnsafeRecipientError(
                "ERC721: transfer to non ERC721Receiver implementer", {"to": to_norm}
            )

        # Exceptions raised by the receiver propagate unchanged
        result = on_received(self.address, operator, from_norm, token_id, data)
        if result != RECEIVER_MAGIC_VALUE:
            raise UnsafeRecipientError(
                "ERC721: receiver rejected the token",
                {"to": to_norm, "token_id": token_id},
            )

    # ==================== Hooks ====================

    def _require_transfer_allowed(self, caller: str) -> None:
        """Pause gate; the base ledger never blocks."""

    def _is_privileged(self, caller: str) -> bool:
        return caller == self.host

    def _after_ownership_change(
        self, from_norm: str, to_norm: str, from_id: int, to_id: int, data: bytes
    ) -> None:
        """Called once per transfer call after all records are updated."""

    def _charge_fee(self, caller: str, from_norm: str, token_count: int) -> None:
        """Called once per transfer call with the number of ids moved."""

    # ==================== Helpers ====================

    def _is_approved_or_owner(self, caller: str, owner: str, token_id: int) -> bool:
        return (
            caller == owner
            or self.get_approved(token_id) == caller
            or self.is_approved_for_all(owner, caller)
        )
