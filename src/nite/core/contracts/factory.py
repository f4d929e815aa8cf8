"""
Property registry and factory.

Central configuration shared by every property ledger (privileged operator,
treasury, fee token, fee per transferred nite) plus deterministic
deployment of one ledger per ``(host, slot)``.

Ledger addresses follow CREATE2:

    address = keccak256(0xff ++ factory ++ salt ++ keccak256(init_code))[12:]
    salt    = keccak256(abi.encodePacked(host, slot, keccak256("BOOKING_V5")))

so anyone can compute a property's address before it exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from eth_abi import encode as abi_encode
from eth_abi.packed import encode_packed
from eth_utils import keccak, to_bytes, to_checksum_address

from .. import config
from ..addresses import is_zero, normalize, short
from ..chain import Contract, ContractEvent, atomic
from ..ledger_exceptions import (
    OwnableInvalidOwnerError,
    OwnableUnauthorizedAccountError,
    TokenDeployedAlreadyError,
    ZeroAddressError,
)
from .nite_token import NiteToken

if TYPE_CHECKING:
    from ..chain import Chain

logger = logging.getLogger(__name__)

BOOKING_VERSION_TAG = keccak(text="BOOKING_V5")

# Stands in for the ledger creation bytecode in the init-code hash
NITE_TOKEN_CODE_ID = keccak(text="nite.core.contracts.nite_token.NiteToken")


def property_salt(host: str, slot: int) -> bytes:
    return keccak(
        encode_packed(
            ["address", "uint256", "bytes32"],
            [normalize(host), slot, BOOKING_VERSION_TAG],
        )
    )


def property_init_code(
    host: str, factory: str, name: str, symbol: str, base_uri: str
) -> bytes:
    return NITE_TOKEN_CODE_ID + abi_encode(
        ["address", "address", "string", "string", "string"],
        [normalize(host), normalize(factory), name, symbol, base_uri],
    )


def compute_create2_address(deployer: str, salt: bytes, init_code: bytes) -> str:
    """
    Address = keccak256(0xff + deployer + salt + keccak256(init_code))[-20:]
    """
    data = b"\xff" + to_bytes(hexstr=normalize(deployer)) + salt + keccak(init_code)
    return to_checksum_address(keccak(data)[-20:])


def compute_property_address(
    factory: str,
    host: str,
    slot: int,
    name: str,
    symbol: str,
    base_uri: str,
) -> str:
    """Address a ledger for ``(host, slot)`` deploys to from ``factory``."""
    return compute_create2_address(
        factory,
        property_salt(host, slot),
        property_init_code(host, factory, name, symbol, base_uri),
    )


@dataclass
class Factory(Contract):
    """
    Registry of property ledgers.

    The owner administers fee configuration; anyone may deploy a ledger for
    any host, but only once per ``(host, slot)``.
    """

    chain: "Chain" = field(repr=False, compare=False)
    owner: str = ""
    operator: str = ""
    treasury: str = ""
    fee_token: str = ""
    fee_amount_per_transfer: int = 0
    address: str = ""

    property_contracts: dict[str, dict[int, str]] = field(default_factory=dict)  # host -> slot -> ledger

    events: list[ContractEvent] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.owner or is_zero(self.owner):
            raise OwnableInvalidOwnerError("Factory: owner is the zero address")
        for name in ("operator", "treasury", "fee_token"):
            value = getattr(self, name)
            if not value or is_zero(value):
                raise ZeroAddressError(f"Factory: {name} is the zero address")
            setattr(self, name, normalize(value))
        self.owner = normalize(self.owner)
        self._validate_fee(self.fee_amount_per_transfer)
        self._deploy()

    # ==================== View Functions ====================

    def get_trvl_address(self) -> str:
        """Fee token address."""
        return self.fee_token

    def get_property_contract(self, host: str, slot: int) -> Optional[str]:
        return self.property_contracts.get(normalize(host), {}).get(slot)

    def compute_property_address(
        self, host: str, slot: int, name: str, symbol: str, base_uri: str = ""
    ) -> str:
        return compute_property_address(self.address, host, slot, name, symbol, base_uri)

    # ==================== Deployment ====================

    @atomic
    def create_property_contract(
        self,
        caller: str,
        slot: int,
        host: str,
        name: str,
        symbol: str,
        base_uri: str = "",
        track_bookings: Optional[bool] = None,
    ) -> str:
        """
        Deploy the ledger for ``(host, slot)``.

        Args:
            caller: Message sender (unrestricted)
            slot: Host-chosen property slot
            host: Account that will own the ledger
            name: Collection name
            symbol: Collection symbol
            base_uri: Metadata base URI
            track_bookings: Enable booking records, defaults to NITE_TRACK_BOOKINGS

        Returns:
            Address of the new ledger

        Raises:
            TokenDeployedAlreadyError: If a ledger exists for ``(host, slot)``
        """
        host_norm = normalize(host)
        if is_zero(host_norm):
            raise ZeroAddressError("Factory: host is the zero address")
        if self.get_property_contract(host_norm, slot) is not None:
            raise TokenDeployedAlreadyError(
                "Factory: property already deployed", {"host": host_norm, "slot": slot}
            )

        if track_bookings is None:
            track_bookings = config.FEATURE_FLAGS["track_bookings"]

        token = NiteToken(
            chain=self.chain,
            host=host_norm,
            name=name,
            symbol=symbol,
            base_uri=base_uri,
            address=self.compute_property_address(host_norm, slot, name, symbol, base_uri),
            factory=self.address,
            track_bookings=track_bookings,
        )
        self.property_contracts.setdefault(host_norm, {})[slot] = token.address
        self._emit("NewPropertyContract", slot=slot, property=token.address, host=host_norm)

        logger.info(
            "Property contract created",
            extra={
                "event": "factory.property_created",
                "slot": slot,
                "host": short(host_norm),
                "property": short(token.address),
            }
        )
        return token.address

    # ==================== Admin Functions ====================

    @atomic
    def set_fee_amount_per_transfer(self, caller: str, amount: int) -> bool:
        self._require_owner(caller)
        self._validate_fee(amount)
        self.fee_amount_per_transfer = amount
        self._emit("NewFeeAmountPerTransfer", amount=amount)
        logger.info(
            "Fee per transfer updated",
            extra={"event": "factory.fee_updated", "amount": amount},
        )
        return True

    @atomic
    def set_operator(self, caller: str, operator: str) -> bool:
        self._require_owner(caller)
        self.operator = self._require_nonzero(operator, "operator")
        self._emit("NewOperator", operator=self.operator)
        return True

    @atomic
    def set_treasury(self, caller: str, treasury: str) -> bool:
        self._require_owner(caller)
        self.treasury = self._require_nonzero(treasury, "treasury")
        self._emit("NewTreasury", treasury=self.treasury)
        return True

    @atomic
    def set_fee_token(self, caller: str, fee_token: str) -> bool:
        self._require_owner(caller)
        self.fee_token = self._require_nonzero(fee_token, "fee token")
        self._emit("NewFeeToken", fee_token=self.fee_token)
        return True

    @atomic
    def transfer_ownership(self, caller: str, new_owner: str) -> bool:
        self._require_owner(caller)
        new_owner_norm = normalize(new_owner)
        if is_zero(new_owner_norm):
            raise OwnableInvalidOwnerError("Factory: new owner is the zero address")
        previous = self.owner
        self.owner = new_owner_norm
        self._emit("OwnershipTransferred", previous_owner=previous, new_owner=new_owner_norm)
        return True

    # ==================== Helpers ====================

    def _require_owner(self, caller: str) -> None:
        caller_norm = normalize(caller)
        if caller_norm != self.owner:
            raise OwnableUnauthorizedAccountError(
                "Factory: caller is not the owner", {"account": caller_norm}
            )

    @staticmethod
    def _require_nonzero(address: str, label: str) -> str:
        address_norm = normalize(address)
        if is_zero(address_norm):
            raise ZeroAddressError(f"Factory: {label} is the zero address")
        return address_norm

    @staticmethod
    def _validate_fee(amount: int) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Factory: invalid fee amount {amount!r}")
