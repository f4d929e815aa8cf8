"""
NiteToken - the property ledger deployed per (host, slot).

Adds to the permit-enabled booking ledger:
- a pause switch (paused at deployment) that the host and the registry
  operator bypass
- host and registry-operator transfer privileges
- per-transfer fee metering from the registry's fee schedule
- optional booking records
- host-only administration (pause, metadata, fee-token withdrawal)

Registry configuration is re-read on every call, never cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .. import config
from ..addresses import is_zero, normalize, short
from ..chain import atomic
from ..ledger_exceptions import (
    ContractError,
    OnlyHostError,
    TransferWhilePausedError,
    ZeroAddressError,
)
from ..metrics import get_metrics
from .bookings import Booking, BookingTracker
from .fees import FeeMeter, FeeSchedule
from .permit import ERC721Permit

logger = logging.getLogger(__name__)


@dataclass
class NiteToken(ERC721Permit):
    """
    Property ledger of nites.

    ``factory`` is the address of the registry that supplies the privileged
    operator, treasury, fee token and fee per transfer.
    """

    factory: str = ""
    paused: bool = True
    track_bookings: bool = config.FEATURE_FLAGS["track_bookings"]
    booking_tracker: BookingTracker = field(default_factory=BookingTracker)

    def __post_init__(self) -> None:
        if not self.factory or is_zero(self.factory):
            raise ZeroAddressError("NiteToken: registry is the zero address")
        self.factory = normalize(self.factory)
        super().__post_init__()

        logger.info(
            "NiteToken deployed",
            extra={
                "event": "nite.deployed",
                "collection": self.symbol,
                "address": short(self.address),
                "host": short(self.host),
                "track_bookings": self.track_bookings,
            }
        )

    # ==================== View Functions ====================

    def registry(self):
        """Resolve the registry contract for the current call."""
        registry = self.chain.get_contract(self.factory)
        if registry is None:
            raise ContractError("NiteToken: registry is not deployed", {"factory": self.factory})
        return registry

    def fee_schedule(self) -> FeeSchedule:
        return FeeSchedule.from_registry(self.registry())

    def get_booking_id(self, token_id: int) -> int:
        return self.booking_tracker.booking_id_of(token_id)

    def get_booking(self, booking_id: int) -> Booking:
        return self.booking_tracker.get(booking_id)

    # ==================== Administration ====================

    @atomic
    def pause(self, caller: str) -> bool:
        """Pause holder transfers (host only)."""
        caller_norm = self._require_host(caller)
        self.paused = True
        self._emit("Paused", account=caller_norm)
        logger.info("NiteToken paused", extra={"event": "nite.paused", "collection": self.symbol})
        return True

    @atomic
    def unpause(self, caller: str) -> bool:
        """Resume holder transfers (host only)."""
        caller_norm = self._require_host(caller)
        self.paused = False
        self._emit("Unpaused", account=caller_norm)
        logger.info("NiteToken unpaused", extra={"event": "nite.unpaused", "collection": self.symbol})
        return True

    @atomic
    def set_name(self, caller: str, name: str) -> bool:
        self._require_host(caller)
        self.name = name
        return True

    @atomic
    def set_base_uri(self, caller: str, base_uri: str) -> bool:
        self._require_host(caller)
        self.base_uri = base_uri
        return True

    @atomic
    def withdraw_gas_token(self, caller: str, to_addr: str, amount: int) -> bool:
        """
        Move ``amount`` of the ledger's own fee-token balance to ``to_addr``
        (host only).
        """
        self._require_host(caller)
        to_norm = normalize(to_addr)
        if is_zero(to_norm):
            raise ZeroAddressError("NiteToken: withdraw to the zero address")

        fee_token = FeeMeter(self.chain, self.address).resolve_token(self.fee_schedule().fee_token)
        fee_token.transfer(self.address, to_norm, amount)
        self._emit("WithdrawGasToken", to_address=to_norm, amount=amount)

        logger.info(
            "Fee token withdrawn",
            extra={
                "event": "nite.withdraw_gas_token",
                "collection": self.symbol,
                "to": short(to_norm),
                "amount": amount,
            }
        )
        return True

    # ==================== Transfer hooks ====================

    def _is_privileged(self, caller: str) -> bool:
        return caller == self.host or caller == normalize(self.registry().operator)

    def _require_transfer_allowed(self, caller: str) -> None:
        if self.paused and not self._is_privileged(caller):
            raise TransferWhilePausedError(
                "NiteToken: transfer while paused", {"caller": caller}
            )

    def _after_ownership_change(
        self, from_norm: str, to_norm: str, from_id: int, to_id: int, data: bytes
    ) -> None:
        if self.track_bookings:
            self._track_booking(from_norm, to_norm, from_id, to_id, data)

        if config.FEATURE_FLAGS["metrics"]:
            count = to_id - from_id + 1
            kind = "bulk" if count > 1 else "single"
            self.chain.on_commit(lambda: get_metrics().record_transfer(kind, count))

    def _charge_fee(self, caller: str, from_norm: str, token_count: int) -> None:
        charged = FeeMeter(self.chain, self.address).charge(
            self.fee_schedule(),
            payer=from_norm,
            token_count=token_count,
            privileged=self._is_privileged(caller),
        )
        if charged is not None and config.FEATURE_FLAGS["metrics"]:
            source, amount = charged
            self.chain.on_commit(lambda: get_metrics().record_fee(source, amount))

    def _track_booking(
        self, from_norm: str, to_norm: str, from_id: int, to_id: int, data: bytes
    ) -> None:
        if is_zero(to_norm):
            booking_id = self.booking_tracker.cancel(from_id, to_id)
            if booking_id is None:
                return
            self._emit("CancelBooking", booking_id=booking_id)
            action = "cancelled"
        elif from_norm == self.host and to_norm != self.host:
            booking_id = self.booking_tracker.create(from_id, to_id, data)
            self._emit("NewBooking", booking_id=booking_id, check_in=from_id, check_out=to_id)
            action = "created"
        else:
            return

        logger.info(
            "Booking %s",
            action,
            extra={
                "event": f"nite.booking_{action}",
                "collection": self.symbol,
                "booking_id": booking_id,
            }
        )
        if config.FEATURE_FLAGS["metrics"]:
            self.chain.on_commit(lambda: get_metrics().record_booking(action))

    # ==================== Helpers ====================

    def _require_host(self, caller: str) -> str:
        caller_norm = normalize(caller)
        if caller_norm != self.host:
            raise OnlyHostError("NiteToken: caller is not the host", {"account": caller_norm})
        return caller_norm
