"""
Booking records for ledgers that track stays.

A booking is created when the host transfers a contiguous range of nites
to a guest in one call, and cancelled when that exact range is handed back
to the host (transfer to the zero address) in one call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..ledger_exceptions import (
    InvalidCheckinTokenIdError,
    InvalidCheckoutTokenIdError,
    MismatchedBookingIdsError,
)

logger = logging.getLogger(__name__)


@dataclass
class Booking:
    """A contiguous range of nites transferred together."""

    check_in: int = 0
    check_out: int = 0
    data: bytes = b""


@dataclass
class BookingTracker:
    """Booking bookkeeping owned by a single ledger."""

    last_booking_id: int = 0
    bookings: dict[int, Booking] = field(default_factory=dict)
    booking_ids: dict[int, int] = field(default_factory=dict)  # tokenId -> bookingId

    def booking_id_of(self, token_id: int) -> int:
        return self.booking_ids.get(token_id, 0)

    def get(self, booking_id: int) -> Booking:
        """Booking record; cancelled or unknown ids read as zeroed."""
        return self.bookings.get(booking_id, Booking())

    def create(self, from_id: int, to_id: int, data: bytes) -> int:
        """
        Record a new booking covering ``[from_id, to_id]``.

        Raises:
            MismatchedBookingIdsError: If any id already belongs to a booking
        """
        for token_id in range(from_id, to_id + 1):
            if token_id in self.booking_ids:
                raise MismatchedBookingIdsError(
                    "Token already belongs to a booking",
                    {"token_id": token_id, "booking_id": self.booking_ids[token_id]},
                )

        self.last_booking_id += 1
        booking_id = self.last_booking_id
        self.bookings[booking_id] = Booking(check_in=from_id, check_out=to_id, data=bytes(data))
        for token_id in range(from_id, to_id + 1):
            self.booking_ids[token_id] = booking_id
        return booking_id

    def cancel(self, from_id: int, to_id: int) -> Optional[int]:
        """
        Delete the booking covering exactly ``[from_id, to_id]``.

        Returns:
            The cancelled booking id, or None if no id in the range is booked

        Raises:
            MismatchedBookingIdsError: If the range spans several bookings or
                mixes booked and unbooked ids
            InvalidCheckinTokenIdError: If ``from_id`` is not the check-in id
            InvalidCheckoutTokenIdError: If ``to_id`` is not the check-out id
        """
        ids = {self.booking_id_of(token_id) for token_id in range(from_id, to_id + 1)}
        if ids == {0}:
            return None
        if len(ids) != 1:
            raise MismatchedBookingIdsError(
                "Token range spans multiple bookings", {"from_id": from_id, "to_id": to_id}
            )

        booking_id = ids.pop()
        booking = self.bookings[booking_id]
        if from_id != booking.check_in:
            raise InvalidCheckinTokenIdError(
                "Range does not start at check-in", {"booking_id": booking_id}
            )
        if to_id != booking.check_out:
            raise InvalidCheckoutTokenIdError(
                "Range does not end at check-out", {"booking_id": booking_id}
            )

        for token_id in range(from_id, to_id + 1):
            del self.booking_ids[token_id]
        del self.bookings[booking_id]
        return booking_id
