"""
Bookings Module

Data access and seat allocation for the bus ticketing service:

- repository.py: typed CRUD over users, operators, buses, bookings and transactions
- service.py: seat commit, walk-in sale, sandbox payment, cancellation and boarding
- schemas.py: status enums, read models and booking errors

Seat commits lock the bus row, re-check capacity and seat occupancy, and roll
back every write when a check fails.
"""

from .repository import BookingRepository
from .service import BookingService, generate_booking_code, normalize_code
from .schemas import (
    BookingStatus, TransactionStatus, BusSnapshot, BookingDetails,
    BookingError, InvalidSeatError, SeatTakenError, NoSeatsAvailableError,
    BookingNotFoundError, BookingAlreadyCancelledError, BookingNotConfirmedError,
    BookingNotPendingError, AlreadyBoardedError, BookingCodeExhaustedError,
)

__all__ = [
    "BookingRepository",
    "BookingService",
    "generate_booking_code",
    "normalize_code",
    "BookingStatus",
    "TransactionStatus",
    "BusSnapshot",
    "BookingDetails",
    "BookingError",
    "InvalidSeatError",
    "SeatTakenError",
    "NoSeatsAvailableError",
    "BookingNotFoundError",
    "BookingAlreadyCancelledError",
    "BookingNotConfirmedError",
    "BookingNotPendingError",
    "AlreadyBoardedError",
    "BookingCodeExhaustedError",
]
