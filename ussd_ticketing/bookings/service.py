import logging
import secrets
import string
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ussd_ticketing.config import settings
from ussd_ticketing.models import Booking, Transaction
from ussd_ticketing.bookings.repository import BookingRepository
from ussd_ticketing.bookings.schemas import (
    BookingStatus, TransactionStatus, BookingDetails,
    InvalidSeatError, SeatTakenError, NoSeatsAvailableError,
    BookingNotFoundError, BookingAlreadyCancelledError, BookingNotConfirmedError,
    BookingNotPendingError, AlreadyBoardedError, BookingCodeExhaustedError,
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_code(length: int, prefix: str = "") -> str:
    """Random upper-case alphanumeric code, e.g. ``7KQ2ZD`` or ``WALK9XA1``"""
    return prefix + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class BookingService:
    """Seat allocation and booking lifecycle.

    Every public method is one transaction: it either commits all of its writes
    or rolls all of them back before re-raising. Seat counts are re-read under a
    row lock on every commit and never taken from a menu's cached bus list.
    """

    def __init__(self, db: Session, code_generator: Optional[Callable[..., str]] = None):
        self.db = db
        self.repo = BookingRepository(db)
        self._generate_code = code_generator or generate_booking_code

    def commit_seat(self, bus_id: int, seat_number: int, user_id: Optional[int] = None) -> Booking:
        """Reserve an explicit seat as a pending booking"""
        try:
            bus = self.repo.get_bus(bus_id, for_update=True)
            if bus is None or not 1 <= seat_number <= bus.total_seats:
                raise InvalidSeatError("Invalid seat number")

            if self.repo.seat_is_taken(bus_id, seat_number):
                raise SeatTakenError("Seat already booked")

            if bus.available_seats <= 0:
                raise NoSeatsAvailableError("No seats available")

            booking = self._insert_booking(
                bus_id=bus_id,
                seat_number=seat_number,
                status=BookingStatus.PENDING,
                user_id=user_id,
                code_length=settings.BOOKING_CODE_LENGTH,
            )
            if not self.repo.decrement_available_seats(bus_id):
                raise NoSeatsAvailableError("No seats available")

            booking_code = booking.booking_code
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Booking {booking_code} created for bus {bus_id} seat {seat_number}")
        return booking

    def commit_walk_in(self, bus_id: int) -> Booking:
        """Sell the next free seat number at the counter, confirmed immediately"""
        try:
            bus = self.repo.get_bus(bus_id, for_update=True)
            if bus is None or bus.available_seats <= 0:
                raise NoSeatsAvailableError("No seats left")

            next_seat = self.repo.max_seat_number(bus_id) + 1
            if next_seat > bus.total_seats:
                raise NoSeatsAvailableError("No seats left")

            booking = self._insert_booking(
                bus_id=bus_id,
                seat_number=next_seat,
                status=BookingStatus.CONFIRMED,
                code_length=settings.WALK_IN_CODE_LENGTH,
                prefix=settings.WALK_IN_CODE_PREFIX,
            )
            if not self.repo.decrement_available_seats(bus_id):
                raise NoSeatsAvailableError("No seats left")

            booking_code = booking.booking_code
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Walk-in {booking_code} added on bus {bus_id} seat {next_seat}")
        return booking

    def confirm_payment(self, booking_id: int) -> Transaction:
        """Charge the bus fare through the sandbox and confirm the booking"""
        try:
            booking = self.repo.get_booking(booking_id, for_update=True)
            if booking is None:
                raise BookingNotFoundError("Booking not found")
            if booking.status == BookingStatus.CANCELLED.value:
                raise BookingAlreadyCancelledError("Already cancelled")
            if booking.status != BookingStatus.PENDING.value:
                raise BookingNotPendingError(f"Booking cannot be paid. Status: {booking.status}")

            amount = Decimal(booking.bus.price)
            status = self._process_payment(booking, amount)
            transaction = self.repo.add_transaction(
                booking_id=booking.id,
                amount=amount,
                payment_method=settings.PAYMENT_METHOD,
                status=status.value,
            )
            booking.status = BookingStatus.CONFIRMED.value
            booking_code = booking.booking_code
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Payment of {amount} recorded for booking {booking_code}")
        return transaction

    def cancel_booking(self, code: str) -> Booking:
        """Cancel by code and give the seat back to the bus"""
        code = normalize_code(code)
        try:
            booking = self.repo.get_booking_by_code(code, for_update=True)
            if booking is None:
                raise BookingNotFoundError("Booking not found")
            if booking.status == BookingStatus.CANCELLED.value:
                raise BookingAlreadyCancelledError("Already cancelled")

            booking.status = BookingStatus.CANCELLED.value
            self.db.flush()
            if not self.repo.increment_available_seats(booking.bus_id):
                logger.warning(f"Bus {booking.bus_id} already at full capacity while cancelling {code}")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Booking {code} cancelled")
        return booking

    def mark_boarded(self, code: str) -> Booking:
        """Flag a confirmed passenger as on board"""
        code = normalize_code(code)
        try:
            booking = self.repo.get_booking_by_code(code, for_update=True)
            if booking is None:
                raise BookingNotFoundError("Booking not found")
            if booking.status != BookingStatus.CONFIRMED.value:
                raise BookingNotConfirmedError("Not confirmed yet")
            if booking.boarded:
                raise AlreadyBoardedError("Already marked boarded")

            booking.boarded = True
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Booking {code} marked boarded")
        return booking

    def find_booking(self, code: str) -> Optional[BookingDetails]:
        return self.repo.get_booking_details(normalize_code(code))

    def _insert_booking(
        self,
        bus_id: int,
        seat_number: int,
        status: BookingStatus,
        code_length: int,
        prefix: str = "",
        user_id: Optional[int] = None,
    ) -> Booking:
        """Insert a booking under a fresh code, retrying on code collisions.

        The unique index on booking_code is the final arbiter; the insert runs
        in a savepoint so a losing race only undoes this one row.
        """
        for _ in range(settings.BOOKING_CODE_MAX_ATTEMPTS):
            code = self._generate_code(code_length, prefix)
            if self.repo.booking_code_exists(code):
                logger.warning(f"Booking code collision on {code}, regenerating")
                continue

            try:
                with self.db.begin_nested():
                    return self.repo.add_booking(
                        bus_id=bus_id,
                        seat_number=seat_number,
                        booking_code=code,
                        status=status,
                        user_id=user_id,
                    )
            except IntegrityError:
                if self.repo.seat_is_taken(bus_id, seat_number):
                    raise SeatTakenError("Seat already booked")
                logger.warning(f"Booking code {code} taken concurrently, regenerating")

        raise BookingCodeExhaustedError("Could not allocate a booking code")

    def _process_payment(self, booking: Booking, amount: Decimal) -> TransactionStatus:
        """Sandbox payment (simplified simulation, always succeeds)"""
        return TransactionStatus.COMPLETED
