"""
Customer USSD menu

Interprets the accumulated input trail against the session's current state:
list buses, book a seat and pay, look a booking up, or cancel it.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ussd_ticketing.bookings.repository import BookingRepository
from ussd_ticketing.bookings.service import BookingService
from ussd_ticketing.bookings.schemas import (
    BusSnapshot, BookingError, InvalidSeatError, SeatTakenError, NoSeatsAvailableError,
    BookingNotFoundError, BookingAlreadyCancelledError, BookingNotPendingError,
)
from ussd_ticketing.sessions.schemas import (
    CustomerSession, Listing, AwaitingBus, AwaitingSeat, AwaitingPayment,
)
from ussd_ticketing.ussd.replies import (
    UssdReply, MAIN_MENU, con, end, parse_input, parse_int, is_reset, bus_list, booking_summary,
)

logger = logging.getLogger(__name__)

MENU_LIST_BUSES = "1"
MENU_BOOK = "2"
MENU_CHECK = "3"
MENU_CANCEL = "4"

PAY_SANDBOX = "1"
PAY_AT_AGENT = "2"


class CustomerMenu:
    """State machine behind the customer USSD code"""

    def __init__(self, db: Session, booking_service: Optional[BookingService] = None):
        self.db = db
        self.repo = BookingRepository(db)
        self.bookings = booking_service or BookingService(db)

    def handle(self, session: CustomerSession, phone_number: str, text: str) -> UssdReply:
        parts = parse_input(text)

        if is_reset(text, parts):
            session.reset()
            return MAIN_MENU

        user_id = self._ensure_user(phone_number)
        if not parts:
            return MAIN_MENU
        first, last = parts[0], parts[-1]

        if parts == [MENU_LIST_BUSES]:
            return self._list_buses(session)

        if parts == [MENU_BOOK]:
            return self._start_booking(session)

        if first == MENU_BOOK:
            reply = self._continue_booking(session, parts, user_id)
            if reply is not None:
                return reply

        if parts == [MENU_CHECK]:
            return con("Enter booking code:\n0. Back")

        if first == MENU_CHECK and len(parts) == 2:
            return self._check_booking(last)

        if parts == [MENU_CANCEL]:
            return con("Enter booking code to cancel:\n0. Back")

        if first == MENU_CANCEL and len(parts) == 2:
            return self._cancel_booking(last)

        return MAIN_MENU

    def _ensure_user(self, phone_number: str) -> Optional[int]:
        """Create the caller's user row on first contact"""
        if not phone_number:
            return None

        try:
            user = self.repo.get_or_create_user(phone_number)
            user_id = user.id
            self.db.commit()
        except IntegrityError:
            # concurrent first contact from the same phone
            self.db.rollback()
            user_id = self.repo.get_user_by_phone(phone_number).id
        return user_id

    def _load_buses(self) -> List[BusSnapshot]:
        return [BusSnapshot.model_validate(bus) for bus in self.repo.list_bookable_buses()]

    def _list_buses(self, session: CustomerSession) -> UssdReply:
        buses = self._load_buses()
        session.state = Listing(buses=buses)
        return bus_list(buses)

    def _start_booking(self, session: CustomerSession) -> UssdReply:
        session.state = AwaitingBus(buses=self._load_buses())
        return con("Enter Bus Number (e.g., 1):\n0. Back")

    def _continue_booking(self, session: CustomerSession, parts: List[str], user_id: Optional[int]) -> Optional[UssdReply]:
        state = session.state
        last = parts[-1]

        if isinstance(state, AwaitingBus) and len(parts) == 2:
            return self._choose_bus(session, state, last)

        if isinstance(state, AwaitingSeat) and len(parts) == 3:
            return self._choose_seat(session, state, last, user_id)

        if isinstance(state, AwaitingPayment) and len(parts) == 4:
            return self._pay(state, last)

        return None

    def _choose_bus(self, session: CustomerSession, state: AwaitingBus, token: str) -> UssdReply:
        index = parse_int(token)
        if index is None or not 1 <= index <= len(state.buses):
            return end("Invalid selection.")

        bus = state.buses[index - 1]
        session.state = AwaitingSeat(bus=bus)
        return con(f"Enter Seat Number (1-{bus.available_seats}):\n0. Back")

    def _choose_seat(self, session: CustomerSession, state: AwaitingSeat, token: str, user_id: Optional[int]) -> UssdReply:
        seat_number = parse_int(token)
        if seat_number is None:
            return end("Invalid seat number.")

        try:
            booking = self.bookings.commit_seat(state.bus.id, seat_number, user_id=user_id)
        except InvalidSeatError:
            return end("Invalid seat number.")
        except SeatTakenError:
            return end("Seat already booked.")
        except NoSeatsAvailableError:
            return end("No seats available.")
        except (BookingError, SQLAlchemyError):
            logger.exception(f"Seat commit failed for session {session.key}")
            return end("Booking failed. Try again.")

        session.state = AwaitingPayment(
            bus_id=state.bus.id,
            booking_id=booking.id,
            booking_code=booking.booking_code,
        )
        return con(
            f"Booking created! Code: {booking.booking_code}\n"
            "Proceed to payment:\n"
            "1. Sandbox Pay\n"
            "2. Pay at Agent\n"
            "0. Back"
        )

    def _pay(self, state: AwaitingPayment, choice: str) -> Optional[UssdReply]:
        if choice == PAY_SANDBOX:
            try:
                self.bookings.confirm_payment(state.booking_id)
            except BookingAlreadyCancelledError:
                return end("Booking was cancelled.")
            except BookingNotPendingError:
                return end(f"Payment already received. Your booking code: {state.booking_code}")
            except (BookingError, SQLAlchemyError):
                logger.exception(f"Payment failed for booking {state.booking_code}")
                return end("Payment failed. Try again.")
            return end(f"Payment confirmed. Your booking code: {state.booking_code}")

        if choice == PAY_AT_AGENT:
            return end(f"Visit an agent with your code: {state.booking_code}")

        return None

    def _check_booking(self, code: str) -> UssdReply:
        details = self.bookings.find_booking(code)
        if details is None:
            return end("Booking not found.")
        return booking_summary(details)

    def _cancel_booking(self, code: str) -> UssdReply:
        try:
            self.bookings.cancel_booking(code)
        except BookingNotFoundError:
            return end("Booking not found.")
        except BookingAlreadyCancelledError:
            return end("Already cancelled.")
        except SQLAlchemyError:
            logger.exception(f"Cancel failed for booking {code}")
            return end("Cancel failed.")
        return end("Booking cancelled.")
