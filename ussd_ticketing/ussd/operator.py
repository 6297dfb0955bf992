"""
Operator USSD menu

PIN-gated menu for bus operators: list upcoming buses, verify a passenger's
booking, mark it boarded, and sell walk-in seats for cash.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ussd_ticketing.config import settings
from ussd_ticketing.bookings.repository import BookingRepository
from ussd_ticketing.bookings.service import BookingService
from ussd_ticketing.bookings.schemas import (
    BusSnapshot, BookingError, NoSeatsAvailableError, BookingNotFoundError,
    BookingNotConfirmedError, AlreadyBoardedError,
)
from ussd_ticketing.sessions.schemas import (
    OperatorSession, OperatorMenu, WalkInBusChoice, VerifyBooking, MarkBoarded,
)
from ussd_ticketing.ussd.auth import PinAttemptLimiter, authenticate_operator, pin_limiter
from ussd_ticketing.ussd.replies import (
    UssdReply, PIN_PROMPT, OPERATOR_MENU, con, end, parse_input, parse_int, is_reset,
    operator_bus_list, seats_left_list, walk_in_bus_list, booking_verification,
)

logger = logging.getLogger(__name__)


class OperatorMenuHandler:
    """State machine behind the operator USSD code"""

    def __init__(
        self,
        db: Session,
        booking_service: Optional[BookingService] = None,
        limiter: Optional[PinAttemptLimiter] = None,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.repo = BookingRepository(db)
        self.bookings = booking_service or BookingService(db)
        self.limiter = limiter or pin_limiter
        self.now = now

    def handle(self, session: OperatorSession, text: str) -> UssdReply:
        parts = parse_input(text)

        if is_reset(text, parts):
            session.reset()
            return PIN_PROMPT

        last = parts[-1].strip() if parts else ""

        if not session.is_authenticated:
            return self._login(session, last)

        state = session.state

        if isinstance(state, OperatorMenu):
            return self._main_menu(session, last)

        if isinstance(state, VerifyBooking) and len(parts) >= 2:
            return self._verify_booking(last)

        if isinstance(state, MarkBoarded) and len(parts) >= 2:
            return self._mark_boarded(last)

        if isinstance(state, WalkInBusChoice) and len(parts) >= 2:
            return self._add_walk_in(session, state, last)

        return end("Unsupported option.")

    def _login(self, session: OperatorSession, pin: str) -> UssdReply:
        if self.limiter.is_locked(session.key):
            logger.warning(f"Operator PIN locked out for session {session.key}")
            return end("Too many attempts. Try again later.")

        operator = authenticate_operator(self.db, pin)
        if operator is None:
            session.reset()
            failures = self.limiter.record_failure(session.key)
            logger.warning(f"Invalid operator PIN for session {session.key} ({failures} recent failures)")
            return con("Invalid PIN. Try again:\n0. Back")

        self.limiter.reset(session.key)
        session.login(operator.id, operator.name)
        logger.info(f"Operator {operator.name} logged in on session {session.key}")
        return OPERATOR_MENU

    def _main_menu(self, session: OperatorSession, choice: str) -> UssdReply:
        if choice == "1":
            return operator_bus_list(self._load_buses(session))

        if choice == "2":
            session.state = VerifyBooking()
            return con("Enter booking code to verify:\n0. Back")

        if choice == "3":
            session.state = MarkBoarded()
            return con("Enter booking code to mark boarded:\n0. Back")

        if choice == "4":
            return seats_left_list(self._load_buses(session))

        if choice == "5":
            buses = self._load_buses(session)
            if buses:
                session.state = WalkInBusChoice(buses=buses)
            return walk_in_bus_list(buses)

        return OPERATOR_MENU

    def _load_buses(self, session: OperatorSession) -> List[BusSnapshot]:
        """Operator's buses departing within the next few days"""
        start = self.now or datetime.now()
        end_at = start + timedelta(days=settings.OPERATOR_BUS_WINDOW_DAYS)
        return [
            BusSnapshot.model_validate(bus)
            for bus in self.repo.list_operator_buses(session.op_id, start, end_at)
        ]

    def _verify_booking(self, code: str) -> UssdReply:
        details = self.bookings.find_booking(code)
        if details is None:
            return end("Booking not found.")
        return booking_verification(details)

    def _mark_boarded(self, code: str) -> UssdReply:
        try:
            self.bookings.mark_boarded(code)
        except BookingNotFoundError:
            return end("Booking not found.")
        except BookingNotConfirmedError:
            return end("Not confirmed yet.")
        except AlreadyBoardedError:
            return end("Already marked boarded.")
        except SQLAlchemyError:
            logger.exception(f"Marking booking {code} boarded failed")
            return end("Error marking boarded.")
        return end("Marked as boarded ✅")

    def _add_walk_in(self, session: OperatorSession, state: WalkInBusChoice, token: str) -> UssdReply:
        index = parse_int(token)
        if index is None or not 1 <= index <= len(state.buses):
            return end("Invalid selection.")

        bus = state.buses[index - 1]
        try:
            booking = self.bookings.commit_walk_in(bus.id)
        except NoSeatsAvailableError:
            return end("No seats left.")
        except (BookingError, SQLAlchemyError):
            logger.exception(f"Walk-in failed on bus {bus.id} for operator {session.op_name}")
            return end("Error adding walk-in.")
        return end(f"Walk-in added. Seat {booking.seat_number}. Code {booking.booking_code} ✅")
