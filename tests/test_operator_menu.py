"""
Tests for the operator USSD state machine
"""

from datetime import datetime, timedelta

import pytest

from ussd_ticketing.models import Booking, Bus
from ussd_ticketing.bookings.schemas import BookingStatus
from ussd_ticketing.bookings.service import BookingService
from ussd_ticketing.sessions.schemas import OperatorSession, OperatorStep, WalkInBusChoice
from ussd_ticketing.ussd.auth import PinAttemptLimiter, hash_pin, verify_pin, authenticate_operator
from ussd_ticketing.ussd.operator import OperatorMenuHandler

from conftest import NOW, OPERATOR_PIN


@pytest.fixture
def session():
    return OperatorSession(key="ops-session")


@pytest.fixture
def limiter():
    return PinAttemptLimiter(max_attempts=3)


@pytest.fixture
def menu(db_session, limiter):
    return OperatorMenuHandler(db_session, limiter=limiter, now=NOW)


def dial(menu, session, text):
    return str(menu.handle(session, text))


@pytest.fixture
def logged_in(menu, session, buses):
    dial(menu, session, OPERATOR_PIN)
    return session


class TestPinAuth:
    """Tests for operator PIN login"""

    def test_pin_is_hashed(self):
        pin_hash = hash_pin("1234")
        assert pin_hash != "1234"
        assert verify_pin("1234", pin_hash)
        assert not verify_pin("4321", pin_hash)

    def test_authenticate_operator(self, db_session, operator):
        assert authenticate_operator(db_session, " 1234 ").id == operator.id
        assert authenticate_operator(db_session, "0000") is None
        assert authenticate_operator(db_session, "") is None

    def test_empty_input_prompts_for_pin(self, menu, session):
        assert dial(menu, session, "") == "CON Enter operator PIN:"

    def test_separator_only_input_is_a_wrong_pin(self, menu, session, operator):
        assert dial(menu, session, "*") == "CON Invalid PIN. Try again:\n0. Back"
        assert not session.is_authenticated

    def test_wrong_pin_reprompts(self, menu, session, operator):
        reply = dial(menu, session, "9999")

        assert reply == "CON Invalid PIN. Try again:\n0. Back"
        assert not session.is_authenticated
        assert session.step == OperatorStep.PIN

    def test_correct_pin_after_wrong_one(self, menu, session, operator):
        dial(menu, session, "9999")
        reply = dial(menu, session, "9999*1234")

        assert reply.startswith("CON Operator Menu")
        assert "5. Add walk-in (cash)" in reply
        assert session.op_id == operator.id
        assert session.op_name == "Nile Express"
        assert session.step == OperatorStep.MENU

    def test_lockout_after_repeated_failures(self, menu, session, operator):
        for attempt in ("1111", "1111*2222", "1111*2222*3333"):
            assert dial(menu, session, attempt).startswith("CON Invalid PIN")

        reply = dial(menu, session, "1111*2222*3333*1234")
        assert reply == "END Too many attempts. Try again later."
        assert not session.is_authenticated

    def test_lockout_spans_session_keys(self, db_session, operator):
        """A new gateway session id per attempt still hits the lockout"""
        limiter = PinAttemptLimiter(max_attempts=3, global_max_attempts=4)
        menu = OperatorMenuHandler(db_session, limiter=limiter, now=NOW)

        for n in range(4):
            reply = dial(menu, OperatorSession(key=f"rotating-{n}"), "1111")
            assert reply.startswith("CON Invalid PIN")

        reply = dial(menu, OperatorSession(key="rotating-new"), OPERATOR_PIN)
        assert reply == "END Too many attempts. Try again later."

    def test_success_clears_failures(self, menu, session, operator, limiter):
        dial(menu, session, "1111")
        dial(menu, session, "1111*1234")
        assert not limiter.is_locked(session.key)
        assert limiter.record_failure(session.key) == 1

    def test_logout_clears_identity(self, menu, logged_in):
        assert dial(menu, logged_in, "1234*0") == "CON Enter operator PIN:"
        assert not logged_in.is_authenticated


class FakeClock:
    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class TestPinAttemptLimiter:
    """Tests for the PIN failure window"""

    def test_rotating_keys_trip_the_global_limit(self):
        limiter = PinAttemptLimiter(max_attempts=5, global_max_attempts=10, clock=FakeClock())

        for n in range(10):
            assert not limiter.is_locked(f"s{n}")
            assert limiter.record_failure(f"s{n}") == 1

        assert limiter.is_locked("never-seen")

    def test_global_limit_lifts_after_window(self):
        clock = FakeClock()
        limiter = PinAttemptLimiter(max_attempts=5, window=timedelta(minutes=15), global_max_attempts=3, clock=clock)
        for n in range(3):
            limiter.record_failure(f"s{n}")
        assert limiter.is_locked("s9")

        clock.advance(minutes=16)
        assert not limiter.is_locked("s9")

    def test_stale_keys_are_swept(self):
        clock = FakeClock()
        limiter = PinAttemptLimiter(window=timedelta(minutes=15), global_max_attempts=1000, clock=clock)
        for n in range(99):
            limiter.record_failure(f"s{n}")
        assert len(limiter) == 99

        clock.advance(minutes=16)
        limiter.record_failure("late")

        assert len(limiter) == 1


class TestOperatorMenu:
    """Tests for the authenticated operator menu"""

    def test_todays_buses(self, menu, logged_in, bus_factory, operator):
        bus_factory(operator, route="Juba - Bor", departure_time=NOW + timedelta(days=8))
        bus_factory(route="Other operator", departure_time=NOW + timedelta(hours=1))

        reply = dial(menu, logged_in, "1234*1")

        assert reply == (
            "END Today's buses:\n"
            "1. Juba - Yei | 2030-01-01 09:00 | 5/5\n"
            "2. Juba - Nimule | 2030-01-02 06:00 | 10/10"
        )

    def test_no_buses(self, db_session, session, operator, limiter):
        menu = OperatorMenuHandler(db_session, limiter=limiter, now=NOW)
        dial(menu, session, OPERATOR_PIN)
        assert dial(menu, session, "1234*1") == "END No buses today."
        assert dial(menu, session, "1234*5") == "CON No buses today.\n0. Back"
        assert session.step == OperatorStep.MENU

    def test_seats_left(self, menu, logged_in, db_session, buses):
        BookingService(db_session).commit_walk_in(buses[0].id)

        reply = dial(menu, logged_in, "1234*4")

        assert reply == "END Seats left today:\n1. Juba - Yei: 4 left\n2. Juba - Nimule: 10 left"

    def test_unknown_choice_redisplays_menu(self, menu, logged_in):
        assert dial(menu, logged_in, "1234*9").startswith("CON Operator Menu")


class TestVerifyAndBoard:
    """Tests for booking verification and boarding"""

    def test_verify_booking(self, menu, logged_in, db_session, buses):
        booking = BookingService(db_session).commit_seat(buses[0].id, 2)
        code = booking.booking_code

        assert dial(menu, logged_in, "1234*2") == "CON Enter booking code to verify:\n0. Back"
        reply = dial(menu, logged_in, f"1234*2*{code}")

        assert reply == f"END Code {code}\nJuba - Yei @ 2030-01-01 09:00\nSeat 2\nStatus PENDING"

    def test_verify_unknown(self, menu, logged_in):
        dial(menu, logged_in, "1234*2")
        assert dial(menu, logged_in, "1234*2*NOPE00") == "END Booking not found."

    def test_mark_boarded(self, menu, logged_in, db_session, buses):
        walk_in = BookingService(db_session).commit_walk_in(buses[0].id)
        code = walk_in.booking_code

        assert dial(menu, logged_in, "1234*3") == "CON Enter booking code to mark boarded:\n0. Back"
        assert dial(menu, logged_in, f"1234*3*{code}") == "END Marked as boarded ✅"
        assert dial(menu, logged_in, f"1234*3*{code}") == "END Already marked boarded."

    def test_mark_boarded_requires_confirmation(self, menu, logged_in, db_session, buses):
        booking = BookingService(db_session).commit_seat(buses[0].id, 1)
        booking_id = booking.id
        code = booking.booking_code

        dial(menu, logged_in, "1234*3")
        assert dial(menu, logged_in, f"1234*3*{code}") == "END Not confirmed yet."

        db_session.expire_all()
        assert db_session.get(Booking, booking_id).boarded is False

    def test_mark_boarded_unknown(self, menu, logged_in):
        dial(menu, logged_in, "1234*3")
        assert dial(menu, logged_in, "1234*3*NOPE00") == "END Booking not found."


class TestWalkIn:
    """Tests for walk-in cash sales"""

    def test_walk_in_sale(self, menu, logged_in, db_session, buses):
        reply = dial(menu, logged_in, "1234*5")
        assert reply == (
            "CON Choose bus for walk-in:\n"
            "1. Juba - Yei | 2030-01-01 09:00 | left 5\n"
            "2. Juba - Nimule | 2030-01-02 06:00 | left 10\n"
            "0. Back"
        )
        assert isinstance(logged_in.state, WalkInBusChoice)

        reply = dial(menu, logged_in, "1234*5*2")

        assert reply.startswith("END Walk-in added. Seat 1. Code WALK")
        db_session.expire_all()
        booking = db_session.query(Booking).filter(Booking.bus_id == buses[1].id).one()
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.user_id is None
        assert db_session.get(Bus, buses[1].id).available_seats == 9

    def test_walk_in_invalid_selection(self, menu, logged_in):
        dial(menu, logged_in, "1234*5")
        assert dial(menu, logged_in, "1234*5*7") == "END Invalid selection."

    def test_walk_in_sold_out(self, menu, logged_in, db_session, buses):
        dial(menu, logged_in, "1234*5")
        yei = db_session.get(Bus, buses[0].id)
        yei.available_seats = 0
        db_session.commit()

        assert dial(menu, logged_in, "1234*5*1") == "END No seats left."


class TestUnsupported:
    def test_unsupported_option_is_terminal(self, menu, logged_in):
        """Operator flows do not fall back to the menu once past it"""
        logged_in.state = WalkInBusChoice(buses=[])
        assert dial(menu, logged_in, "1234") == "END Unsupported option."
