"""
Data access for users, operators, buses, bookings and transactions

Every method runs inside the caller's Session and never commits; the
transaction boundary belongs to BookingService and the menus.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ussd_ticketing.models import User, Operator, Bus, Booking, Transaction
from ussd_ticketing.bookings.schemas import BookingStatus, BookingDetails


class BookingRepository:
    """Typed CRUD against the ticketing schema"""

    def __init__(self, db: Session):
        self.db = db

    # Users
    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        return self.db.query(User).filter(User.phone_number == phone_number).first()

    def get_or_create_user(self, phone_number: str) -> User:
        """Get user by phone number or insert a new one"""
        user = self.get_user_by_phone(phone_number)
        if user is None:
            user = User(phone_number=phone_number)
            self.db.add(user)
            self.db.flush()
        return user

    # Operators
    def list_operators(self) -> List[Operator]:
        return self.db.query(Operator).order_by(Operator.id).all()

    # Buses
    def get_bus(self, bus_id: int, for_update: bool = False) -> Optional[Bus]:
        """Get bus by ID, optionally taking a row lock"""
        query = self.db.query(Bus).filter(Bus.id == bus_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_bookable_buses(self) -> List[Bus]:
        """Buses with seats left, earliest departure first"""
        return (
            self.db.query(Bus)
            .filter(Bus.available_seats > 0)
            .order_by(Bus.departure_time.asc(), Bus.id.asc())
            .all()
        )

    def list_operator_buses(self, operator_id: int, start: datetime, end: datetime) -> List[Bus]:
        """Operator's buses departing in [start, end), earliest first"""
        return (
            self.db.query(Bus)
            .filter(
                Bus.operator_id == operator_id,
                Bus.departure_time >= start,
                Bus.departure_time < end,
            )
            .order_by(Bus.departure_time.asc(), Bus.id.asc())
            .all()
        )

    def decrement_available_seats(self, bus_id: int) -> bool:
        """Take one seat if any is left. Returns False when the bus was already full."""
        updated = (
            self.db.query(Bus)
            .filter(Bus.id == bus_id, Bus.available_seats > 0)
            .update({Bus.available_seats: Bus.available_seats - 1}, synchronize_session=False)
        )
        return updated == 1

    def increment_available_seats(self, bus_id: int) -> bool:
        """Give one seat back, never above total_seats"""
        updated = (
            self.db.query(Bus)
            .filter(Bus.id == bus_id, Bus.available_seats < Bus.total_seats)
            .update({Bus.available_seats: Bus.available_seats + 1}, synchronize_session=False)
        )
        return updated == 1

    # Bookings
    def get_booking(self, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        query = self.db.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_booking_by_code(self, code: str, for_update: bool = False) -> Optional[Booking]:
        query = self.db.query(Booking).filter(Booking.booking_code == code)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_booking_details(self, code: str) -> Optional[BookingDetails]:
        """Booking joined with its bus, for display"""
        row = (
            self.db.query(
                Booking.booking_code,
                Booking.status,
                Booking.seat_number,
                Booking.boarded,
                Bus.route,
                Bus.departure_time,
            )
            .join(Bus, Bus.id == Booking.bus_id)
            .filter(Booking.booking_code == code)
            .first()
        )
        if row is None:
            return None
        return BookingDetails(
            booking_code=row.booking_code,
            status=row.status,
            seat_number=row.seat_number,
            boarded=bool(row.boarded),
            route=row.route,
            departure_time=row.departure_time,
        )

    def booking_code_exists(self, code: str) -> bool:
        return self.db.query(Booking.id).filter(Booking.booking_code == code).first() is not None

    def seat_is_taken(self, bus_id: int, seat_number: int) -> bool:
        """True if a pending or confirmed booking holds the seat"""
        return (
            self.db.query(Booking.id)
            .filter(
                Booking.bus_id == bus_id,
                Booking.seat_number == seat_number,
                Booking.status != BookingStatus.CANCELLED.value,
            )
            .first()
            is not None
        )

    def max_seat_number(self, bus_id: int) -> int:
        """Highest seat number ever booked on the bus, 0 if none"""
        value = self.db.query(func.max(Booking.seat_number)).filter(Booking.bus_id == bus_id).scalar()
        return value or 0

    def add_booking(
        self,
        bus_id: int,
        seat_number: int,
        booking_code: str,
        status: BookingStatus,
        user_id: Optional[int] = None,
    ) -> Booking:
        booking = Booking(
            user_id=user_id,
            bus_id=bus_id,
            seat_number=seat_number,
            booking_code=booking_code,
            status=status.value,
            boarded=False,
        )
        self.db.add(booking)
        self.db.flush()
        return booking

    # Transactions
    def add_transaction(self, booking_id: int, amount: Decimal, payment_method: str, status: str) -> Transaction:
        """Append a payment record"""
        transaction = Transaction(
            booking_id=booking_id,
            amount=amount,
            payment_method=payment_method,
            status=status,
        )
        self.db.add(transaction)
        self.db.flush()
        return transaction
