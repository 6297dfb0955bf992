from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

class TransactionStatus(str, Enum):
    """Payment transaction status enumeration"""
    COMPLETED = "completed"

# Read models
class BusSnapshot(BaseModel):
    """Bus row as captured when a menu list was shown"""
    id: int
    route: str
    operator: Optional[str] = None
    departure_time: datetime
    total_seats: int
    available_seats: int
    price: Decimal

    class Config:
        from_attributes = True

class BookingDetails(BaseModel):
    """Booking joined with the bus it is for"""
    booking_code: str
    status: BookingStatus
    seat_number: int
    boarded: bool = False
    route: str
    departure_time: datetime

# Errors
class BookingError(ValueError):
    """Base class for booking rule violations reported back to the caller"""

class InvalidSeatError(BookingError):
    """Seat number outside 1..total_seats, or the bus no longer exists"""

class SeatTakenError(BookingError):
    """Another live booking already holds the seat"""

class NoSeatsAvailableError(BookingError):
    """Bus has no seats left to sell"""

class BookingNotFoundError(BookingError):
    """No booking with the given code"""

class BookingAlreadyCancelledError(BookingError):
    """Booking was cancelled before"""

class BookingNotConfirmedError(BookingError):
    """Operation requires a confirmed booking"""

class AlreadyBoardedError(BookingError):
    """Passenger was already marked as boarded"""

class BookingNotPendingError(BookingError):
    """Booking is not awaiting payment"""

class BookingCodeExhaustedError(BookingError):
    """Could not generate an unused booking code"""
