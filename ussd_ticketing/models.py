from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, ForeignKey, Numeric, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ussd_ticketing.database import Base

# ================================
# Users & Operators
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String(32), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="user")

class Operator(Base):
    __tablename__ = "operators"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    pin_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    buses = relationship("Bus", back_populates="operator_ref")

# ================================
# Buses
# ================================
class Bus(Base):
    __tablename__ = "buses"
    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_bus_available_seats_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="check_bus_available_seats_le_total"),
    )

    id = Column(Integer, primary_key=True, index=True)
    route = Column(String(255), nullable=False)
    operator_id = Column(Integer, ForeignKey("operators.id"), index=True)
    operator = Column(String(255))  # display name shown in listings
    departure_time = Column(DateTime, nullable=False, index=True)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    operator_ref = relationship("Operator", back_populates="buses")
    bookings = relationship("Booking", back_populates="bus")

# ================================
# Bookings & Payments
# ================================
class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # At most one live booking per seat; cancelled rows free the seat
        Index(
            "uq_bookings_live_seat",
            "bus_id",
            "seat_number",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # NULL for walk-ins
    bus_id = Column(Integer, ForeignKey("buses.id"), nullable=False, index=True)
    seat_number = Column(Integer, nullable=False)
    booking_code = Column(String(16), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    boarded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="bookings")
    bus = relationship("Bus", back_populates="bookings")
    transactions = relationship("Transaction", back_populates="booking")

class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="transactions")
