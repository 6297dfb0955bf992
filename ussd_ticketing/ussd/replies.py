"""
USSD reply type and screen formatting
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List

from ussd_ticketing.config import settings
from ussd_ticketing.bookings.schemas import BusSnapshot, BookingDetails


class ReplyKind(str, Enum):
    """Leading tag telling the gateway whether to keep the session open"""
    CON = "CON"
    END = "END"


@dataclass(frozen=True)
class UssdReply:
    kind: ReplyKind
    message: str

    @property
    def terminal(self) -> bool:
        return self.kind == ReplyKind.END

    def __str__(self) -> str:
        return f"{self.kind.value} {self.message}"


def con(message: str) -> UssdReply:
    return UssdReply(ReplyKind.CON, message)


def end(message: str) -> UssdReply:
    return UssdReply(ReplyKind.END, message)


def parse_input(text: str) -> List[str]:
    """Split the accumulated input trail into its non-empty tokens"""
    return [part for part in (text or "").split(settings.INPUT_SEPARATOR) if part]


def is_reset(text: str, parts: List[str]) -> bool:
    """Empty input or a trailing back/exit marker restarts the menu"""
    return text == "" or (parts[-1] if parts else "") == settings.RESET_MARKER


def parse_int(token: str):
    try:
        return int(token.strip())
    except (ValueError, AttributeError):
        return None


# Date formats
def customer_datetime(value: datetime) -> str:
    return value.strftime("%d/%m/%Y, %H:%M")


def operator_datetime(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


# Customer screens
MAIN_MENU = con(
    "Welcome to Bus Ticketing\n"
    "1. View Bus Schedules\n"
    "2. Book Ticket\n"
    "3. Check Booking\n"
    "4. Cancel Booking"
)


def bus_list(buses: List[BusSnapshot]) -> UssdReply:
    if not buses:
        return con("No buses available right now.\n0. Back")

    lines = ["Available Buses:"]
    for index, bus in enumerate(buses, start=1):
        lines.append(
            f"{index}. {bus.route} | {customer_datetime(bus.departure_time)} | "
            f"{bus.available_seats} seats | {bus.price} {settings.CURRENCY}"
        )
    lines.append("0. Back")
    return con("\n".join(lines))


def booking_summary(details: BookingDetails) -> UssdReply:
    return end(
        f"Code: {details.booking_code}\n"
        f"Route: {details.route}\n"
        f"Seat: {details.seat_number}\n"
        f"When: {customer_datetime(details.departure_time)}\n"
        f"Status: {details.status.value}"
    )


# Operator screens
PIN_PROMPT = con("Enter operator PIN:")

OPERATOR_MENU = con(
    "Operator Menu\n"
    "1. Today's buses\n"
    "2. Verify booking\n"
    "3. Mark boarded\n"
    "4. Seats left\n"
    "5. Add walk-in (cash)\n"
    "0. Logout"
)


def operator_bus_list(buses: List[BusSnapshot]) -> UssdReply:
    if not buses:
        return end("No buses today.")

    lines = ["Today's buses:"]
    for index, bus in enumerate(buses, start=1):
        lines.append(
            f"{index}. {bus.route} | {operator_datetime(bus.departure_time)} | "
            f"{bus.available_seats}/{bus.total_seats}"
        )
    return end("\n".join(lines))


def seats_left_list(buses: List[BusSnapshot]) -> UssdReply:
    if not buses:
        return end("No buses today.")

    lines = ["Seats left today:"]
    for index, bus in enumerate(buses, start=1):
        lines.append(f"{index}. {bus.route}: {bus.available_seats} left")
    return end("\n".join(lines))


def walk_in_bus_list(buses: List[BusSnapshot]) -> UssdReply:
    if not buses:
        return con("No buses today.\n0. Back")

    lines = ["Choose bus for walk-in:"]
    for index, bus in enumerate(buses, start=1):
        lines.append(
            f"{index}. {bus.route} | {operator_datetime(bus.departure_time)} | "
            f"left {bus.available_seats}"
        )
    lines.append("0. Back")
    return con("\n".join(lines))


def booking_verification(details: BookingDetails) -> UssdReply:
    return end(
        f"Code {details.booking_code}\n"
        f"{details.route} @ {operator_datetime(details.departure_time)}\n"
        f"Seat {details.seat_number}\n"
        f"Status {details.status.value.upper()}"
    )
