"""
Per-step session state for the USSD menus

Each step owns exactly the data it needs; a session holds one state object,
and its step tag is read off that object rather than stored separately.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Literal, Optional, Union
import time

from pydantic import BaseModel

from ussd_ticketing.bookings.schemas import BusSnapshot


class CustomerStep(IntEnum):
    """Customer menu steps"""
    MAIN_MENU = 0
    LISTING = 1
    AWAITING_BUS = 2
    AWAITING_SEAT = 3
    AWAITING_PAYMENT = 4


class OperatorStep(IntEnum):
    """Operator menu steps"""
    PIN = 0
    MENU = 1
    WALK_IN = 5
    VERIFY = 20
    BOARD = 30


# Customer states
class MainMenu(BaseModel):
    step: Literal[CustomerStep.MAIN_MENU] = CustomerStep.MAIN_MENU

class Listing(BaseModel):
    step: Literal[CustomerStep.LISTING] = CustomerStep.LISTING
    buses: List[BusSnapshot] = []

class AwaitingBus(BaseModel):
    step: Literal[CustomerStep.AWAITING_BUS] = CustomerStep.AWAITING_BUS
    buses: List[BusSnapshot]  # captured when the prompt was shown

class AwaitingSeat(BaseModel):
    step: Literal[CustomerStep.AWAITING_SEAT] = CustomerStep.AWAITING_SEAT
    bus: BusSnapshot

class AwaitingPayment(BaseModel):
    step: Literal[CustomerStep.AWAITING_PAYMENT] = CustomerStep.AWAITING_PAYMENT
    bus_id: int
    booking_id: int
    booking_code: str

CustomerState = Union[MainMenu, Listing, AwaitingBus, AwaitingSeat, AwaitingPayment]


# Operator states
class PinPrompt(BaseModel):
    step: Literal[OperatorStep.PIN] = OperatorStep.PIN

class OperatorMenu(BaseModel):
    step: Literal[OperatorStep.MENU] = OperatorStep.MENU

class WalkInBusChoice(BaseModel):
    step: Literal[OperatorStep.WALK_IN] = OperatorStep.WALK_IN
    buses: List[BusSnapshot]

class VerifyBooking(BaseModel):
    step: Literal[OperatorStep.VERIFY] = OperatorStep.VERIFY

class MarkBoarded(BaseModel):
    step: Literal[OperatorStep.BOARD] = OperatorStep.BOARD

OperatorState = Union[PinPrompt, OperatorMenu, WalkInBusChoice, VerifyBooking, MarkBoarded]


@dataclass
class CustomerSession:
    """Conversation state for one customer session id"""
    key: str
    state: CustomerState = field(default_factory=MainMenu)
    last_active: float = field(default_factory=time.monotonic)

    @property
    def step(self) -> CustomerStep:
        return self.state.step

    def reset(self) -> None:
        self.state = MainMenu()


@dataclass
class OperatorSession:
    """Conversation state for one operator session id, plus who is logged in"""
    key: str
    state: OperatorState = field(default_factory=PinPrompt)
    last_active: float = field(default_factory=time.monotonic)
    op_id: Optional[int] = None
    op_name: Optional[str] = None

    @property
    def step(self) -> OperatorStep:
        return self.state.step

    @property
    def is_authenticated(self) -> bool:
        return self.op_id is not None

    def login(self, op_id: int, op_name: str) -> None:
        self.op_id = op_id
        self.op_name = op_name
        self.state = OperatorMenu()

    def reset(self) -> None:
        """Log out and return to the PIN prompt"""
        self.state = PinPrompt()
        self.op_id = None
        self.op_name = None
