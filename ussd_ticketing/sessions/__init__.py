"""
USSD Sessions Module

- schemas.py: step enums and the per-step state carried between requests
- store.py: in-memory session store with inactivity expiry and per-key locking
"""

from .store import SessionStore, get_customer_sessions, get_operator_sessions
from .schemas import (
    CustomerStep, OperatorStep, CustomerSession, OperatorSession,
    MainMenu, Listing, AwaitingBus, AwaitingSeat, AwaitingPayment,
    PinPrompt, OperatorMenu, WalkInBusChoice, VerifyBooking, MarkBoarded,
)

__all__ = [
    "SessionStore",
    "get_customer_sessions",
    "get_operator_sessions",
    "CustomerStep",
    "OperatorStep",
    "CustomerSession",
    "OperatorSession",
    "MainMenu",
    "Listing",
    "AwaitingBus",
    "AwaitingSeat",
    "AwaitingPayment",
    "PinPrompt",
    "OperatorMenu",
    "WalkInBusChoice",
    "VerifyBooking",
    "MarkBoarded",
]
