"""
Operator PIN authentication for the USSD operator menu
"""
import logging
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Optional

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ussd_ticketing.config import settings
from ussd_ticketing.models import Operator
from ussd_ticketing.bookings.repository import BookingRepository

logger = logging.getLogger(__name__)

pin_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_pin(pin: str) -> str:
    return pin_context.hash(pin)


def verify_pin(pin: str, pin_hash: str) -> bool:
    return pin_context.verify(pin, pin_hash)


def authenticate_operator(db: Session, pin: str) -> Optional[Operator]:
    """Find the operator whose PIN matches. PINs are stored hashed, so every
    operator's hash is checked in turn."""
    pin = (pin or "").strip()
    if not pin:
        return None

    for operator in BookingRepository(db).list_operators():
        if verify_pin(pin, operator.pin_hash):
            return operator
    return None


class PinAttemptLimiter:
    """Counts failed PIN attempts inside a sliding window.

    Failures are tracked per session key and across all keys, so rotating
    the gateway session id does not get around the lockout. Keys with no
    recent failures are swept once per window.
    """

    def __init__(
        self,
        max_attempts: int = settings.PIN_MAX_ATTEMPTS,
        window: timedelta = timedelta(minutes=settings.PIN_LOCKOUT_MINUTES),
        global_max_attempts: int = settings.PIN_GLOBAL_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.max_attempts = max_attempts
        self.global_max_attempts = global_max_attempts
        self.window = window
        self._clock = clock
        self._failures: Dict[str, List[datetime]] = {}
        self._global_failures: Deque[datetime] = deque()
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Number of session keys with tracked failures"""
        with self._lock:
            return len(self._failures)

    def is_locked(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            if self._recent_global(now) >= self.global_max_attempts:
                return True
            return len(self._recent(key, now)) >= self.max_attempts

    def record_failure(self, key: str) -> int:
        """Register a failed attempt. Returns the number of recent failures for the key."""
        with self._lock:
            now = self._clock()
            self._sweep_if_due(now)

            failures = self._recent(key, now)
            failures.append(now)
            self._failures[key] = failures
            self._global_failures.append(now)

            if self._recent_global(now) == self.global_max_attempts:
                logger.warning(f"Operator PIN checks suspended after {self.global_max_attempts} failures")
            return len(failures)

    def reset(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)

    def _recent(self, key: str, now: datetime) -> List[datetime]:
        cutoff = now - self.window
        failures = [at for at in self._failures.get(key, []) if at > cutoff]
        if failures:
            self._failures[key] = failures
        else:
            self._failures.pop(key, None)
        return failures

    def _recent_global(self, now: datetime) -> int:
        cutoff = now - self.window
        while self._global_failures and self._global_failures[0] <= cutoff:
            self._global_failures.popleft()
        return len(self._global_failures)

    def _sweep_if_due(self, now: datetime) -> None:
        if now - self._last_sweep < self.window:
            return

        cutoff = now - self.window
        stale = [key for key, failures in self._failures.items() if failures[-1] <= cutoff]
        for key in stale:
            del self._failures[key]
        self._last_sweep = now


pin_limiter = PinAttemptLimiter()


def get_pin_limiter() -> PinAttemptLimiter:
    """FastAPI dependency for the shared PIN attempt limiter"""
    return pin_limiter
