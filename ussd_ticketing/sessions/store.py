"""
In-memory USSD session store

Sessions are keyed by the channel's session id, expire after a period of
inactivity, and are handed out one request at a time per key.
"""
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Generic, Iterator, TypeVar

from ussd_ticketing.config import settings
from ussd_ticketing.sessions.schemas import CustomerSession, OperatorSession

logger = logging.getLogger(__name__)

S = TypeVar("S", CustomerSession, OperatorSession)


class _KeyLock:
    """Per-key mutex with a count of requests holding or waiting on it"""

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class SessionStore(Generic[S]):
    """Thread-safe session map with inactivity expiry.

    Different keys proceed in parallel; requests for the same key are
    serialised by ``locked()``.
    """

    def __init__(
        self,
        factory: Callable[[str], S],
        ttl_seconds: float = settings.SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, S] = {}
        self._key_locks: Dict[str, _KeyLock] = {}
        self._mutex = threading.Lock()
        self._last_purge = clock()

    def __len__(self) -> int:
        with self._mutex:
            return len(self._sessions)

    def __contains__(self, key: str) -> bool:
        with self._mutex:
            session = self._sessions.get(key)
            return session is not None and not self._is_expired(session, self._clock())

    def get_or_create(self, key: str) -> S:
        """Return the live session for ``key`` or start a fresh one; touches last_active"""
        with self._mutex:
            now = self._clock()
            self._purge_if_due(now)

            session = self._sessions.get(key)
            if session is None or self._is_expired(session, now):
                if session is not None:
                    logger.debug(f"Session {key} expired, starting over")
                session = self._factory(key)
                self._sessions[key] = session

            session.last_active = now
            return session

    @contextmanager
    def locked(self, key: str) -> Iterator[S]:
        """Hold the session for ``key`` exclusively for the duration of one request"""
        with self._mutex:
            key_lock = self._key_locks.get(key)
            if key_lock is None:
                key_lock = self._key_locks[key] = _KeyLock()
            key_lock.users += 1

        try:
            with key_lock.lock:
                yield self.get_or_create(key)
        finally:
            with self._mutex:
                key_lock.users -= 1
                if key_lock.users == 0 and key not in self._sessions:
                    self._key_locks.pop(key, None)

    def _is_expired(self, session: S, now: float) -> bool:
        return now - session.last_active > self._ttl

    def _purge_if_due(self, now: float) -> None:
        if now - self._last_purge >= self._ttl:
            self._purge(now)

    def _purge(self, now: float) -> None:
        expired = [key for key, session in self._sessions.items() if self._is_expired(session, now)]
        for key in expired:
            del self._sessions[key]
            key_lock = self._key_locks.get(key)
            if key_lock is not None and key_lock.users == 0:
                del self._key_locks[key]

        self._last_purge = now
        if expired:
            logger.info(f"Purged {len(expired)} expired USSD sessions")


customer_sessions: SessionStore[CustomerSession] = SessionStore(CustomerSession)
operator_sessions: SessionStore[OperatorSession] = SessionStore(OperatorSession)


def get_customer_sessions() -> SessionStore[CustomerSession]:
    """FastAPI dependency for the customer session store"""
    return customer_sessions


def get_operator_sessions() -> SessionStore[OperatorSession]:
    """FastAPI dependency for the operator session store"""
    return operator_sessions
