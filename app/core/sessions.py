import logging
import threading
from typing import Dict, Optional

from app.core.config import get_settings
from app.core.errors import NotFoundError
from app.services.payment_session import DEMO_INSTRUMENTS, PaymentSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Process-local registry of live payment sessions, keyed by session id."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._sessions: Dict[str, PaymentSession] = {}
        self._lock = threading.Lock()

    def create(self, seed_instruments: Optional[bool] = None) -> PaymentSession:
        if seed_instruments is None:
            seed_instruments = self.settings.seed_demo_instruments
        session = PaymentSession(
            instruments=DEMO_INSTRUMENTS if seed_instruments else None,
            reject_negative_trip_inputs=self.settings.reject_negative_trip_inputs,
            lock_instruments_while_processing=self.settings.lock_instruments_while_processing,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info("Session %s started", session.session_id)
        return session

    def get(self, session_id: str) -> PaymentSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        return session

    def end(self, session_id: str):
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise NotFoundError(f"Session '{session_id}' not found")
        logger.info("Session %s ended", session_id)

    def clear(self):
        with self._lock:
            self._sessions.clear()

    def __len__(self):
        return len(self._sessions)


# Global store, created on startup
session_store: SessionStore = None


def get_session_store() -> SessionStore:
    global session_store
    if session_store is None:
        session_store = SessionStore()
    return session_store


async def connect():
    global session_store
    session_store = SessionStore()


async def disconnect():
    global session_store
    if session_store:
        logger.info("Discarding %d live sessions", len(session_store))
        session_store.clear()
    session_store = None
