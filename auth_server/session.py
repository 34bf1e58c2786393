"""State of a single authentication attempt"""

import enum
import logging
import threading
from typing import Optional

logger = logging.getLogger(__name__)


class AuthStatus(enum.Enum):
    NOT_STARTED = "not_started"
    TOKEN_ALREADY_VALID = "token_already_valid"
    LISTENING = "listening"
    EXCHANGE_PENDING = "exchange_pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    AuthStatus.TOKEN_ALREADY_VALID,
    AuthStatus.COMPLETED,
    AuthStatus.FAILED,
})

_TRANSITIONS = {
    AuthStatus.NOT_STARTED: {AuthStatus.TOKEN_ALREADY_VALID, AuthStatus.LISTENING, AuthStatus.FAILED},
    AuthStatus.LISTENING: {AuthStatus.EXCHANGE_PENDING, AuthStatus.FAILED},
    AuthStatus.EXCHANGE_PENDING: {AuthStatus.COMPLETED, AuthStatus.FAILED},
}


class AuthSession:
    """Status, bound port and completion flag of one attempt

    Only the auth server writes to a session. Every read and write holds a
    lock, so a poller on another thread always sees a consistent snapshot.
    ``completed_successfully`` only ever goes from False to True.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._status = AuthStatus.NOT_STARTED
        self._bound_port: Optional[int] = None
        self._completed_successfully = False
        self._error_detail: Optional[str] = None

    @property
    def status(self) -> AuthStatus:
        with self._lock:
            return self._status

    @property
    def bound_port(self) -> Optional[int]:
        with self._lock:
            return self._bound_port

    @property
    def completed_successfully(self) -> bool:
        with self._lock:
            return self._completed_successfully

    @property
    def error_detail(self) -> Optional[str]:
        with self._lock:
            return self._error_detail

    def transition(self, new_status: AuthStatus, *, error_detail: Optional[str] = None):
        """Move to ``new_status``

        Raises:
            ValueError: If the transition is not part of the state machine
        """
        with self._lock:
            self._transition_locked(new_status, error_detail)

    def try_transition(self, expected: AuthStatus, new_status: AuthStatus) -> bool:
        """Transition only if the session is currently ``expected``

        Returns:
            True if the transition happened
        """
        with self._lock:
            if self._status is not expected:
                return False
            self._transition_locked(new_status, None)
            return True

    def _transition_locked(self, new_status: AuthStatus, error_detail: Optional[str]):
        if new_status not in _TRANSITIONS.get(self._status, ()):
            raise ValueError(f"Invalid session transition {self._status.value} -> {new_status.value}")

        logger.debug(f"Session {self._status.value} -> {new_status.value}")
        self._status = new_status
        if new_status in (AuthStatus.TOKEN_ALREADY_VALID, AuthStatus.COMPLETED):
            self._completed_successfully = True
        if error_detail is not None:
            self._error_detail = error_detail

    def set_bound_port(self, port: Optional[int]):
        with self._lock:
            self._bound_port = port

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "status": self._status.value,
                "bound_port": self._bound_port,
                "completed_successfully": self._completed_successfully,
                "error_detail": self._error_detail,
            }
