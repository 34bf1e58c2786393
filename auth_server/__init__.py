"""Local OAuth callback server and its completion state machine"""

from .session import AuthSession, AuthStatus
from .callback_server import CallbackListener, CallbackResult
from .server import AuthServer

__all__ = [
    "AuthServer",
    "AuthSession",
    "AuthStatus",
    "CallbackListener",
    "CallbackResult",
]
