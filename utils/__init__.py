"""Shared utilities package for the Google Calendar auth server"""

from .storage import TokenStorage
from .logging_setup import setup_logging

__all__ = [
    "TokenStorage",
    "setup_logging",
]
