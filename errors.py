"""Error types for the local OAuth authentication server"""

from typing import Iterable, Optional, Sequence


def format_port_range(ports: Sequence[int]) -> str:
    """Render candidate ports as ``3000-3004`` when contiguous, else a comma list"""
    ports = list(ports)
    if not ports:
        return "none"
    if len(ports) > 1 and ports == list(range(ports[0], ports[0] + len(ports))):
        return f"{ports[0]}-{ports[-1]}"
    return ", ".join(str(p) for p in ports)


class AuthServerError(Exception):
    """Base class for all authentication server errors"""


class AlreadyStartedError(AuthServerError):
    """start() was called on a session that has already been started"""

    def __init__(self, status: str):
        super().__init__(f"Authentication session already started (status: {status})")
        self.status = status


class PortInUseError(AuthServerError):
    """A single candidate port could not be bound because it is taken"""

    def __init__(self, port: int):
        super().__init__(f"Port {port} is already in use")
        self.port = port


class AllPortsExhaustedError(AuthServerError):
    """Every candidate callback port is taken"""

    def __init__(self, ports: Iterable[int]):
        self.ports = tuple(ports)
        super().__init__(
            f"All OAuth callback ports ({format_port_range(self.ports)}) are in use. "
            "Free one of these ports and try again."
        )


class MalformedCallbackError(AuthServerError):
    """Redirect request carried neither a code nor an error"""

    def __init__(self, message: str = "Callback is missing both 'code' and 'error' parameters"):
        super().__init__(message)


class ProviderDeniedError(AuthServerError):
    """The provider redirected back with an error (e.g. access_denied)"""

    def __init__(self, error: str, description: Optional[str] = None):
        message = f"Authorization denied by provider: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)
        self.error = error
        self.description = description


class ExchangeError(AuthServerError):
    """Authorization code exchange (or refresh) failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(AuthServerError):
    """Credential file could not be read or written"""


class ConfigurationError(AuthServerError):
    """OAuth client configuration is missing or invalid"""


class CallbackRejectedError(AuthServerError):
    """Redirect arrived when the session could no longer accept it"""
