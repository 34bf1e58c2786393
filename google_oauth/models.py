"""Data models for Google OAuth authentication"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ClientKeys:
    """OAuth client identity from the Google Cloud console

    Attributes:
        client_id: OAuth client ID
        client_secret: OAuth client secret (desktop clients still send it)
        redirect_uris: Redirect URIs registered for the client
    """
    client_id: str
    client_secret: str
    redirect_uris: List[str] = field(default_factory=list)


@dataclass
class Credential:
    """Token bundle returned by the Google token endpoint

    Stored on disk in the same shape Google's client libraries use, with
    ``expiry_date`` in epoch milliseconds.
    """
    access_token: str
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"
    expiry_date: Optional[int] = None
    id_token: Optional[str] = None

    @classmethod
    def from_token_response(cls, payload: Dict[str, Any], refresh_token: Optional[str] = None) -> "Credential":
        """Build a credential from a token endpoint JSON payload

        Args:
            payload: Parsed JSON response from the token endpoint
            refresh_token: Fallback refresh token when the response omits one

        Returns:
            Credential with an absolute expiry
        """
        expires_in = payload.get("expires_in")
        expiry_date = None
        if isinstance(expires_in, (int, float)):
            expiry_date = int((time.time() + expires_in) * 1000)

        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or refresh_token,
            scope=payload.get("scope"),
            token_type=payload.get("token_type", "Bearer"),
            expiry_date=expiry_date,
            id_token=payload.get("id_token"),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            token_type=data.get("token_type", "Bearer"),
            expiry_date=data.get("expiry_date"),
            id_token=data.get("id_token"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    def is_expired(self, buffer_seconds: int = 0) -> bool:
        """Check whether the access token expires within ``buffer_seconds``

        A credential without an expiry is treated as not expired.
        """
        if not self.access_token:
            return True
        if self.expiry_date is None:
            return False
        return time.time() * 1000 >= self.expiry_date - buffer_seconds * 1000
