"""Google OAuth client package"""

from pathlib import Path
from typing import Iterable, Optional, Union

from settings import GOOGLE_SCOPES
from .models import ClientKeys, Credential
from .client_keys import load_client_keys, parse_client_keys
from .pkce import PKCEManager
from .authorization import AuthorizationURLBuilder
from .token_exchange import exchange_code_for_tokens
from .token_refresh import refresh_credential


class GoogleOAuthClient:
    """OAuth authorization code flow against Google

    This class orchestrates:
    - PKCE generation for each attempt
    - Authorization URL construction
    - Code-for-token exchange
    - Token refresh
    """

    def __init__(self, client_keys: ClientKeys, scopes: Optional[Iterable[str]] = None):
        self.client_keys = client_keys
        self.scopes = list(scopes) if scopes else list(GOOGLE_SCOPES)
        self.pkce = PKCEManager()
        self.auth_builder = AuthorizationURLBuilder(self.client_keys, self.scopes, self.pkce)

    @classmethod
    def from_keys_file(cls, path: Union[str, Path], scopes: Optional[Iterable[str]] = None) -> "GoogleOAuthClient":
        """Create a client from a Google Cloud OAuth keys file

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        return cls(load_client_keys(path), scopes)

    def build_authorization_url(self, redirect_uri: str) -> str:
        """Construct the authorization URL for the given redirect URI

        Args:
            redirect_uri: Local callback URL including the bound port

        Returns:
            Full authorization URL
        """
        return self.auth_builder.get_authorize_url(redirect_uri)

    async def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        """Exchange an authorization code for tokens

        Raises:
            ExchangeError: If the exchange fails
        """
        try:
            return await exchange_code_for_tokens(
                code, redirect_uri, self.client_keys, self.pkce.code_verifier
            )
        finally:
            # A code can only be redeemed once; the verifier is spent either way
            self.pkce.clear()

    async def refresh(self, credential: Credential) -> Credential:
        """Refresh an expired credential

        Raises:
            ExchangeError: If the refresh fails
        """
        return await refresh_credential(credential, self.client_keys)


__all__ = [
    "GoogleOAuthClient",
    "ClientKeys",
    "Credential",
    "PKCEManager",
    "AuthorizationURLBuilder",
    "load_client_keys",
    "parse_client_keys",
    "exchange_code_for_tokens",
    "refresh_credential",
]
