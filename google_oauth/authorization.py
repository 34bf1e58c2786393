"""OAuth authorization URL construction for Google"""

from typing import Iterable
from urllib.parse import urlencode

from settings import GOOGLE_AUTHORIZE_URL
from .models import ClientKeys
from .pkce import PKCEManager


class AuthorizationURLBuilder:
    """Builds Google OAuth authorization URLs with PKCE"""

    def __init__(self, client_keys: ClientKeys, scopes: Iterable[str], pkce_manager: PKCEManager):
        self.client_keys = client_keys
        self.scopes = list(scopes)
        self.pkce = pkce_manager

    def get_authorize_url(self, redirect_uri: str) -> str:
        """Construct the authorization URL for one attempt

        Args:
            redirect_uri: Local callback URL, including the bound port

        Returns:
            Full authorization URL
        """
        code_challenge = self.pkce.new_challenge()

        params = {
            "client_id": self.client_keys.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            # offline + consent so Google always returns a refresh token
            "access_type": "offline",
            "prompt": "consent",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"
