"""PKCE (Proof Key for Code Exchange) generation"""

import base64
import hashlib
import secrets
from typing import Optional, Tuple


class PKCEManager:
    """Holds the verifier for the one authorization attempt in flight

    The flow completes inside a single process, so the verifier lives in
    memory only.
    """

    def __init__(self):
        self.code_verifier: Optional[str] = None

    @staticmethod
    def generate_pkce() -> Tuple[str, str]:
        """Generate PKCE code verifier and challenge

        Returns:
            Tuple of (code_verifier, code_challenge)
        """
        # 32 random bytes give a 43 char verifier, the minimum RFC 7636 allows
        code_verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).decode('utf-8').rstrip('=')

        challenge_bytes = hashlib.sha256(code_verifier.encode('utf-8')).digest()
        code_challenge = base64.urlsafe_b64encode(challenge_bytes).decode('utf-8').rstrip('=')

        return code_verifier, code_challenge

    def new_challenge(self) -> str:
        """Start a fresh attempt, remembering its verifier

        Returns:
            The S256 code challenge to put in the authorization URL
        """
        self.code_verifier, code_challenge = self.generate_pkce()
        return code_challenge

    def clear(self):
        self.code_verifier = None
