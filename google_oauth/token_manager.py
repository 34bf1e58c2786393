"""Credential validity checks and persistence for the auth server"""

import logging
from typing import TYPE_CHECKING, Optional

from errors import ExchangeError, StorageError
from settings import TOKEN_EXPIRY_BUFFER_SECONDS
from utils.storage import TokenStorage
from .models import Credential

if TYPE_CHECKING:
    from . import GoogleOAuthClient

logger = logging.getLogger(__name__)


class TokenManager:
    """Async token store used by the auth server

    Wraps the file storage with the validity rules: a credential counts as
    valid when it is unexpired, or when it is expired but one refresh through
    the OAuth client succeeds.
    """

    def __init__(
        self,
        storage: Optional[TokenStorage] = None,
        oauth_client: Optional["GoogleOAuthClient"] = None,
        expiry_buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS,
    ):
        self.storage = storage or TokenStorage()
        self.oauth_client = oauth_client
        self.expiry_buffer_seconds = expiry_buffer_seconds

    async def has_valid_credential(self) -> bool:
        """Check for a usable stored credential, refreshing it once if needed

        Raises:
            StorageError: If the token file exists but cannot be read
        """
        credential = self.storage.load_credential()
        if credential is None:
            return False

        if not credential.is_expired(self.expiry_buffer_seconds):
            logger.debug("Stored access token is still valid")
            return True

        if not credential.refresh_token or self.oauth_client is None:
            logger.info("Stored access token expired and cannot be refreshed")
            return False

        logger.info("Stored access token expired, attempting refresh...")
        try:
            refreshed = await self.oauth_client.refresh(credential)
        except ExchangeError as e:
            logger.warning(f"Token refresh failed, a new login is required: {e}")
            return False

        await self.persist(refreshed)
        return True

    async def persist(self, credential: Credential) -> None:
        """Save a credential

        Raises:
            StorageError: If the credential could not be written
        """
        self.storage.save_credential(credential)
        logger.info(f"Tokens saved to {self.storage.token_file}")
