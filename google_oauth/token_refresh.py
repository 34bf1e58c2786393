"""OAuth token refresh for Google authentication"""

import logging

from errors import ExchangeError
from .models import ClientKeys, Credential
from .token_exchange import post_token_request

logger = logging.getLogger(__name__)


async def refresh_credential(credential: Credential, client_keys: ClientKeys) -> Credential:
    """Refresh an expired credential

    Google usually omits the refresh token from refresh responses, so the
    existing one is carried over.

    Args:
        credential: Credential holding a refresh token
        client_keys: OAuth client identity

    Returns:
        New credential

    Raises:
        ExchangeError: If there is no refresh token or the refresh fails
    """
    if not credential.refresh_token:
        raise ExchangeError("No refresh token available")

    data = {
        "grant_type": "refresh_token",
        "refresh_token": credential.refresh_token,
        "client_id": client_keys.client_id,
    }
    if client_keys.client_secret:
        data["client_secret"] = client_keys.client_secret

    logger.info("Attempting to refresh OAuth tokens...")
    payload = await post_token_request(data)

    refreshed = Credential.from_token_response(payload, refresh_token=credential.refresh_token)
    if not refreshed.scope:
        refreshed.scope = credential.scope

    logger.info("Successfully refreshed OAuth tokens")
    return refreshed
