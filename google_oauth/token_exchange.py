"""OAuth token exchange for Google authentication"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from errors import ExchangeError
from settings import GOOGLE_TOKEN_URL, TOKEN_EXCHANGE_TIMEOUT
from .models import ClientKeys, Credential

logger = logging.getLogger(__name__)


async def post_token_request(data: Dict[str, Any], timeout: float = TOKEN_EXCHANGE_TIMEOUT) -> Dict[str, Any]:
    """POST a form to the Google token endpoint and return the JSON payload

    Args:
        data: Form fields for the token request
        timeout: Total request timeout in seconds

    Returns:
        Parsed JSON payload

    Raises:
        ExchangeError: On timeout, transport failure, non-200 status or bad JSON
    """
    try:
        async with httpx.AsyncClient() as client:
            logger.debug(f"Sending {data.get('grant_type')} request to {GOOGLE_TOKEN_URL}")
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data=data,
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
    except httpx.TimeoutException as e:
        raise ExchangeError(f"Token request timed out after {timeout} seconds: {e}") from e
    except httpx.RequestError as e:
        raise ExchangeError(f"Token request failed: {e}") from e

    logger.debug(f"Token endpoint response status: {response.status_code}")

    if response.status_code != 200:
        raise ExchangeError(
            f"Token request failed: {response.status_code} - {_error_summary(response)}",
            status_code=response.status_code,
        )

    try:
        payload = response.json()
    except json.JSONDecodeError as e:
        raise ExchangeError(f"Failed to parse token response: {e}") from e

    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise ExchangeError("Token response is missing access_token")

    return payload


def _error_summary(response: httpx.Response) -> str:
    """Prefer Google's error/error_description fields over the raw body"""
    try:
        body = response.json()
    except json.JSONDecodeError:
        return response.text
    if isinstance(body, dict) and body.get("error"):
        description = body.get("error_description")
        return f"{body['error']}: {description}" if description else str(body["error"])
    return response.text


async def exchange_code_for_tokens(
    code: str,
    redirect_uri: str,
    client_keys: ClientKeys,
    code_verifier: Optional[str] = None,
) -> Credential:
    """Exchange an authorization code for OAuth tokens

    Args:
        code: Authorization code from the OAuth callback
        redirect_uri: The exact redirect URI used in the authorization request
        client_keys: OAuth client identity
        code_verifier: PKCE verifier matching the challenge that was sent

    Returns:
        Credential with access and refresh tokens

    Raises:
        ExchangeError: If the exchange fails for any reason
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_keys.client_id,
    }
    if client_keys.client_secret:
        data["client_secret"] = client_keys.client_secret
    if code_verifier:
        data["code_verifier"] = code_verifier

    logger.info("Exchanging authorization code for tokens")
    payload = await post_token_request(data)

    credential = Credential.from_token_response(payload)
    if not credential.refresh_token:
        logger.warning("Token response did not include a refresh token")

    logger.info("Successfully exchanged authorization code for tokens")
    return credential
