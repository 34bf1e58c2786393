"""Loading of the OAuth client keys file downloaded from Google Cloud"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from errors import ConfigurationError
from .models import ClientKeys

logger = logging.getLogger(__name__)


def parse_client_keys(data: Dict[str, Any]) -> ClientKeys:
    """Parse client keys from any of the layouts Google hands out

    Supports ``{"installed": {...}}`` (desktop app), ``{"web": {...}}`` and a
    flat ``{"client_id": ..., "client_secret": ...}`` object.

    Raises:
        ConfigurationError: If client_id is missing
    """
    if not isinstance(data, dict):
        raise ConfigurationError("OAuth keys file must contain a JSON object")

    section = data.get("installed") or data.get("web") or data
    client_id = section.get("client_id")
    if not client_id:
        raise ConfigurationError("OAuth keys file does not contain a client_id")

    return ClientKeys(
        client_id=client_id,
        client_secret=section.get("client_secret", ""),
        redirect_uris=list(section.get("redirect_uris", [])),
    )


def load_client_keys(path: Union[str, Path]) -> ClientKeys:
    """Read and parse the OAuth client keys file

    Args:
        path: Location of the keys JSON file

    Returns:
        Parsed client keys

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    keys_path = Path(path).expanduser()
    if not keys_path.exists():
        raise ConfigurationError(
            f"OAuth keys file not found at {keys_path}. Download an OAuth client "
            "JSON from https://console.cloud.google.com/apis/credentials and pass it "
            "with --credentials-file or GOOGLE_OAUTH_CREDENTIALS."
        )

    try:
        data = json.loads(keys_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"OAuth keys file {keys_path} is not valid JSON: {e.msg}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read OAuth keys file {keys_path}: {e}") from e

    keys = parse_client_keys(data)
    logger.debug(f"Loaded OAuth client keys from {keys_path}")
    return keys
