import json
import logging
import os
import platform
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, Union

from errors import StorageError
from google_oauth.models import Credential
from settings import TOKEN_FILE

logger = logging.getLogger(__name__)


class TokenStorage:
    """Credential file with owner-only permissions on Unix-like systems"""

    def __init__(self, token_file: Optional[Union[str, Path]] = None):
        self.token_path = Path(token_file if token_file else TOKEN_FILE).expanduser()

    def _ensure_secure_directory(self):
        """Create parent directory with secure permissions"""
        parent_dir = self.token_path.parent
        if not parent_dir.exists():
            parent_dir.mkdir(parents=True, exist_ok=True)
            if platform.system() != "Windows":
                os.chmod(parent_dir, 0o700)

    def save_credential(self, credential: Credential):
        """Write the credential, replacing any previous one

        Raises:
            StorageError: If the file cannot be written
        """
        try:
            self._ensure_secure_directory()
            # Write next to the target and rename so a crash never leaves half a file
            tmp_path = self.token_path.with_name(self.token_path.name + ".tmp")
            tmp_path.write_text(json.dumps(credential.to_dict(), indent=2), encoding="utf-8")
            if platform.system() != "Windows":
                os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.token_path)
        except OSError as e:
            raise StorageError(f"Failed to save tokens to {self.token_path}: {e}") from e

        logger.debug(f"Saved tokens to {self.token_path}")

    def load_credential(self) -> Optional[Credential]:
        """Load the stored credential

        Returns:
            Credential, or None if no token file exists

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        if not self.token_path.exists():
            logger.debug(f"No token file at {self.token_path}")
            return None

        try:
            data = json.loads(self.token_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(f"Token file {self.token_path} is not valid JSON: {e.msg}") from e
        except OSError as e:
            raise StorageError(f"Failed to read token file {self.token_path}: {e}") from e

        if not isinstance(data, dict) or not data.get("access_token"):
            raise StorageError(f"Token file {self.token_path} does not contain an access_token")

        return Credential.from_dict(data)

    def get_status(self) -> Dict[str, Any]:
        """Get token status without exposing secrets"""
        try:
            credential = self.load_credential()
        except StorageError as e:
            logger.warning(str(e))
            credential = None

        if not credential:
            return {
                "has_tokens": False,
                "is_expired": True,
                "has_refresh_token": False,
                "expires_at": None,
                "time_until_expiry": "No tokens",
            }

        if credential.expiry_date is None:
            return {
                "has_tokens": True,
                "is_expired": False,
                "has_refresh_token": bool(credential.refresh_token),
                "expires_at": None,
                "time_until_expiry": "unknown",
            }

        expires_at = credential.expiry_date // 1000
        current_time = int(time.time())
        expires_str = datetime.fromtimestamp(expires_at).isoformat()

        if current_time >= expires_at:
            mins_since = (current_time - expires_at) // 60
            time_str = f"{mins_since // 60}h {mins_since % 60}m ago" if mins_since >= 60 else f"{mins_since}m ago"
            is_expired = True
        else:
            remaining = expires_at - current_time
            hours = remaining // 3600
            minutes = (remaining % 3600) // 60
            time_str = f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
            is_expired = False

        return {
            "has_tokens": True,
            "is_expired": is_expired,
            "has_refresh_token": bool(credential.refresh_token),
            "expires_at": expires_str,
            "time_until_expiry": time_str,
        }

    @property
    def token_file(self) -> Path:
        """Get the token file path"""
        return self.token_path
