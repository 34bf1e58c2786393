"""Settings source for the Google Calendar auth server

A value comes from the first of these that defines it:
1. The process environment
2. A .env file in the working directory (never overrides the environment)
3. The default passed by settings.py
"""

import logging
import os
from pathlib import Path
from typing import Any, List, Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = ('true', '1', 'yes', 'on')


class ConfigLoader:
    """Reads typed settings from the environment and an optional .env file"""

    def __init__(self, env_path: Optional[str] = None):
        """
        Args:
            env_path: .env file to load (default: ./.env). A missing file is
                not an error.
        """
        self.env_path = Path(env_path) if env_path else Path(".env")
        self._load_env_file()

    def _load_env_file(self):
        if not self.env_path.exists():
            logger.debug(f"No .env file at {self.env_path}")
            return
        load_dotenv(dotenv_path=self.env_path)
        logger.debug(f"Loaded settings from {self.env_path}")

    def get(self, env_var: str, default: Any) -> Any:
        """Look up ``env_var``, converted to the type of ``default``

        Booleans accept true/1/yes/on. An int or float that does not parse
        falls back to the default with a warning. Strings starting with
        ``~/`` are expanded to the home directory.

        Args:
            env_var: Environment variable name
            default: Value used when the variable is unset

        Returns:
            The converted value
        """
        raw = os.getenv(env_var)
        if raw is None:
            return self._expand_path(default)
        return self._coerce(env_var, raw, default)

    def get_list(self, env_var: str, default: List[str]) -> List[str]:
        """Look up a list given as comma and/or whitespace separated items

        Args:
            env_var: Environment variable name
            default: List used when the variable is unset or holds no items

        Returns:
            List of non-empty items
        """
        raw = os.getenv(env_var)
        if not raw:
            return list(default)
        items = [item.strip() for item in raw.replace(",", " ").split()]
        return [item for item in items if item] or list(default)

    def _coerce(self, env_var: str, raw: str, default: Any) -> Any:
        # bool first: bool is a subclass of int
        if isinstance(default, bool):
            return raw.strip().lower() in _TRUE_VALUES

        for kind in (int, float):
            if isinstance(default, kind):
                try:
                    return kind(raw)
                except ValueError:
                    logger.warning(
                        f"{env_var}={raw!r} is not a valid {kind.__name__}, using default {default}"
                    )
                    return default

        return self._expand_path(raw)

    @staticmethod
    def _expand_path(value: Any) -> Any:
        if isinstance(value, str) and value.startswith("~/"):
            return str(Path(value).expanduser())
        return value


_config_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Return the process-wide loader, creating it on first use"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader
