"""Logging configuration for the auth CLI"""

import logging
import os
from typing import Optional

from settings import DEBUG_LOG_FILE, LOG_LEVEL

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger

    Normal runs log to stderr at LOG_LEVEL. Debug runs log everything to
    stderr and append the same records to a debug log file.

    Args:
        debug: Whether debug logging is enabled
        log_file: Debug log path (default: DEBUG_LOG_FILE)

    Returns:
        The configured root logger
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(FORMAT)
    level = logging.DEBUG if debug else getattr(logging, str(LOG_LEVEL).upper(), logging.INFO)
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if debug:
        log_path = os.path.abspath(log_file or DEBUG_LOG_FILE)
        file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        root_logger.info(f"Debug logging enabled - appending to {log_path}")

    # aiohttp logs every request at INFO; only interesting when debugging
    logging.getLogger("aiohttp.access").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)

    return root_logger
