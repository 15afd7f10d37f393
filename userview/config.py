"""Runtime configuration and logging setup"""
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=True)

# Channel settings
WS_URL = os.environ.get("USERVIEW_WS_URL", "ws://localhost:8536/api/v1/ws")
SITE_URL = os.environ.get("USERVIEW_SITE_URL", "")

# Profile page settings
FETCH_LIMIT = int(os.environ.get("USERVIEW_FETCH_LIMIT", "20"))
START_PATH = os.environ.get("USERVIEW_START_PATH", "")

# Resubscribe policy for transport failures
RETRY_DELAY = float(os.environ.get("USERVIEW_RETRY_DELAY", "3.0"))
MAX_RETRIES = int(os.environ.get("USERVIEW_MAX_RETRIES", "10"))

# Storage settings
KEYRING_SERVICE = os.environ.get("USERVIEW_KEYRING_SERVICE", "userview")
JWT_KEY = "jwt"

DEBUG = bool(os.getenv("USERVIEW_DEBUG"))
DEBUG_LOG_FILE = Path.home() / ".userview_debug.log"


def configure_logging() -> logging.Logger:
    """Attach handlers to the package logger once.

    Set USERVIEW_DEBUG=1 to get DEBUG output on stderr and in
    ~/.userview_debug.log (Textual captures stdout/stderr while running).
    """
    logger = logging.getLogger("userview")
    if logger.handlers:
        return logger

    level = logging.DEBUG if DEBUG else logging.WARNING
    logger.setLevel(level)
    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(level)
    stream.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(stream)

    if DEBUG:
        try:
            fh = logging.FileHandler(DEBUG_LOG_FILE, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
            logger.addHandler(fh)
        except OSError:
            logger.warning("could not open debug log file %s", DEBUG_LOG_FILE)
    return logger
