from pathlib import Path
from config.loader import get_config_loader

# Get the config loader instance
config = get_config_loader()

LOG_LEVEL = config.get("LOG_LEVEL", "INFO")
DEBUG_LOG_FILE = config.get("DEBUG_LOG_FILE", "auth_debug.log")

# Local callback server
# Google desktop clients accept any loopback port, so the range only has to
# match what the user expects to be free.
OAUTH_CALLBACK_HOST = config.get("OAUTH_CALLBACK_HOST", "127.0.0.1")
# Host in the redirect URI; empty means the bind address
OAUTH_REDIRECT_HOST = config.get("OAUTH_REDIRECT_HOST", "")
OAUTH_CALLBACK_PORT_START = config.get("OAUTH_CALLBACK_PORT_START", 3000)
OAUTH_CALLBACK_PORT_COUNT = config.get("OAUTH_CALLBACK_PORT_COUNT", 5)
OAUTH_CALLBACK_PATH = "/oauth2callback"
OAUTH_CALLBACK_PORTS = tuple(
    range(OAUTH_CALLBACK_PORT_START, OAUTH_CALLBACK_PORT_START + OAUTH_CALLBACK_PORT_COUNT)
)

# Orchestrator timing
POLL_INTERVAL_SECONDS = config.get("POLL_INTERVAL_SECONDS", 1.0)
# How long stop() lets an in-flight code exchange finish before cancelling it
STOP_GRACE_SECONDS = config.get("STOP_GRACE_SECONDS", 2.0)

# Google OAuth endpoints (hardcoded - not user configurable)
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_SCOPES = config.get_list(
    "GOOGLE_SCOPES",
    ["https://www.googleapis.com/auth/calendar"],
)
TOKEN_EXCHANGE_TIMEOUT = config.get("TOKEN_EXCHANGE_TIMEOUT", 30.0)
# Tokens expiring within this window are treated as expired
TOKEN_EXPIRY_BUFFER_SECONDS = config.get("TOKEN_EXPIRY_BUFFER_SECONDS", 300)

# OAuth client keys downloaded from the Google Cloud console
GOOGLE_OAUTH_CREDENTIALS = config.get(
    "GOOGLE_OAUTH_CREDENTIALS", str(Path.cwd() / "gcp-oauth.keys.json")
)

# Token storage
TOKEN_FILE = config.get(
    "GOOGLE_CALENDAR_TOKEN_PATH",
    str(Path.home() / ".config" / "google-calendar-auth" / "tokens.json"),
)
