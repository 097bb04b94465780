"""Configuration management for costline."""

import os
from datetime import timedelta
from pathlib import Path

import platformdirs
from dotenv import load_dotenv

load_dotenv()

APP_NAME = "costline"


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path))


def _dir_from_env(var: str, default: Path) -> Path:
    value = os.getenv(var)
    return _expand(value) if value else default


CACHE_DIR = _dir_from_env("COSTLINE_CACHE_DIR", platformdirs.user_cache_path(APP_NAME))
CONFIG_DIR = _dir_from_env("COSTLINE_CONFIG_DIR", platformdirs.user_config_path(APP_NAME))
ERROR_LOG = CACHE_DIR / "error.log"
AUTH_FILE = CONFIG_DIR / "auth.json"

# Credentials
TOKEN_ENV_VAR = "COSTLINE_TOKEN"
KEYCHAIN_SERVICE = "Claude Code-credentials"
CLAUDE_CREDENTIALS = Path(".claude") / ".credentials.json"

# Endpoints
USAGE_URL = os.getenv("COSTLINE_USAGE_URL", "https://api.anthropic.com/api/oauth/usage")
REFRESH_URL = os.getenv("COSTLINE_REFRESH_URL", "https://console.anthropic.com/v1/oauth/token")
LITELLM_URL = "https://raw.githubusercontent.com/BerriAI/litellm/main/model_prices_and_context_window.json"
BETA_HEADER = "oauth-2025-04-20"

# Timeouts (seconds)
USAGE_TIMEOUT = 2.0
REFRESH_TIMEOUT = 5.0
KEYCHAIN_TIMEOUT = 2.0
PRICING_TIMEOUT = 10.0
RETRY_DELAY = 0.5

# Cache lifetimes
ANALYTICS_TTL = timedelta(seconds=5)
USAGE_TTL = timedelta(seconds=30)
USAGE_GRACE_PERIOD = timedelta(minutes=5)
PRICING_TTL = timedelta(hours=24)

# Consecutive usage API failures before suggesting re-authentication
MAX_CONSEC_FAILURES = 5

# Gap between transcript entries that starts a new activity block
BLOCK_GAP = timedelta(hours=5)

# Error log is rolled over past this size
MAX_LOG_BYTES = 1 << 20
