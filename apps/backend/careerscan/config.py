"""
Runtime settings read from the environment.

Values come from CAREERSCAN_* variables; the CLI calls load_dotenv() first so
a local .env file is honoured.
"""
import os
from typing import Optional

DEFAULT_TIMEOUT_MS = 60000
DEFAULT_DEBUG_DIR = "debug"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Settings:
    """Snapshot of the environment taken at construction time"""

    def __init__(self):
        self.user_agent: Optional[str] = os.getenv("CAREERSCAN_USER_AGENT")
        self.timeout_ms = _env_int("CAREERSCAN_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)
        self.http_timeout = _env_float("CAREERSCAN_HTTP_TIMEOUT", 15.0)
        # Per-host request ceiling; 0 disables throttling
        self.requests_per_minute = _env_int("CAREERSCAN_REQUESTS_PER_MINUTE", 0)
        self.headless = _env_bool("CAREERSCAN_HEADLESS", True)
        self.debug_enabled = _env_bool("CAREERSCAN_DEBUG_ENABLED", False)
        self.debug_dir = os.getenv("CAREERSCAN_DEBUG_DIR", DEFAULT_DEBUG_DIR)
        self.debug_sample_rate = _env_float("CAREERSCAN_DEBUG_SAMPLE_RATE", 1.0)
        self.debug_max_per_window = _env_int("CAREERSCAN_DEBUG_MAX_PER_WINDOW", 10)
        self.dictionary_path: Optional[str] = os.getenv("CAREERSCAN_DICTIONARY_PATH")
        self.log_level = os.getenv("CAREERSCAN_LOG_LEVEL", "INFO").upper()

    def __repr__(self):
        return (
            f"Settings(timeout_ms={self.timeout_ms}, headless={self.headless}, "
            f"debug_enabled={self.debug_enabled})"
        )


def get_settings() -> Settings:
    """Read settings from the current environment"""
    return Settings()
