"""Environment variable validation and management."""

import os
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    # Nothing is strictly required; the report engine runs against a local
    # SQLite file and summaries are opt-in.
    required_vars: Dict[str, str] = {}

    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
        "DB_MAX_CONNECTIONS": os.getenv("DB_MAX_CONNECTIONS") or "10",
    }

    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    optional_vars = {
        "REPORT_SOURCE_TIMEOUT": "Per-source read timeout in seconds",
    }
    if get_env_bool("SUMMARY_ENABLED"):
        required_vars["SUMMARY_LLM_URL"] = "Chat completions endpoint for report summaries"
        optional_vars["SUMMARY_MODEL_ID"] = "Model used for report summaries"
        optional_vars["SUMMARY_API_KEY"] = "Bearer token for the summary endpoint"

    missing = []
    for var, description in required_vars.items():
        if not os.getenv(var):
            missing.append(f"{var} ({description})")

    if missing:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    url_vars = {"SUMMARY_LLM_URL"}
    for var in url_vars:
        value = os.getenv(var)
        if value and not (value.startswith("http://") or value.startswith("https://")):
            raise EnvironmentError(f"Invalid URL format for {var}: {value}")

    for var in ("DB_MAX_CONNECTIONS",):
        if get_env_int(var, 1) < 1:
            raise EnvironmentError(f"{var} must be a positive integer, got {os.getenv(var)!r}")

    for var in ("REPORT_SOURCE_TIMEOUT", "SUMMARY_TIMEOUT"):
        value = get_env_float(var)
        if value is not None and value < 0:
            raise EnvironmentError(f"{var} must not be negative, got {os.getenv(var)!r}")

    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning(f"Optional environment variable not set: {var} ({description})")

def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}

def get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise EnvironmentError(f"{name} must be an integer, got {raw!r}") from exc

def get_env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise EnvironmentError(f"{name} must be a number, got {raw!r}") from exc
