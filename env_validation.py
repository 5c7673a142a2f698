"""Environment variable validation and management."""

import os
import logging
from typing import Dict

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

_NUMERIC_DEFAULTS: Dict[str, float] = {
    "DB_MAX_CONNECTIONS": 10,
    "DB_TIMEOUT_SECONDS": 5.0,
    "REVIEW_BASE_INTERVAL_HOURS": 24.0,
    "REVIEW_MIN_INTERVAL_HOURS": 1.0,
    "DASHBOARD_RECENT_LIMIT": 10,
}

# Counts: must be whole numbers of at least 1.
_INTEGER_VARS = {"DB_MAX_CONNECTIONS", "DASHBOARD_RECENT_LIMIT"}

def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": os.getenv("DB_PATH") or "data.db",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    invalid = []
    for var in _NUMERIC_DEFAULTS:
        raw = os.getenv(var)
        if raw is None or raw.strip() == "":
            continue
        if var in _INTEGER_VARS:
            try:
                count = int(raw)
            except ValueError:
                count = 0
            if count < 1:
                invalid.append(f"{var}={raw!r} (must be an integer of at least 1)")
            continue
        try:
            value = float(raw)
        except ValueError:
            invalid.append(f"{var}={raw!r} (not a number)")
            continue
        if value <= 0:
            invalid.append(f"{var}={raw!r} (must be positive)")

    if invalid:
        raise EnvironmentError(
            f"Invalid environment variables: {', '.join(invalid)}"
        )

def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}

def get_env_float(name: str, default: float) -> float:
    """Get a numeric value from an environment variable, falling back to ``default``.

    Malformed values fall back too; :func:`validate_environment` reports them at startup.
    """
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, value, default)
        return default

def get_env_int(name: str, default: int, minimum: int = 1) -> int:
    """Get a whole-number setting, falling back to ``default`` when malformed or below ``minimum``."""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %s", name, value, default)
        return default
    if parsed < minimum:
        logger.warning("Ignoring %s=%r below %s; using %s", name, value, minimum, default)
        return default
    return parsed
