"""Environment variable validation and management."""

import os
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

DEFAULT_ASSIGNMENT_MAX_ITEMS = 8

_POSITIVE_INT_VARS = ("WORKSPACE_ASSIGNMENT_MAX_ITEMS",)

def validate_environment() -> None:
    """Validate workspace service environment variables.

    Raises EnvironmentError if validation fails.
    """
    defaults: Dict[str, str] = {
        "WORKSPACE_ASSIGNMENT_MAX_ITEMS": str(DEFAULT_ASSIGNMENT_MAX_ITEMS),
        "WORKSPACE_TRACE_ACTIONS": "false",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    for var in _POSITIVE_INT_VARS:
        raw = os.getenv(var, "")
        try:
            parsed = int(raw)
        except ValueError:
            raise EnvironmentError(f"{var} must be an integer, got {raw!r}")
        if parsed <= 0:
            raise EnvironmentError(f"{var} must be positive, got {parsed}")

    level = os.getenv("LOG_LEVEL")
    if level and not isinstance(logging.getLevelName(level.upper()), int):
        raise EnvironmentError(f"Invalid LOG_LEVEL: {level}")

    optional_vars = {
        "LOG_LEVEL": "Logging level for the workspace service",
    }

    # Log optional variables status
    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.warning("Optional environment variable not set: %s (%s)", var, description)

def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}

def get_env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    """Get integer value from environment variable, falling back on bad input.

    Values below ``minimum`` are rejected the same way as non-integers.
    """
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Environment variable %s=%r is not an integer; using %s", name, value, default)
        return default
    if minimum is not None and parsed < minimum:
        logger.warning("Environment variable %s=%s is below %s; using %s", name, parsed, minimum, default)
        return default
    return parsed
