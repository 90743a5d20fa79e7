"""
Configuration constants for the token keeper daemon

This module contains all configurable defaults used throughout the application.
Each constant can be overridden by setting an environment variable with the same name.
"""

import os


def _get_env_int(name: str, default: int) -> int:
    """Retrieve an integer value from an environment variable.

    Attempts to parse the environment variable as an integer. If the variable
    is not set or cannot be parsed, prints a warning and returns the default value.

    Args:
        name: The name of the environment variable to read.
        default: The default integer value to return if parsing fails.

    Returns:
        The parsed integer value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            print(
                f"Warning: Invalid integer value for {name}='{value}', using default {default}"
            )
    return default


def _get_env_float(name: str, default: float) -> float:
    """Retrieve a float value from an environment variable.

    Args:
        name: The name of the environment variable to read.
        default: The default float value to return if parsing fails.

    Returns:
        The parsed float value from the environment, or the default if unavailable.
    """
    value = os.getenv(name)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            print(
                f"Warning: Invalid float value for {name}='{value}', using default {default}"
            )
    return default


# Refresh actor defaults
TOKEN_REFRESH_BEFORE_SECONDS = _get_env_float(
    "TOKEN_REFRESH_BEFORE_SECONDS", 300
)  # Refresh this many seconds before the token expires
TOKEN_RETRY_AFTER_SECONDS = _get_env_float(
    "TOKEN_RETRY_AFTER_SECONDS", 1.0
)  # Delay between background retries after a failed fetch
TOKEN_MAX_RETRIES = _get_env_int(
    "TOKEN_MAX_RETRIES", 3
)  # Consecutive background failures tolerated before the actor goes fatal

# Network/HTTP constants
HTTP_REQUEST_TIMEOUT_SECONDS = _get_env_int(
    "HTTP_REQUEST_TIMEOUT_SECONDS", 30
)  # Default HTTP request timeout

# Token source internal retry constants
SOURCE_MAX_ATTEMPTS = _get_env_int(
    "SOURCE_MAX_ATTEMPTS", 3
)  # Attempts per fetch inside the HTTP token source
RETRY_BACKOFF_MULTIPLIER = _get_env_float(
    "RETRY_BACKOFF_MULTIPLIER", 1
)  # Exponential backoff multiplier
RETRY_MAX_BACKOFF_SECONDS = _get_env_float(
    "RETRY_MAX_BACKOFF_SECONDS", 30
)  # Maximum backoff time in seconds

# Configuration
DEFAULT_CONF_FILE = os.getenv(
    "TOKENKEEPER_CONF_FILE", "tokenkeeper.conf"
)  # Credential configuration file
