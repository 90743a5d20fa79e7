from __future__ import annotations

from ..logging_config import log_structured_error
from .internal import (
    ConfigError,
    FetchError,
    NetworkError,
    OAuthError,
    ParsingError,
    RateLimitError,
    RetryBudgetExhausted,
    TokenKeeperError,
)


def classify_error(error: BaseException) -> str:
    """Return the aggregation category used when logging ``error``."""
    if isinstance(error, NetworkError | OSError | ConnectionError):
        return "network"
    if isinstance(error, OAuthError):
        return "auth"
    if isinstance(error, RateLimitError):
        return "ratelimit"
    if isinstance(error, ParsingError):
        return "parsing"
    if isinstance(error, FetchError):
        return "fetch"
    if isinstance(error, RetryBudgetExhausted):
        return "fatal"
    if isinstance(error, ConfigError):
        return "config"
    if isinstance(error, TokenKeeperError):
        return "internal"
    return "unknown"


def log_error(message: str, error: BaseException, context: dict | None = None) -> None:
    """Logs an error message with the associated exception details.

    The exception is categorized (network, auth, fatal, ...) and routed
    through structured logging so repeated failures show up in the error
    aggregator summary.

    Args:
        message: A descriptive message about the error context.
        error: The exception instance to be logged.
        context: Optional additional context data for debugging.
    """
    log_structured_error(
        error_type=classify_error(error),
        message=f"{message}: {str(error)}",
        exception=error,
        context=context,
    )
