"""Centralized error hierarchy for the token keeper.

Token sources raise ``FetchError`` subclasses; the store and the application
context raise lookup and lifecycle errors. Never surface raw aiohttp / JSON
errors from a token source; wrap them instead.

Classes:
  TokenKeeperError     – Base for all application errors.
  NotFoundError        – Credential name was never registered.
  DuplicateNameError   – Credential name is already registered.
  ActorStoppedError    – The owning refresh actor is no longer running.
  ConfigError          – Configuration could not be loaded or validated.
  FetchError           – A token source failed to produce a token.
  NetworkError         – Transient network/IO issues (safe to retry).
  OAuthError           – Token endpoint rejected the credentials.
  ParsingError         – Token endpoint response could not be parsed.
  RateLimitError       – Token endpoint signalled rate limiting.
  RetryBudgetExhausted – Background refresh failed too many times in a row.
"""

from __future__ import annotations

from collections.abc import Mapping


class TokenKeeperError(Exception):
    """Base class for all token keeper errors with metadata support.

    Attributes:
        data: Dictionary containing arbitrary structured context data.

    Args:
        message: Descriptive error message.
        data: Optional mapping of additional context data.
    """

    data: dict[str, object]

    def __init__(
        self, message: str, *, data: Mapping[str, object] | None = None
    ) -> None:
        super().__init__(message)
        # Copy into a plain dict to avoid unexpected mutations from caller.
        self.data = dict(data) if data else {}


class NotFoundError(TokenKeeperError):
    """Raised when a credential name is unknown to the store."""

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(
            message or f"No credential registered under name={name!r}",
            data={"name": name},
        )
        self.name = name


class DuplicateNameError(TokenKeeperError):
    """Raised when registering a credential name that already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Credential already registered name={name!r}", data={"name": name}
        )
        self.name = name


class ActorStoppedError(TokenKeeperError):
    """Raised to on-demand callers when the refresh actor stops before replying."""


class ConfigError(TokenKeeperError):
    """Raised when credential configuration is missing or invalid."""


class FetchError(TokenKeeperError):
    """Exception raised when a token source fails to produce a token.

    Background refreshes retry these while budget remains; on-demand fetches
    hand them straight back to the caller.
    """


class NetworkError(FetchError):
    """Exception raised for network or transport layer errors.

    This includes connection timeouts, resets, or unexpected HTTP status
    codes that may be retried.
    """


class OAuthError(FetchError):
    """Exception raised when the token endpoint rejects the credentials.

    Not suitable for automatic retry inside a token source.
    """


class ParsingError(FetchError):
    """Exception raised for token endpoint responses that cannot be parsed."""


class RateLimitError(FetchError):
    """Exception raised when the token endpoint rate limits the client.

    Args:
        message: Optional error message, defaults to "Rate limited".
        retry_after: Seconds suggested by the server before the next attempt.
    """

    def __init__(
        self, message: str = "Rate limited", *, retry_after: float | None = None
    ) -> None:
        super().__init__(message, data={"retry_after": retry_after})
        self.retry_after = retry_after


class RetryBudgetExhausted(TokenKeeperError):
    """Fatal error raised by a refresh actor once its retry budget is spent.

    Args:
        name: Credential name owned by the failed actor.
        attempts: Number of consecutive failed background attempts.
        last_error: The error returned by the final attempt.
    """

    def __init__(
        self, name: str, attempts: int, last_error: BaseException | None
    ) -> None:
        super().__init__(
            f"Too many failed attempts to refresh name={name!r} attempts={attempts}, "
            f"last error: {last_error!r}",
            data={"name": name, "attempts": attempts},
        )
        self.name = name
        self.attempts = attempts
        self.last_error = last_error


__all__ = [
    "TokenKeeperError",
    "NotFoundError",
    "DuplicateNameError",
    "ActorStoppedError",
    "ConfigError",
    "FetchError",
    "NetworkError",
    "OAuthError",
    "ParsingError",
    "RateLimitError",
    "RetryBudgetExhausted",
]
