"""Shared types for the auth_token package."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .source import TokenSource


@dataclass(frozen=True)
class Token:
    """An access credential and its expiry.

    Attributes:
        value: Opaque credential material (never logged).
        expires_at: Expiry as epoch seconds, kept exactly as produced.
        token_type: Token type reported by the source.
        scope: Granted scope, if reported.
        subject: Subject the token was issued for, if any.
    """

    value: str
    expires_at: int | float
    token_type: str = "Bearer"
    scope: str | None = None
    subject: str | None = None

    def remaining_seconds(self, now: float | None = None) -> float:
        """Seconds until expiry (negative once expired)."""
        return self.expires_at - (time.time() if now is None else now)

    def __repr__(self) -> str:
        # Keep credential material out of logs and tracebacks.
        return (
            f"Token(token_type={self.token_type!r}, expires_at={self.expires_at!r}, "
            f"scope={self.scope!r}, subject={self.subject!r})"
        )


@dataclass(frozen=True)
class CredentialEntry:
    """Store record for one credential name.

    ``source`` is fixed at registration; ``token`` is swapped wholesale by
    the owning refresh actor.
    """

    source: TokenSource | Any
    token: Token | None = None


class Prefetch(str, Enum):
    """How a refresh actor obtains its first token.

    Attributes:
        SYNC: Fetch inline during startup (one attempt).
        ASYNC: Fetch as the actor's first queued action.
        DISABLED: Wait for the first on-demand read.
    """

    SYNC = "sync"
    ASYNC = "async"
    DISABLED = "disabled"


class RefreshStatus(str, Enum):
    """Lifecycle status of a refresh actor."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RETRYING = "retrying"
    FATAL = "fatal"
    STOPPED = "stopped"


@dataclass
class RefreshState:
    """Mutable retry state owned by a single refresh actor."""

    name: str
    source: TokenSource | Any
    retry_after: float
    refresh_before: float
    max_retries: int
    retries_remaining: int = 0

    def __post_init__(self) -> None:
        if not self.retries_remaining:
            self.retries_remaining = self.max_retries

    def reset_retries(self) -> None:
        self.retries_remaining = self.max_retries
