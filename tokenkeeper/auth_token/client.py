"""OAuth2 token endpoint client usable as a token source."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from ..constants import (
    HTTP_REQUEST_TIMEOUT_SECONDS,
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_MAX_BACKOFF_SECONDS,
    SOURCE_MAX_ATTEMPTS,
)
from ..errors.internal import NetworkError, OAuthError, ParsingError, RateLimitError
from ..utils import format_duration
from .types import Token

GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_REFRESH_TOKEN = "refresh_token"


class _wait_retry_after(wait_base):
    """Backoff that never retries sooner than a 429 Retry-After allows."""

    def __init__(self, backoff: wait_base) -> None:
        self.backoff = backoff

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.backoff(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            return max(delay, exc.retry_after)
        return delay


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class OAuth2TokenSource:
    """Token source backed by a standard OAuth2 token endpoint.

    Supports the ``client_credentials`` and ``refresh_token`` grants. Network
    failures and rate limiting are retried in place with exponential backoff
    before the failure is handed to the refresh actor; rejected credentials
    and malformed responses fail immediately.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str | None,
        http_session: aiohttp.ClientSession,
        *,
        grant_type: str = GRANT_CLIENT_CREDENTIALS,
        refresh_token: str | None = None,
        scope: str | None = None,
        timeout: float = HTTP_REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = SOURCE_MAX_ATTEMPTS,
        backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if http_session is None:
            raise TypeError("http_session cannot be None")
        if grant_type not in (GRANT_CLIENT_CREDENTIALS, GRANT_REFRESH_TOKEN):
            raise ValueError(f"unsupported grant_type {grant_type!r}")
        if grant_type == GRANT_REFRESH_TOKEN and not refresh_token:
            raise ValueError("refresh_token grant requires a refresh_token")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = http_session
        self.grant_type = grant_type
        self.refresh_token = refresh_token
        self.scope = scope
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self._wait = _wait_retry_after(
            wait_exponential(multiplier=backoff_multiplier, max=RETRY_MAX_BACKOFF_SECONDS)
        )
        self._clock = clock

    async def fetch(self) -> Token:
        """Request a new token, retrying transient failures.

        Raises:
            NetworkError: Transport failure or unexpected status after all attempts.
            RateLimitError: Still rate limited after all attempts.
            OAuthError: The endpoint rejected the client or grant.
            ParsingError: The response body was not a usable token response.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type((NetworkError, RateLimitError)),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return await retrying(self._request_token)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logging.info(
            f"🔁 Retrying token request url={self.token_url} attempt={retry_state.attempt_number} "
            f"error={type(exc).__name__ if exc else None}"
        )

    def _form(self) -> dict[str, str]:
        data = {"grant_type": self.grant_type, "client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        if self.grant_type == GRANT_REFRESH_TOKEN and self.refresh_token:
            data["refresh_token"] = self.refresh_token
        if self.scope:
            data["scope"] = self.scope
        return data

    async def _request_token(self) -> Token:
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with self.session.post(
                self.token_url,
                data=self._form(),
                headers={"Accept": "application/json"},
                timeout=timeout,
            ) as resp:
                if resp.status == 200:
                    try:
                        js = await resp.json(content_type=None)
                    except ValueError as e:
                        raise ParsingError(
                            f"Token response is not valid JSON url={self.token_url}"
                        ) from e
                    return self._parse(js)
                if resp.status in (400, 401, 403):
                    raise OAuthError(
                        f"Token endpoint rejected credentials (HTTP {resp.status})",
                        data={"status": resp.status, "url": self.token_url},
                    )
                if resp.status == 429:
                    raise RateLimitError(
                        "Rate limited by token endpoint",
                        retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
                    )
                raise NetworkError(
                    f"HTTP {resp.status} from token endpoint",
                    data={"status": resp.status, "url": self.token_url},
                )
        except TimeoutError as e:
            raise NetworkError(f"Token request timeout url={self.token_url}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Network error during token request: {e}") from e

    def _parse(self, js: Any) -> Token:
        if not isinstance(js, dict):
            raise ParsingError("Token response must be a JSON object")
        access_token = js.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ParsingError("Missing access_token in token response")
        expires_in = js.get("expires_in")
        if isinstance(expires_in, str):
            try:
                expires_in = int(expires_in)
            except ValueError:
                expires_in = None
        if not isinstance(expires_in, int | float) or isinstance(expires_in, bool):
            raise ParsingError("Missing or invalid expires_in in token response")
        new_refresh = js.get("refresh_token")
        if new_refresh and self.grant_type == GRANT_REFRESH_TOKEN:
            # Some providers rotate refresh tokens on every use.
            self.refresh_token = new_refresh
        logging.debug(
            f"🔑 Token issued (lifetime {format_duration(expires_in)}) url={self.token_url} expires_in={expires_in}"
        )
        return Token(
            value=access_token,
            expires_at=int(self._clock()) + int(expires_in),
            token_type=js.get("token_type") or "Bearer",
            scope=js.get("scope"),
        )

    def __repr__(self) -> str:
        return f"OAuth2TokenSource(url={self.token_url!r}, grant_type={self.grant_type!r})"
