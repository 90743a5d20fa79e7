from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..auth_token.client import GRANT_REFRESH_TOKEN, OAuth2TokenSource
from ..auth_token.types import Prefetch
from ..constants import (
    HTTP_REQUEST_TIMEOUT_SECONDS,
    SOURCE_MAX_ATTEMPTS,
    TOKEN_MAX_RETRIES,
    TOKEN_REFRESH_BEFORE_SECONDS,
    TOKEN_RETRY_AFTER_SECONDS,
)


def _normalize_prefetch(v: Any) -> Any:
    # `false` in a config file means the same as "disabled".
    if v is False or v is None:
        return Prefetch.DISABLED
    if isinstance(v, str):
        return v.strip().lower()
    return v


class CredentialConfig(BaseModel):
    """Runtime settings for one refresh actor.

    Attributes:
        source: Object with an async ``fetch()`` returning a ``Token``.
        refresh_before: Seconds before expiry at which to refresh.
        retry_after: Seconds between background retries after a failure.
        prefetch: How the first token is obtained.
        max_retries: Consecutive background failures tolerated before fatal.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source: Any
    refresh_before: float = Field(default=TOKEN_REFRESH_BEFORE_SECONDS, ge=0)
    retry_after: float = Field(default=TOKEN_RETRY_AFTER_SECONDS, ge=0)
    prefetch: Prefetch = Prefetch.SYNC
    max_retries: int = Field(default=TOKEN_MAX_RETRIES, ge=1)

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: Any) -> Any:
        """Require an object exposing a callable ``fetch``."""
        if not callable(getattr(v, "fetch", None)):
            raise ValueError("source must provide an async fetch() method")
        return v

    @field_validator("prefetch", mode="before")
    @classmethod
    def normalize_prefetch(cls, v: Any) -> Any:
        return _normalize_prefetch(v)


class OAuth2SourceSettings(BaseModel):
    """File form of an OAuth2 token endpoint source."""

    type: Literal["oauth2"] = "oauth2"
    token_url: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    client_secret: str | None = None
    grant_type: Literal["client_credentials", "refresh_token"] = "client_credentials"
    refresh_token: str | None = None
    scope: str | None = None
    timeout: float = Field(default=HTTP_REQUEST_TIMEOUT_SECONDS, gt=0)
    max_attempts: int = Field(default=SOURCE_MAX_ATTEMPTS, ge=1)

    @field_validator("token_url")
    @classmethod
    def validate_token_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("token_url must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def validate_grant(self) -> OAuth2SourceSettings:
        """Check the grant has the credentials it needs."""
        if self.grant_type == GRANT_REFRESH_TOKEN and not self.refresh_token:
            raise ValueError("refresh_token grant requires refresh_token")
        if self.grant_type == "client_credentials" and not self.client_secret:
            raise ValueError("client_credentials grant requires client_secret")
        return self

    def build(self, http_session: aiohttp.ClientSession) -> OAuth2TokenSource:
        return OAuth2TokenSource(
            self.token_url,
            self.client_id,
            self.client_secret,
            http_session,
            grant_type=self.grant_type,
            refresh_token=self.refresh_token,
            scope=self.scope,
            timeout=self.timeout,
            max_attempts=self.max_attempts,
        )


class CredentialSettings(BaseModel):
    """One credential entry as written in the configuration file."""

    name: str = Field(min_length=1, max_length=128)
    source: OAuth2SourceSettings
    refresh_before: float = Field(default=TOKEN_REFRESH_BEFORE_SECONDS, ge=0)
    retry_after: float = Field(default=TOKEN_RETRY_AFTER_SECONDS, ge=0)
    prefetch: Prefetch = Prefetch.SYNC
    max_retries: int = Field(default=TOKEN_MAX_RETRIES, ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("prefetch", mode="before")
    @classmethod
    def normalize_prefetch(cls, v: Any) -> Any:
        return _normalize_prefetch(v)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CredentialSettings:
        return cls.model_validate(dict(data))

    def to_config(self, http_session: aiohttp.ClientSession) -> CredentialConfig:
        """Build the runtime config, wiring the source to ``http_session``."""
        return CredentialConfig(
            source=self.source.build(http_session),
            refresh_before=self.refresh_before,
            retry_after=self.retry_after,
            prefetch=self.prefetch,
            max_retries=self.max_retries,
        )
