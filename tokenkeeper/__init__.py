"""Token keeper: cache one access token per named credential and refresh it before expiry."""

from .application_context import ApplicationContext
from .auth_token.client import OAuth2TokenSource
from .auth_token.source import CallableTokenSource, TokenSource
from .auth_token.types import Prefetch, RefreshStatus, Token
from .config.model import CredentialConfig
from .errors.internal import (
    DuplicateNameError,
    FetchError,
    NotFoundError,
    RetryBudgetExhausted,
    TokenKeeperError,
)

__all__ = [
    "ApplicationContext",
    "CallableTokenSource",
    "CredentialConfig",
    "DuplicateNameError",
    "FetchError",
    "NotFoundError",
    "OAuth2TokenSource",
    "Prefetch",
    "RefreshStatus",
    "RetryBudgetExhausted",
    "Token",
    "TokenKeeperError",
    "TokenSource",
]
