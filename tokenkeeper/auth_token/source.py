"""Token source capability and the callable adapter."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from ..errors.internal import FetchError
from .types import Token


@runtime_checkable
class TokenSource(Protocol):
    """Anything that can produce a fresh ``Token``.

    Implementations raise ``FetchError`` (or a subclass) on failure and must
    be safe to call repeatedly.
    """

    async def fetch(self) -> Token: ...


class CallableTokenSource:
    """Adapt a sync or async callable returning a ``Token`` into a source.

    Errors other than ``FetchError`` are wrapped so the refresh actor only
    ever sees fetch failures.
    """

    def __init__(
        self, func: Callable[[], Token | Awaitable[Token]], *, label: str | None = None
    ) -> None:
        if not callable(func):
            raise TypeError("func must be callable")
        self.func = func
        self.label = label or getattr(func, "__name__", type(func).__name__)

    async def fetch(self) -> Token:
        try:
            result = self.func()
            if inspect.isawaitable(result):
                result = await result
        except FetchError:
            raise
        except Exception as e:  # noqa: BLE001
            raise FetchError(
                f"Token source {self.label} failed: {type(e).__name__}: {e}",
                data={"source": self.label},
            ) from e
        if not isinstance(result, Token):
            raise FetchError(
                f"Token source {self.label} returned {type(result).__name__}, expected Token",
                data={"source": self.label},
            )
        return result

    def __repr__(self) -> str:
        return f"CallableTokenSource({self.label})"
