"""Hook management for token updates and actor failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from .types import Token

UpdateHook = Callable[[str, Token], Coroutine[Any, Any, None]]
FatalHook = Callable[[str, BaseException], Coroutine[Any, Any, None]]


class HookManager:
    """Manages registration and firing of update and fatal hooks.

    Hooks observe the refresh lifecycle (persistence, metrics, alerting)
    without taking part in it: each one runs as a retained fire-and-forget
    task and its errors are only logged.
    """

    def __init__(self) -> None:
        self._update_hooks: dict[str, list[UpdateHook]] = {}
        self._fatal_hooks: dict[str, list[FatalHook]] = {}
        # Retained background tasks to prevent premature GC.
        self._hook_tasks: set[asyncio.Task[Any]] = set()

    def register_update_hook(self, name: str, hook: UpdateHook) -> None:
        """Register a coroutine hook invoked after a token is stored.

        Hooks are additive (multiple hooks can be registered per credential).
        """
        self._update_hooks.setdefault(name, []).append(hook)

    def register_fatal_hook(self, name: str, hook: FatalHook) -> None:
        """Register a coroutine hook invoked when the refresh actor dies."""
        self._fatal_hooks.setdefault(name, []).append(hook)

    def fire_update(self, name: str, token: Token) -> None:
        for hook in self._update_hooks.get(name, ()):
            self._create_retained_task(hook(name, token), category="update_hook")

    def fire_fatal(self, name: str, error: BaseException) -> None:
        for hook in self._fatal_hooks.get(name, ()):
            self._create_retained_task(hook(name, error), category="fatal_hook")

    def forget(self, name: str) -> None:
        self._update_hooks.pop(name, None)
        self._fatal_hooks.pop(name, None)

    async def drain(self) -> None:
        """Wait for in-flight hook tasks (used during shutdown)."""
        if self._hook_tasks:
            await asyncio.gather(*list(self._hook_tasks), return_exceptions=True)

    def _create_retained_task(
        self, coro: Coroutine[Any, Any, Any], *, category: str
    ) -> asyncio.Task[Any]:
        task: asyncio.Task[Any] = asyncio.create_task(coro)
        self._hook_tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._hook_tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc:
                logging.warning(
                    f"⚠️ Hook task error category={category} error={str(exc)} type={type(exc).__name__}"
                )

        task.add_done_callback(_done)
        return task
