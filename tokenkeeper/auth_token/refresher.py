"""Refresh actor: the single owner and writer of one credential's token."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors.internal import (
    ActorStoppedError,
    FetchError,
    RetryBudgetExhausted,
)
from ..utils import format_duration
from .hook_manager import HookManager
from .store import TokenStore
from .types import Prefetch, RefreshState, RefreshStatus, Token

if TYPE_CHECKING:
    from ..config.model import CredentialConfig


@dataclass(frozen=True)
class _Tick:
    generation: int


@dataclass(frozen=True)
class _FetchRequest:
    future: asyncio.Future[Token]


_PREFETCH = object()


def _mark_retrieved(future: asyncio.Future[Any]) -> None:
    # Every caller may have gone away; don't warn about an unread exception.
    if not future.cancelled():
        future.exception()


class RefreshActor:
    """Mailbox-driven task that keeps one credential's token fresh.

    The actor is the only writer of its credential's entry in the
    ``TokenStore``. It processes one command at a time from its mailbox:
    timer ticks (background refresh), the deferred prefetch, and on-demand
    fetch requests from readers that found the cache empty. Exactly one
    refresh timer is armed at any moment; arming a new one invalidates any
    tick from the previous timer that is still sitting in the mailbox.

    Background failures are retried every ``retry_after`` seconds until
    ``max_retries`` consecutive attempts have failed, at which point the
    actor task ends with ``RetryBudgetExhausted``.
    """

    def __init__(
        self,
        name: str,
        config: CredentialConfig,
        store: TokenStore,
        *,
        hooks: HookManager | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.state = RefreshState(
            name=name,
            source=config.source,
            retry_after=config.retry_after,
            refresh_before=config.refresh_before,
            max_retries=config.max_retries,
        )
        self.prefetch = Prefetch(config.prefetch)
        self.store = store
        self.hooks = hooks
        self.status = RefreshStatus.IDLE
        self.next_refresh_in: float | None = None
        self._clock = clock
        self._mailbox: asyncio.Queue[Any] = asyncio.Queue()
        self._timer: asyncio.TimerHandle | None = None
        self._generation = 0
        self._pending: asyncio.Future[Token] | None = None
        self._task: asyncio.Task[None] | None = None
        self._torn_down = False

    # --------------------------- Lifecycle -------------------------- #
    async def start(self) -> None:
        """Register the credential and begin the refresh lifecycle.

        With ``Prefetch.SYNC`` this waits for one fetch attempt; a failure
        does not raise, it leaves the cache empty and queues an immediate
        background retry.

        Raises:
            DuplicateNameError: If the name is already registered in the store.
        """
        if self._task is not None:
            raise RuntimeError(f"refresh actor already started name={self.name}")
        self.store.register(self.name, self.state.source)
        try:
            if self.prefetch is Prefetch.SYNC:
                await self._prefetch()
            elif self.prefetch is Prefetch.ASYNC:
                self._mailbox.put_nowait(_PREFETCH)
        except BaseException:
            self._cancel_timer()
            self.store.unregister(self.name)
            raise
        self._task = asyncio.create_task(
            self._run(), name=f"refresh-actor:{self.name}"
        )
        logging.debug(
            f"▶️ Started refresh actor name={self.name} prefetch={self.prefetch.value}"
        )

    async def stop(self) -> None:
        """Cancel the pending timer and the actor task.

        An in-flight fetch is abandoned. Outstanding on-demand callers get
        ``ActorStoppedError``.
        """
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
            # wait() never raises the task's own exception or cancellation.
            await asyncio.wait([task])
        # A task cancelled before its first step never enters _run.
        self._teardown()
        logging.debug(f"⏹️ Stopped refresh actor name={self.name}")

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def retries_remaining(self) -> int:
        return self.state.retries_remaining

    # ------------------------- Public requests ---------------------- #
    async def request_fetch(self) -> Token:
        """Ask the actor for a token after a cache miss.

        Callers arriving while a request is still outstanding share it, so a
        burst of cold reads results in a single call to the token source.

        Raises:
            FetchError: The single fetch attempt failed.
            ActorStoppedError: The actor stopped before answering.
            RetryBudgetExhausted: The actor died while the request was queued.
        """
        if not self.running:
            raise ActorStoppedError(
                f"Refresh actor not running name={self.name}",
                data={"name": self.name},
            )
        if self._pending is None or self._pending.done():
            future: asyncio.Future[Token] = asyncio.get_running_loop().create_future()
            future.add_done_callback(_mark_retrieved)
            self._pending = future
            self._mailbox.put_nowait(_FetchRequest(future))
        # One caller giving up must not cancel the answer for the others.
        return await asyncio.shield(self._pending)

    def next_refresh_delay(self, token: Token) -> float:
        """Seconds until the proactive refresh for ``token``, never negative."""
        return max(
            token.expires_at - self._clock() - self.state.refresh_before, 0
        )

    # ---------------------------- Actor loop ------------------------ #
    async def _run(self) -> None:
        try:
            while True:
                command = await self._mailbox.get()
                if isinstance(command, _Tick):
                    if command.generation != self._generation:
                        # Superseded by a later arm; drop it.
                        continue
                    self._timer = None
                    await self._refresh()
                elif isinstance(command, _FetchRequest):
                    await self._handle_fetch(command.future)
                elif command is _PREFETCH:
                    await self._prefetch()
        except RetryBudgetExhausted as e:
            self._reject_pending(e)
            raise
        finally:
            self._teardown()

    def _teardown(self) -> None:
        # Runs once, from whichever of _run / stop gets there first.
        if self._torn_down:
            return
        self._torn_down = True
        self._cancel_timer()
        self._reject_pending(
            ActorStoppedError(
                f"Refresh actor stopped name={self.name}",
                data={"name": self.name},
            )
        )
        self.store.unregister(self.name)
        if self.status is not RefreshStatus.FATAL:
            self.status = RefreshStatus.STOPPED

    async def _prefetch(self) -> None:
        # Fill the cache once at boot; a failure falls through to the
        # regular background retry cycle straight away.
        try:
            token = await self._fetch_once()
        except FetchError as e:
            logging.warning(
                f"⚠️ Initial token fetch failed name={self.name} error={str(e)} type={type(e).__name__}"
            )
            self.store.put(self.name, None)
            self.status = RefreshStatus.RETRYING
            self._arm(0)
            return
        self._store_and_schedule(token)

    async def _refresh(self) -> None:
        try:
            token = await self._fetch_once()
        except FetchError as e:
            if self.state.retries_remaining > 1:
                self.state.retries_remaining -= 1
                self.status = RefreshStatus.RETRYING
                logging.warning(
                    f"🔁 Token refresh failed name={self.name} retries_remaining={self.state.retries_remaining} "
                    f"retry_in={self.state.retry_after}s error={str(e)} type={type(e).__name__}"
                )
                self._arm(self.state.retry_after)
                return
            self.status = RefreshStatus.FATAL
            raise RetryBudgetExhausted(
                self.name, self.state.max_retries, e
            ) from e
        self._store_and_schedule(token)
        self.state.reset_retries()

    async def _handle_fetch(self, future: asyncio.Future[Token]) -> None:
        if future.done():
            return
        # A refresh may have landed while the request waited in the mailbox.
        cached = self.store.get(self.name).token
        if cached is not None:
            future.set_result(cached)
            return
        try:
            token = await self._fetch_once()
        except FetchError as e:
            # Reported to the caller only; the background cycle and its
            # retry budget are left as they are.
            logging.warning(
                f"⚠️ On-demand token fetch failed name={self.name} error={str(e)} type={type(e).__name__}"
            )
            if not future.done():
                future.set_exception(e)
            return
        self._store_and_schedule(token)
        self.state.reset_retries()
        if not future.done():
            future.set_result(token)

    async def _fetch_once(self) -> Token:
        try:
            token = await self.state.source.fetch()
        except FetchError:
            raise
        except Exception as e:  # noqa: BLE001
            raise FetchError(
                f"Unexpected token source error name={self.name}: {type(e).__name__}: {e}",
                data={"name": self.name},
            ) from e
        if not isinstance(token, Token):
            raise FetchError(
                f"Token source returned {type(token).__name__}, expected Token name={self.name}",
                data={"name": self.name},
            )
        return token

    def _store_and_schedule(self, token: Token) -> None:
        self.store.put(self.name, token)
        delay = self.next_refresh_delay(token)
        self._arm(delay)
        self.status = RefreshStatus.SCHEDULED
        logging.info(
            f"✅ Token stored name={self.name} expires_in={format_duration(token.remaining_seconds(self._clock()))} "
            f"next_refresh_in={format_duration(delay)}"
        )
        if self.hooks is not None:
            self.hooks.fire_update(self.name, token)

    # ------------------------------ Timer --------------------------- #
    def _arm(self, delay: float) -> None:
        self._cancel_timer()
        tick = _Tick(self._generation)
        self._timer = asyncio.get_running_loop().call_later(
            delay, self._mailbox.put_nowait, tick
        )
        self.next_refresh_in = delay

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.next_refresh_in = None
        # Invalidate any tick already delivered but not yet processed.
        self._generation += 1

    def _reject_pending(self, error: BaseException) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(error)
        self._pending = None
