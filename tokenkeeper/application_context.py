"""Central application context: token store, refresh actors and shared resources."""

from __future__ import annotations

import asyncio
import atexit
import logging
import time
from collections.abc import Callable
from functools import partial

import aiohttp

from .auth_token.hook_manager import FatalHook, HookManager, UpdateHook
from .auth_token.refresher import RefreshActor
from .auth_token.store import TokenStore
from .auth_token.types import Token
from .config.model import CredentialConfig, CredentialSettings
from .errors.handling import log_error
from .errors.internal import DuplicateNameError, NotFoundError

# Global reference for emergency cleanup if normal shutdown is interrupted
GLOBAL_CONTEXT: ApplicationContext | None = None


class ApplicationContext:
    """Process-wide owner of the token store and one refresh actor per credential.

    Readers call ``fetch(name)``: a cached token is returned straight from
    the store; an empty cache falls back to the owning actor. Actors that die
    (retry budget exhausted) are dropped from the registry and reported
    through ``log_error`` and the fatal hooks; restarting them is left to
    whoever supervises the process.
    """

    # Class / instance attribute type declarations (helps mypy)
    session: aiohttp.ClientSession | None
    store: TokenStore
    hooks: HookManager
    actors: dict[str, RefreshActor]
    failures: dict[str, BaseException]
    _started: bool
    _lock: asyncio.Lock

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self.session = None
        self.store = TokenStore()
        self.hooks = HookManager()
        self.actors = {}
        self.failures = {}
        self._clock = clock
        self._started = False
        self._lock = asyncio.Lock()
        self._fatal_event = asyncio.Event()

    # ------------------------- Construction ------------------------- #
    @classmethod
    async def create(
        cls, *, with_session: bool = True, clock: Callable[[], float] = time.time
    ) -> ApplicationContext:
        """Create a new ApplicationContext, optionally with an HTTP session.

        The session is needed by sources built from file settings
        (``start_from_settings``); contexts fed only with caller-supplied
        sources can skip it.
        """
        ctx = cls(clock=clock)
        logging.debug("🧪 Creating application context")
        if with_session:
            ctx.session = aiohttp.ClientSession()
            logging.debug("🔗 HTTP session created")
        global GLOBAL_CONTEXT  # noqa: PLW0603
        GLOBAL_CONTEXT = ctx
        ctx._started = True
        return ctx

    # --------------------------- Lifecycle -------------------------- #
    async def start(self, name: str, config: CredentialConfig) -> RefreshActor:
        """Start the refresh actor for ``name``.

        Raises:
            DuplicateNameError: If an actor for ``name`` is already running.
        """
        async with self._lock:
            if name in self.actors:
                raise DuplicateNameError(name)
            actor = RefreshActor(
                name, config, self.store, hooks=self.hooks, clock=self._clock
            )
            await actor.start()
            self.actors[name] = actor
            self.failures.pop(name, None)
            if actor.task is None:
                raise RuntimeError(f"refresh actor has no task name={name}")
            actor.task.add_done_callback(partial(self._on_actor_done, name, actor))
        logging.info(
            f"🚀 Credential started name={name} prefetch={actor.prefetch.value} "
            f"refresh_before={config.refresh_before}s retry_after={config.retry_after}s max_retries={config.max_retries}"
        )
        return actor

    async def start_from_settings(self, settings: CredentialSettings) -> RefreshActor:
        """Start a credential described in the configuration file."""
        if self.session is None:
            raise RuntimeError("HTTP session required for configured sources")
        return await self.start(settings.name, settings.to_config(self.session))

    async def stop(self, name: str) -> None:
        """Stop the actor for ``name`` and drop its cache entry."""
        async with self._lock:
            actor = self.actors.pop(name, None)
            if actor is None:
                raise NotFoundError(name)
            await actor.stop()
            self.hooks.forget(name)

    async def shutdown(self) -> None:
        """Stop every actor, drain hooks and close the HTTP session."""
        async with self._lock:
            logging.info("🔻 Application context shutdown initiated")
            actors = list(self.actors.items())
            self.actors.clear()
            for name, actor in actors:
                try:
                    await actor.stop()
                except (RuntimeError, ValueError) as e:
                    logging.error(f"💥 Error stopping refresh actor name={name}: {str(e)}")
            await self.hooks.drain()
            await self._close_http_session()
            self._started = False
            logging.info("✅ Application context shutdown complete")
            global GLOBAL_CONTEXT  # noqa: PLW0603
            if GLOBAL_CONTEXT is self:
                GLOBAL_CONTEXT = None

    async def _close_http_session(self) -> None:
        if not self.session:
            return
        try:
            await self.session.close()
        except (aiohttp.ClientError, OSError, ValueError) as e:
            logging.error(f"💥 Error closing HTTP session: {str(e)}")
        finally:
            self.session = None

    def _on_actor_done(self, name: str, actor: RefreshActor, task: asyncio.Task[None]) -> None:
        if self.actors.get(name) is actor:
            del self.actors[name]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self.failures[name] = exc
        log_error(
            "Refresh actor terminated",
            exc,
            context={"name": name, "status": actor.status.value},
        )
        self.hooks.fire_fatal(name, exc)
        self._fatal_event.set()

    async def wait_for_failure(self) -> dict[str, BaseException]:
        """Block until any actor terminates with an error; return all failures."""
        await self._fatal_event.wait()
        return dict(self.failures)

    # ---------------------------- Readers --------------------------- #
    async def fetch(self, name: str) -> Token:
        """Return a token for ``name``.

        Fast path: the cached token, without involving the actor. Slow path
        (empty cache): one on-demand fetch performed by the owning actor,
        shared by every concurrent caller.

        Raises:
            NotFoundError: No running credential is registered under ``name``.
            FetchError: The on-demand fetch failed.
        """
        token = self.fetch_nowait(name)
        if token is not None:
            return token
        actor = self.actors.get(name)
        if actor is None:
            raise NotFoundError(name)
        return await actor.request_fetch()

    def fetch_nowait(self, name: str) -> Token | None:
        """Return the cached token for ``name`` or None if the cache is empty.

        Raises:
            NotFoundError: No credential is registered under ``name``.
        """
        failure = self.failures.get(name)
        if failure is not None and name not in self.store:
            raise NotFoundError(
                name, f"Credential name={name!r} stopped after failure: {failure}"
            ) from failure
        return self.store.get(name).token

    async def fetch_value(self, name: str) -> str:
        """Like ``fetch`` but returns only the credential string."""
        return (await self.fetch(name)).value

    # ----------------------------- Hooks ---------------------------- #
    def register_update_hook(self, name: str, hook: UpdateHook) -> None:
        self.hooks.register_update_hook(name, hook)

    def register_fatal_hook(self, name: str, hook: FatalHook) -> None:
        self.hooks.register_fatal_hook(name, hook)

    @property
    def started(self) -> bool:
        return self._started


# -------------------- Atexit Fallback (best-effort) -------------------- #
def _atexit_close() -> None:  # pragma: no cover - process teardown path
    """Close a lingering HTTP session if the process exits without shutdown."""
    ctx = GLOBAL_CONTEXT
    if not ctx:
        return
    session = ctx.session
    if not session or session.closed:
        return
    try:
        asyncio.get_running_loop()
        logging.debug("HTTP session cleanup skipped - event loop running")
    except RuntimeError:
        try:
            asyncio.run(session.close())
            logging.debug("HTTP session closed at exit")
        except (RuntimeError, OSError, aiohttp.ClientError) as e:
            logging.warning(f"HTTP session close error at exit: {e}")


atexit.register(_atexit_close)
