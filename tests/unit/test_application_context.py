"""
Unit tests for ApplicationContext (client facade and actor registry).
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.fixtures.token_fixtures import ScriptedSource, make_token, wait_until
from tokenkeeper import application_context
from tokenkeeper.application_context import ApplicationContext
from tokenkeeper.config.model import CredentialConfig, CredentialSettings
from tokenkeeper.errors.internal import (
    DuplicateNameError,
    FetchError,
    NotFoundError,
    RetryBudgetExhausted,
)


def _config(source, **overrides):
    settings = {"prefetch": "disabled", "retry_after": 0.01, **overrides}
    return CredentialConfig(source=source, **settings)


class TestApplicationContext:
    """Test class for ApplicationContext functionality."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_source(self):
        """Test fetch returns a cached token without calling the source."""
        ctx = await ApplicationContext.create(with_session=False)
        source = ScriptedSource(make_token())
        try:
            await ctx.start("svc", _config(source))
            cached = make_token("cached")
            ctx.store.put("svc", cached)

            assert await ctx.fetch("svc") is cached
            assert ctx.fetch_nowait("svc") is cached
            assert source.calls == 0
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_cache_hit_does_not_touch_actor(self):
        """Test the fast path never sends a request to the actor."""
        ctx = await ApplicationContext.create(with_session=False)
        try:
            actor = await ctx.start("svc", _config(ScriptedSource(make_token())))
            ctx.store.put("svc", make_token("cached"))

            with patch.object(actor, "request_fetch", new_callable=AsyncMock) as mock_request:
                await ctx.fetch("svc")

            mock_request.assert_not_called()
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_concurrent_cold_reads_share_one_fetch(self):
        """Test N concurrent cold fetches cause one source call and one token."""
        ctx = await ApplicationContext.create(with_session=False)
        token = make_token("shared")
        source = ScriptedSource(token, delay=0.05)
        try:
            await ctx.start("svc", _config(source))

            results = await asyncio.gather(*(ctx.fetch("svc") for _ in range(20)))

            assert source.calls == 1
            assert all(result is token for result in results)
            assert ctx.fetch_nowait("svc") is token
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_concurrent_cold_reads_share_one_error(self):
        """Test N concurrent cold fetches against a failing source get the same error."""
        ctx = await ApplicationContext.create(with_session=False)
        error = FetchError("idp unavailable")
        source = ScriptedSource(error, delay=0.05)
        try:
            await ctx.start("svc", _config(source))

            results = await asyncio.gather(
                *(ctx.fetch("svc") for _ in range(10)), return_exceptions=True
            )

            assert source.calls == 1
            assert all(result is error for result in results)
            assert ctx.fetch_nowait("svc") is None
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_fetch_unknown_name_raises_not_found(self):
        """Test fetch for a name never started raises NotFoundError."""
        ctx = await ApplicationContext.create(with_session=False)
        try:
            with pytest.raises(NotFoundError):
                await ctx.fetch("missing")
            with pytest.raises(NotFoundError):
                ctx.fetch_nowait("missing")
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_start_duplicate_name_raises(self):
        """Test starting the same name twice raises DuplicateNameError."""
        ctx = await ApplicationContext.create(with_session=False)
        try:
            await ctx.start("svc", _config(ScriptedSource(make_token())))
            with pytest.raises(DuplicateNameError):
                await ctx.start("svc", _config(ScriptedSource(make_token())))
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_fetch_value_returns_credential_string(self):
        """Test fetch_value unwraps the token value."""
        ctx = await ApplicationContext.create(with_session=False)
        try:
            await ctx.start("svc", _config(ScriptedSource(make_token("secret")), prefetch="sync"))

            assert await ctx.fetch_value("svc") == "secret"
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_fatal_actor_is_reported_and_removed(self):
        """Test an exhausted retry budget removes the credential and fires fatal hooks."""
        ctx = await ApplicationContext.create(with_session=False)
        fatal_seen = []

        async def on_fatal(name, error):
            fatal_seen.append((name, error))

        ctx.register_fatal_hook("svc", on_fatal)
        source = ScriptedSource(FetchError("boom"))
        try:
            await ctx.start("svc", _config(source, prefetch="async", max_retries=2))

            failures = await asyncio.wait_for(ctx.wait_for_failure(), timeout=2)
            await ctx.hooks.drain()

            assert isinstance(failures["svc"], RetryBudgetExhausted)
            assert "svc" not in ctx.actors
            assert "svc" not in ctx.store
            assert fatal_seen and fatal_seen[0][0] == "svc"
            # One prefetch attempt plus max_retries background attempts.
            assert source.calls == 3
            with pytest.raises(NotFoundError, match="stopped after failure"):
                await ctx.fetch("svc")
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_update_hook_observes_refresh(self):
        """Test update hooks registered on the context see stored tokens."""
        ctx = await ApplicationContext.create(with_session=False)
        seen = []

        async def on_update(name, token):
            seen.append(token.value)

        ctx.register_update_hook("svc", on_update)
        try:
            await ctx.start("svc", _config(ScriptedSource(make_token("v1")), prefetch="sync"))
            await ctx.hooks.drain()

            assert seen == ["v1"]
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_stop_single_credential(self):
        """Test stop removes one credential and leaves the others running."""
        ctx = await ApplicationContext.create(with_session=False)
        try:
            await ctx.start("a", _config(ScriptedSource(make_token("a")), prefetch="sync"))
            await ctx.start("b", _config(ScriptedSource(make_token("b")), prefetch="sync"))

            await ctx.stop("a")

            with pytest.raises(NotFoundError):
                await ctx.fetch("a")
            assert (await ctx.fetch("b")).value == "b"
            with pytest.raises(NotFoundError):
                await ctx.stop("a")
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_stops_actors_and_clears_global(self):
        """Test shutdown stops every actor and clears the global reference."""
        ctx = await ApplicationContext.create(with_session=False)
        actor = await ctx.start("svc", _config(ScriptedSource(make_token()), prefetch="sync"))
        assert application_context.GLOBAL_CONTEXT is ctx

        await ctx.shutdown()

        assert actor.task.done()
        assert ctx.actors == {}
        assert len(ctx.store) == 0
        assert application_context.GLOBAL_CONTEXT is None
        assert ctx.started is False

    @pytest.mark.asyncio
    async def test_start_from_settings_requires_session(self):
        """Test configured sources need the shared HTTP session."""
        ctx = await ApplicationContext.create(with_session=False)
        settings = CredentialSettings.from_dict(
            {
                "name": "svc",
                "source": {
                    "token_url": "https://idp.example.com/token",
                    "client_id": "client",
                    "client_secret": "secret",
                },
            }
        )
        try:
            with pytest.raises(RuntimeError):
                await ctx.start_from_settings(settings)
        finally:
            await ctx.shutdown()

    @pytest.mark.asyncio
    async def test_start_from_settings_builds_oauth2_source(self):
        """Test file settings are turned into an OAuth2 source on the shared session."""
        ctx = ApplicationContext()
        ctx.session = MagicMock()
        ctx.session.close = AsyncMock()
        settings = CredentialSettings.from_dict(
            {
                "name": "svc",
                "prefetch": False,
                "source": {
                    "token_url": "https://idp.example.com/token",
                    "client_id": "client",
                    "client_secret": "secret",
                },
            }
        )
        try:
            actor = await ctx.start_from_settings(settings)

            assert actor.state.source.session is ctx.session
            assert actor.state.source.token_url == "https://idp.example.com/token"
        finally:
            await ctx.shutdown()
        assert ctx.session is None


@pytest.mark.asyncio
async def test_background_refresh_replaces_cached_token():
    """Test the actor swaps in a new token once the refresh timer fires."""
    ctx = await ApplicationContext.create(with_session=False)
    first = make_token("first", lifetime=0.05)
    second = make_token("second", lifetime=3600)
    source = ScriptedSource(first, second)
    try:
        await ctx.start("svc", _config(source, prefetch="sync", refresh_before=0))
        assert ctx.fetch_nowait("svc") is first

        await wait_until(lambda: ctx.fetch_nowait("svc") is second)
        assert source.calls == 2
    finally:
        await ctx.shutdown()


@pytest.mark.asyncio
async def test_stop_then_restart_same_name():
    """Test a credential stopped right after starting can be started again."""
    ctx = await ApplicationContext.create(with_session=False)
    try:
        first = await ctx.start("a", _config(ScriptedSource(make_token("one")), prefetch="sync"))
        await ctx.stop("a")

        assert "a" not in ctx.store
        assert first.next_refresh_in is None
        with pytest.raises(NotFoundError):
            ctx.fetch_nowait("a")

        await ctx.start("a", _config(ScriptedSource(make_token("two")), prefetch="sync"))
        assert (await ctx.fetch("a")).value == "two"
    finally:
        await ctx.shutdown()


@pytest.mark.asyncio
async def test_shutdown_while_retrying_stops_background_attempts():
    """Test shutdown of a retrying actor cancels its pending retry."""
    ctx = await ApplicationContext.create(with_session=False)
    source = ScriptedSource(FetchError("down"))
    actor = await ctx.start(
        "svc", _config(source, prefetch="sync", retry_after=0.05, max_retries=10)
    )
    await wait_until(lambda: source.calls >= 2)

    await ctx.shutdown()
    calls = source.calls
    await asyncio.sleep(0.15)

    assert source.calls == calls
    assert actor._timer is None
    assert actor._mailbox.empty()
    assert ctx.failures == {}


@pytest.mark.asyncio
async def test_concurrent_start_and_stop_are_serialized():
    """Test stop waits for an in-progress start of the same name."""
    ctx = await ApplicationContext.create(with_session=False)
    try:
        start = asyncio.create_task(
            ctx.start("svc", _config(ScriptedSource(make_token(), delay=0.05), prefetch="sync"))
        )
        await asyncio.sleep(0)
        stop = asyncio.create_task(ctx.stop("svc"))

        await start
        await stop

        assert "svc" not in ctx.actors
        assert "svc" not in ctx.store
    finally:
        await ctx.shutdown()
