"""
Unit tests for main.py
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tokenkeeper.errors.internal import ConfigError, RetryBudgetExhausted
from tokenkeeper.main import main, run, run_keeper
from tokenkeeper.signal_handler import SignalHandler


def _mock_context(failure_waiter=None):
    ctx = MagicMock()
    ctx.start_from_settings = AsyncMock()
    ctx.shutdown = AsyncMock()

    async def never():
        await asyncio.Event().wait()

    ctx.wait_for_failure = failure_waiter or never
    return ctx


class TestRunKeeper:
    """Test class for run_keeper."""

    @pytest.mark.asyncio
    async def test_shutdown_signal_returns_zero(self):
        """Test a shutdown request stops the keeper cleanly."""
        loader = MagicMock()
        loader.get_configuration.return_value = ["s1", "s2"]
        ctx = _mock_context()
        signals = SignalHandler()

        with patch(
            "tokenkeeper.main.ApplicationContext.create", new=AsyncMock(return_value=ctx)
        ):
            task = asyncio.create_task(run_keeper(loader, signals))
            await asyncio.sleep(0.01)
            signals.stop()
            status = await asyncio.wait_for(task, timeout=1)

        assert status == 0
        assert ctx.start_from_settings.await_count == 2
        ctx.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fatal_actor_returns_one(self):
        """Test a failed actor ends the keeper with status 1."""
        loader = MagicMock()
        loader.get_configuration.return_value = ["s1"]

        async def failed():
            return {"svc": RetryBudgetExhausted("svc", 3, None)}

        ctx = _mock_context(failed)

        with patch(
            "tokenkeeper.main.ApplicationContext.create", new=AsyncMock(return_value=ctx)
        ):
            status = await run_keeper(loader, SignalHandler())

        assert status == 1
        ctx.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_still_shuts_down(self):
        """Test the context is shut down when a credential fails to start."""
        loader = MagicMock()
        loader.get_configuration.return_value = ["s1"]
        ctx = _mock_context()
        ctx.start_from_settings.side_effect = RuntimeError("boom")

        with patch(
            "tokenkeeper.main.ApplicationContext.create", new=AsyncMock(return_value=ctx)
        ):
            with pytest.raises(RuntimeError):
                await run_keeper(loader, SignalHandler())

        ctx.shutdown.assert_awaited_once()


class TestMain:
    """Test class for main and run."""

    @pytest.mark.asyncio
    async def test_main_config_error(self):
        """Test configuration errors are logged and yield status 1."""
        with patch(
            "tokenkeeper.main.run_keeper", new=AsyncMock(side_effect=ConfigError("missing"))
        ), patch("tokenkeeper.main.log_error") as mock_log_error, patch(
            "tokenkeeper.main.SignalHandler.setup_signal_handlers"
        ):
            status = await main()

        assert status == 1
        args = mock_log_error.call_args[0]
        assert args[0] == "Configuration error"
        assert isinstance(args[1], ConfigError)

    @pytest.mark.asyncio
    async def test_main_returns_keeper_status(self):
        """Test main returns the status of run_keeper."""
        with patch("tokenkeeper.main.run_keeper", new=AsyncMock(return_value=0)), patch(
            "tokenkeeper.main.SignalHandler.setup_signal_handlers"
        ):
            assert await main() == 0

    def test_run_exits_with_status(self):
        """Test run exits with the status returned by main."""
        with patch("tokenkeeper.main.LoggerConfigurator"), patch(
            "tokenkeeper.main.main", new=AsyncMock(return_value=1)
        ):
            with pytest.raises(SystemExit) as exc_info:
                run()

        assert exc_info.value.code == 1

    def test_run_keyboard_interrupt(self):
        """Test Ctrl+C exits with status 0."""
        with patch("tokenkeeper.main.LoggerConfigurator"), patch(
            "tokenkeeper.main.main", new=MagicMock()
        ), patch(
            "tokenkeeper.main.asyncio.run", side_effect=KeyboardInterrupt
        ):
            with pytest.raises(SystemExit) as exc_info:
                run()

        assert exc_info.value.code == 0

    def test_run_unexpected_error(self):
        """Test unexpected errors are logged and exit with status 1."""
        with patch("tokenkeeper.main.LoggerConfigurator"), patch(
            "tokenkeeper.main.main", new=MagicMock()
        ), patch(
            "tokenkeeper.main.asyncio.run", side_effect=ValueError("bad")
        ), patch("tokenkeeper.main.log_error") as mock_log_error:
            with pytest.raises(SystemExit) as exc_info:
                run()

        assert exc_info.value.code == 1
        assert mock_log_error.call_args[0][0] == "Top-level error"


class TestSignalHandler:
    """Test class for SignalHandler."""

    @pytest.mark.asyncio
    async def test_stop_sets_event_once(self):
        """Test stop is idempotent and sets the shutdown event."""
        signals = SignalHandler()

        signals.stop()
        signals.stop()

        assert signals.shutdown_initiated is True
        assert signals.shutdown_event.is_set()
