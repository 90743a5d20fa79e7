#!/usr/bin/env python3
"""
Main entry point for the token keeper daemon
"""

import asyncio
import logging
import sys

from .application_context import ApplicationContext
from .config import ConfigLoader
from .errors.handling import log_error
from .errors.internal import ConfigError
from .logging_config import LoggerConfigurator
from .signal_handler import SignalHandler


async def run_keeper(loader: ConfigLoader, signals: SignalHandler) -> int:
    """Start every configured credential and wait for a signal or a fatal actor.

    Returns:
        Process exit status: 0 after a requested shutdown, 1 when an actor
        exhausted its retry budget.
    """
    settings = loader.get_configuration()
    ctx = await ApplicationContext.create()
    try:
        for entry in settings:
            await ctx.start_from_settings(entry)
        shutdown = asyncio.create_task(signals.shutdown_event.wait())
        failure = asyncio.create_task(ctx.wait_for_failure())
        done, pending = await asyncio.wait(
            {shutdown, failure}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if failure in done:
            names = ", ".join(sorted(failure.result()))
            logging.critical(f"💀 Refresh actor failed, exiting names={names}")
            return 1
        return 0
    finally:
        await ctx.shutdown()


async def main() -> int:
    """Main entry point for the token keeper daemon.

    Loads configuration, starts one refresh actor per credential and runs
    until interrupted.
    """
    signals = SignalHandler()
    signals.setup_signal_handlers()
    try:
        logging.info("🚀 Starting token keeper")
        return await run_keeper(ConfigLoader(), signals)
    except asyncio.CancelledError:
        raise
    except ConfigError as e:
        log_error("Configuration error", e)
        return 1
    finally:
        logging.info("✅ Application shutdown complete")


def run() -> None:
    """Synchronous entry point for the application."""
    LoggerConfigurator().configure()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)
    except asyncio.CancelledError:
        sys.exit(0)
    except Exception as e:
        log_error("Top-level error", e)
        sys.exit(1)


if __name__ == "__main__":
    run()
