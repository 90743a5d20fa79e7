"""SignalHandler - turns SIGINT/SIGTERM into an orderly shutdown request."""

import asyncio
import logging
import signal


class SignalHandler:
    """Handler for system signals and shutdown coordination."""

    def __init__(self) -> None:
        self.shutdown_initiated = False
        self.shutdown_event = asyncio.Event()

    def stop(self) -> None:
        """Request shutdown (idempotent)."""
        if self.shutdown_initiated:
            return
        self.shutdown_initiated = True
        self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:  # pragma: no cover
        """Install SIGINT/SIGTERM handlers on the running event loop."""
        loop = asyncio.get_running_loop()

        def handler(signum: int) -> None:
            if self.shutdown_initiated:
                return
            logging.warning(
                f"🛑 Signal received - initiating shutdown (signal={signum})"
            )
            self.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, handler, signum)
            except (NotImplementedError, RuntimeError):
                # Platforms without loop signal support fall back to KeyboardInterrupt.
                logging.debug(f"Signal handler not installed signal={signum}")
