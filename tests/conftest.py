import logging

import pytest

# Keep test logs quiet unless explicitly requested
logging.getLogger("aiohttp").setLevel(logging.WARNING)


@pytest.fixture(autouse=True)
def _reset_error_aggregator():
    """Start every test with an empty error summary."""
    from tokenkeeper.logging_config import error_aggregator

    error_aggregator.reset()
    yield
    error_aggregator.reset()
