"""Utility functions package for the token keeper.

Exposed functions:
    format_duration: Formats time durations into human-readable strings.
"""

from .helpers import format_duration

__all__ = ["format_duration"]
