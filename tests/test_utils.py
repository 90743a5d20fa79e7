from __future__ import annotations

import pytest

from tokenkeeper.auth_token.types import RefreshState, Token
from tokenkeeper.utils import format_duration


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0s"),
        (59, "59s"),
        (65, "1m 5s"),
        (3605, "1h 0m 5s"),
        (90061, "1d 1h 1m 1s"),
        (12.9, "12s"),
        (-3, "0s"),
        (None, "unknown"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_token_repr_hides_value():
    token = Token(value="super-secret", expires_at=100, scope="read")
    assert "super-secret" not in repr(token)
    assert "expires_at=100" in repr(token)


def test_token_remaining_seconds():
    token = Token(value="v", expires_at=1_000.5)
    assert token.remaining_seconds(now=1_000) == 0.5
    assert token.remaining_seconds(now=2_000) < 0


def test_token_is_immutable():
    token = Token(value="v", expires_at=1)
    with pytest.raises(AttributeError):
        token.value = "other"


def test_refresh_state_starts_with_full_budget():
    state = RefreshState(
        name="svc", source=object(), retry_after=1.0, refresh_before=300, max_retries=3
    )
    assert state.retries_remaining == 3
    state.retries_remaining = 1
    state.reset_retries()
    assert state.retries_remaining == 3
