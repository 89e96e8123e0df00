import pytest

from hn_timeline.timefmt import get_relative_time

NOW = 1_700_000_000


@pytest.mark.parametrize(
    "delta, expected",
    [
        (0, "just now"),
        (59, "just now"),
        (60, "1m ago"),
        (3599, "59m ago"),
        (3600, "1h ago"),
        (86399, "23h ago"),
        (86400, "1d ago"),
        (86400 * 10, "10d ago"),
    ],
)
def test_relative_time(delta, expected):
    assert get_relative_time(NOW - delta, now=NOW) == expected


def test_relative_time_missing_timestamp():
    assert get_relative_time(0, now=NOW) == ""


def test_future_timestamp_is_just_now():
    assert get_relative_time(NOW + 100, now=NOW) == "just now"
