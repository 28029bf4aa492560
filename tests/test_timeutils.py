import pytest

from alertmigrator.core.timeutils import format_duration, ns_to_seconds, parse_duration, parse_relative_time, seconds_to_ns


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0s"), (59, "59s"), (300, "5m"), (3600, "1h"), (8736 * 3600, "52w"), (90061, "1d1h1m1s")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_parse_duration():
    assert parse_duration("5m") == 300
    assert parse_duration("1h30m") == 5400
    with pytest.raises(ValueError):
        parse_duration("5 minutes")


def test_parse_relative_time():
    assert parse_relative_time("now") == 0
    assert parse_relative_time("now-10m") == 600
    assert parse_relative_time("1h") == 3600


def test_nanoseconds():
    assert seconds_to_ns(2) == 2_000_000_000
    assert ns_to_seconds(3_500_000_000) == 3
    assert ns_to_seconds(None) == 0
