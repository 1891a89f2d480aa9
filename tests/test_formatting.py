import pytest

from recall.formatting import format_age, iso_timestamp, relevance_percent

NOW = 1_700_000_000_000


def test_iso_timestamp():
    assert iso_timestamp(0) == "1970-01-01T00:00:00.000Z"
    assert iso_timestamp(NOW + 123) == "2023-11-14T22:13:20.123Z"


@pytest.mark.parametrize(
    "delta, expected",
    [
        (0, "just now"),
        (-5_000, "just now"),
        (59_000, "just now"),
        (60_000, "1 minute ago"),
        (5 * 60_000, "5 minutes ago"),
        (3_600_000, "1 hour ago"),
        (3 * 3_600_000 + 59_000, "3 hours ago"),
        (86_400_000, "1 day ago"),
        (12 * 86_400_000, "12 days ago"),
    ],
)
def test_format_age(delta, expected):
    assert format_age(NOW - delta, NOW) == expected


def test_relevance_percent():
    assert relevance_percent(0.876) == "88%"
    assert relevance_percent(1.0) == "100%"
    assert relevance_percent(0.0) == "0%"
