from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import allure
import pytest

from daily_sitemaps.catalog.keys import BucketKey, InvalidBucketKeyError, parse_keys

pytestmark = [
    allure.epic("Sitemap Catalog"),
    allure.feature("Bucket Keys"),
]


def test_parse_accepts_canonical_form() -> None:
    key = BucketKey.parse("2024-07-10")

    assert key.day == date(2024, 7, 10)
    assert key.value == "2024-07-10"
    assert str(key) == "2024-07-10"


def test_parse_truncates_datetime_suffix_to_day() -> None:
    assert BucketKey.parse("2024-07-10 12:00:00") == BucketKey(date(2024, 7, 10))


def test_parse_pads_single_digit_parts() -> None:
    assert BucketKey.parse("2024-7-1").value == "2024-07-01"


@pytest.mark.parametrize("value", ["", "2024-13-01", "2024-02-30", "10/07/2024", "yesterday"])
def test_parse_rejects_non_calendar_values(value: str) -> None:
    with pytest.raises(InvalidBucketKeyError):
        BucketKey.parse(value)


def test_invalid_key_error_is_value_error() -> None:
    with pytest.raises(ValueError, match="Invalid bucket key"):
        BucketKey.parse("not-a-date")


def test_keys_order_chronologically_like_their_strings() -> None:
    values = ["2024-12-31", "2023-01-02", "2024-01-10", "2024-01-09"]

    keys = sorted(BucketKey.parse(value) for value in values)

    assert [key.value for key in keys] == sorted(values)


def test_from_datetime_uses_utc_day_for_aware_values() -> None:
    late_evening_west = datetime(2024, 7, 10, 22, 30, tzinfo=timezone(timedelta(hours=-5)))

    assert BucketKey.from_datetime(late_evening_west).value == "2024-07-11"
    assert BucketKey.from_datetime(datetime(2024, 7, 10, 23, 59, tzinfo=UTC)).value == "2024-07-10"


def test_parse_keys_deduplicates() -> None:
    assert parse_keys(["2024-07-10", "2024-07-10 08:00:00", "2024-07-11"]) == {
        BucketKey(date(2024, 7, 10)),
        BucketKey(date(2024, 7, 11)),
    }
