"""Day-granularity bucket keys in canonical ``YYYY-MM-DD`` form."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime

_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")


class InvalidBucketKeyError(ValueError):
    """Raised when a value cannot be interpreted as a calendar day."""


@dataclass(frozen=True, order=True, slots=True)
class BucketKey:
    """One calendar day of the catalog.

    The canonical string is zero-padded, so sorting the strings sorts the
    days chronologically. Instances compare by their underlying date.
    """

    day: date

    @classmethod
    def parse(cls, value: str) -> BucketKey:
        """Parse ``YYYY-MM-DD``; a trailing time part (``2024-07-10 08:00:00``) is ignored."""

        match = _KEY_PATTERN.match(value.strip())
        if match is None:
            raise InvalidBucketKeyError(f"Invalid bucket key: {value!r}. Expected YYYY-MM-DD.")
        year, month, day = (int(part) for part in match.groups())
        try:
            return cls(date(year, month, day))
        except ValueError as error:
            raise InvalidBucketKeyError(f"Invalid bucket key: {value!r} ({error}).") from error

    @classmethod
    def from_datetime(cls, value: datetime) -> BucketKey:
        """Bucket of a timestamp; aware timestamps are bucketed by their UTC day."""

        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return cls(value.date())

    @classmethod
    def today(cls) -> BucketKey:
        return cls(datetime.now(tz=UTC).date())

    @property
    def value(self) -> str:
        return self.day.isoformat()

    def __str__(self) -> str:
        return self.value


def parse_keys(values: Iterable[str]) -> set[BucketKey]:
    """Parse canonical key strings into a set."""

    return {BucketKey.parse(value) for value in values}
