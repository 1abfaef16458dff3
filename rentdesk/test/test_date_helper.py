from datetime import date, datetime, timedelta, timezone

import pytest

from rentdesk.utils.date_helper import is_in_range_inclusive, sort_key_or_epoch, to_date


class FakeTimestamp:
    """Mimics a driver timestamp that converts itself"""

    def __init__(self, value):
        self.value = value

    def as_datetime(self):
        return self.value


class TestToDate:

    def test_iso_string_with_z(self):
        assert to_date("2024-02-10T00:00:00Z") == datetime(2024, 2, 10, tzinfo=timezone.utc)

    @pytest.mark.parametrize("text, micros", [
        ("2024-02-05T10:00:00.5Z", 500000),
        ("2024-02-05T10:00:00.12Z", 120000),
        ("2024-02-05T10:00:00.1234Z", 123400),
        ("2024-02-05T10:00:00.1234567Z", 123456),
    ])
    def test_any_number_of_fraction_digits(self, text, micros):
        assert to_date(text) == datetime(2024, 2, 5, 10, microsecond=micros, tzinfo=timezone.utc)

    def test_fraction_with_offset(self):
        assert to_date("2024-02-05 15:30:00.5+05:30") == datetime(2024, 2, 5, 10, microsecond=500000, tzinfo=timezone.utc)

    def test_iso_string_with_offset_converted_to_utc(self):
        assert to_date("2024-02-10T05:30:00+05:30") == datetime(2024, 2, 10, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        assert to_date(datetime(2024, 2, 10, 12)) == datetime(2024, 2, 10, 12, tzinfo=timezone.utc)

    def test_plain_date_is_midnight(self):
        assert to_date(date(2024, 2, 10)) == datetime(2024, 2, 10, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        assert to_date(86_400_000) == datetime(1970, 1, 2, tzinfo=timezone.utc)

    def test_extended_json(self):
        assert to_date({"$date": "2024-02-10T00:00:00Z"}) == datetime(2024, 2, 10, tzinfo=timezone.utc)

    def test_conversion_accessor(self):
        value = FakeTimestamp(datetime(2024, 2, 10, tzinfo=timezone.utc))
        assert to_date(value) == datetime(2024, 2, 10, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "not a date", True, False, {"foo": 1}, ["2024-01-01"]])
    def test_unparseable_values(self, value):
        assert to_date(value) is None


class TestRangeChecks:

    def setup_method(self):
        self.start = datetime(2024, 2, 1, tzinfo=timezone.utc)
        self.end = datetime(2024, 2, 29, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_boundaries_are_inclusive(self):
        assert is_in_range_inclusive(self.start, self.start, self.end)
        assert is_in_range_inclusive(self.end, self.start, self.end)

    def test_outside(self):
        assert not is_in_range_inclusive(self.start - timedelta(milliseconds=1), self.start, self.end)
        assert not is_in_range_inclusive("2024-03-01T00:00:00Z", self.start, self.end)

    def test_missing_date_is_never_in_range(self):
        assert not is_in_range_inclusive(None, self.start, self.end)
        assert not is_in_range_inclusive("garbage", self.start, self.end)


def test_sort_key_missing_dates_sort_as_epoch():
    assert sort_key_or_epoch(None) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert sort_key_or_epoch("2024-01-01T00:00:00Z") > sort_key_or_epoch(None)
