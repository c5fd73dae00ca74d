"""Tests for timestamp normalization"""

from datetime import datetime, timedelta, timezone

import pytest

from chaton.utils.timestamps import SERVER_TIMESTAMP, PendingTimestamp, to_instant


class TestToInstant:
    """Test to_instant"""

    def test_pending_marker_is_none(self):
        assert to_instant(SERVER_TIMESTAMP) is None
        assert PendingTimestamp() is SERVER_TIMESTAMP

    def test_none(self):
        assert to_instant(None) is None

    def test_naive_datetime_is_utc(self):
        value = to_instant(datetime(2024, 1, 1, 12, 0))
        assert value == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_aware_datetime_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        value = to_instant(datetime(2024, 1, 1, 14, 0, tzinfo=plus_two))
        assert value == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc

    def test_iso_string(self):
        assert to_instant("2024-01-01T12:00:00Z") == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        assert to_instant(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            to_instant(object())
