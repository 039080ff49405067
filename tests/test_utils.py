"""Unit tests for utility functions."""

from datetime import datetime, timedelta, timezone

import pytest

from s7webapi.utils import (
    format_device_timestamp,
    format_size,
    get_non_colliding_path,
    guess_media_type,
    join_device_path,
    mtime_to_datetime,
    parse_device_timestamp,
)


class TestDeviceTimestamps:
    """Tests for device timestamp formatting and parsing."""

    def test_format_millis(self):
        """Test timestamps are written with milliseconds and a Z suffix."""
        value = datetime(2024, 5, 1, 8, 15, 30, 250999, tzinfo=timezone.utc)
        assert format_device_timestamp(value) == "2024-05-01T08:15:30.250Z"

    def test_format_converts_to_utc(self):
        """Test aware timestamps are converted to UTC."""
        value = datetime(2024, 5, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_device_timestamp(value) == "2024-05-01T08:00:00.000Z"

    def test_naive_taken_as_utc(self):
        """Test naive timestamps are written unchanged."""
        assert format_device_timestamp(datetime(2024, 5, 1)) == "2024-05-01T00:00:00.000Z"

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2024-05-01T08:15:30.250Z", datetime(2024, 5, 1, 8, 15, 30, 250000)),
            ("2024-05-01T08:15:30Z", datetime(2024, 5, 1, 8, 15, 30)),
            ("2024-05-01T08:15:30.1234567Z", datetime(2024, 5, 1, 8, 15, 30, 123456)),
        ],
    )
    def test_parse(self, text, expected):
        """Test parsing device timestamps into aware UTC datetimes."""
        assert parse_device_timestamp(text) == expected.replace(tzinfo=timezone.utc)

    @pytest.mark.parametrize("text", [None, "", "yesterday"])
    def test_parse_invalid(self, text):
        """Test invalid input gives None."""
        assert parse_device_timestamp(text) is None

    def test_mtime_precision(self):
        """Test file times are cut to milliseconds."""
        value = mtime_to_datetime(1714551330.2509)
        assert value.microsecond == 250000
        assert value.tzinfo == timezone.utc


class TestPaths:
    """Tests for path helpers."""

    def test_non_colliding_path(self, temp_dir):
        """Test name.ext, then name(0).ext, then name(1).ext."""
        target = temp_dir / "report.csv"
        assert get_non_colliding_path(target) == target

        target.touch()
        assert get_non_colliding_path(target) == temp_dir / "report(0).csv"

        (temp_dir / "report(0).csv").touch()
        assert get_non_colliding_path(target) == temp_dir / "report(1).csv"

    @pytest.mark.parametrize(
        "parent,name,expected",
        [
            ("/", "app", "/app"),
            ("/data/", "app", "/data/app"),
            ("", "app/css", "/app/css"),
        ],
    )
    def test_join_device_path(self, parent, name, expected):
        """Test device paths are joined with one slash."""
        assert join_device_path(parent, name) == expected

    def test_guess_media_type(self):
        """Test media types by extension with a fallback."""
        assert guess_media_type("index.html") == "text/html"
        assert guess_media_type("data.unknownext") == "application/octet-stream"


class TestFormatSize:
    """Tests for format_size."""

    @pytest.mark.parametrize(
        "size,expected",
        [(512, "512 B"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_format_size(self, size, expected):
        """Test human-readable sizes."""
        assert format_size(size) == expected
