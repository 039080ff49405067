"""Utility functions for the S7 Webserver API client."""

import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants for device limits and defaults
# =============================================================================

# Ticket ids handed out by the device always have this length
TICKET_ID_LENGTH: int = 28

# Length limits checked before a request is sent
MAX_WEBAPP_NAME_LENGTH: int = 100
MAX_RESOURCE_NAME_LENGTH: int = 200
MAX_ETAG_LENGTH: int = 128

# Retry configuration for connection failures
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Rounds a synchronizer may use before giving up
DEFAULT_DEPLOYMENT_TRIES: int = 3

# Editors add or strip a 3-byte UTF-8 byte order mark
BOM_SIZE: int = 3

DEFAULT_MEDIA_TYPE: str = "application/octet-stream"


# =============================================================================
# Timestamp utilities
# =============================================================================


def format_device_timestamp(value: datetime) -> str:
    """Format a datetime the way the device expects it.

    Args:
        value: Datetime to format; naive values are taken as UTC

    Returns:
        Timestamp such as "2024-05-01T08:15:30.250Z"
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_device_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse a timestamp reported by the device.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2024-05-01T08:15:30.250Z")

    Returns:
        Timezone-aware UTC datetime or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        # fromisoformat on older interpreters only takes 3 or 6 digit fractions
        if "." in timestamp_str:
            head, _, tail = timestamp_str.partition(".")
            digits = ""
            rest = ""
            for index, char in enumerate(tail):
                if not char.isdigit():
                    rest = tail[index:]
                    break
                digits += char
            timestamp_str = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
        dt = datetime.fromisoformat(timestamp_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError):
        return None


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision the device cannot store."""
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def mtime_to_datetime(mtime: float) -> datetime:
    """Convert a file system mtime to a UTC datetime in device precision."""
    return truncate_to_millis(datetime.fromtimestamp(mtime, tz=timezone.utc))


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Path utilities
# =============================================================================


def get_non_colliding_path(path: Path) -> Path:
    """Return a path that does not exist yet.

    When ``path`` is taken, a counter is placed between the stem and the
    extension, starting at 0.

    Args:
        path: Desired file path

    Returns:
        ``path`` itself if free, otherwise the first free ``name(N).ext``

    Examples:
        >>> get_non_colliding_path(Path("/tmp/report.csv"))  # exists
        PosixPath('/tmp/report(0).csv')
    """
    if not path.exists():
        return path

    counter = 0
    while True:
        candidate = path.with_name(f"{path.stem}({counter}){path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1


def join_device_path(parent: str, name: str) -> str:
    """Join a device path and a child name with a single slash.

    Examples:
        >>> join_device_path("/", "app")
        '/app'
        >>> join_device_path("/data", "app")
        '/data/app'
    """
    parent = parent.rstrip("/")
    name = name.strip("/")
    if not parent:
        return f"/{name}" if name else "/"
    return f"{parent}/{name}" if name else parent


def guess_media_type(file_name: str) -> str:
    """Guess the media type of a file from its extension.

    Args:
        file_name: File name or path

    Returns:
        MIME type string (defaults to 'application/octet-stream')
    """
    media_type, _ = mimetypes.guess_type(file_name)
    return media_type or DEFAULT_MEDIA_TYPE
