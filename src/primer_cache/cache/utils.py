from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def strip_suffix(path: str, suffix: str) -> str:
    if suffix and path.endswith(suffix):
        return path[: -len(suffix)]
    return path


def file_to_topic(rel_path: str, extension: str) -> str:
    """Turn `sub/index.md` into `sub` and `setup.md` into `setup`."""
    topic = strip_suffix(rel_path, extension)
    return strip_suffix(topic, "/index")
