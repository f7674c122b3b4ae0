from __future__ import annotations

import datetime


def utc_now_ts() -> int:
    """Current time as integer Unix seconds (the storage format for timestamps)."""
    return int(datetime.datetime.now(datetime.UTC).timestamp())
