"""
Time helpers. Catalog timestamps are ISO-8601 UTC strings so that they sort
lexicographically in DynamoDB.
"""

import time
from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Current UTC time, e.g. ``2024-01-15T10:42:31.123456+00:00``."""
    return datetime.now(timezone.utc).isoformat()


def monotonic() -> float:
    """Clock for cooldown windows; unaffected by wall-clock changes."""
    return time.monotonic()
