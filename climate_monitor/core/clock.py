"""
Climate Monitor - Timestamp helpers
"""

from datetime import datetime, timezone


def to_iso(moment: datetime) -> str:
    """ISO 8601 with milliseconds and a Z suffix, as the dashboard expects."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))
