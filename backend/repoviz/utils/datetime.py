from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ts() -> float:
    """Current UTC time as epoch seconds."""
    return utc_now().timestamp()
