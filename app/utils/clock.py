"""
Match clock computed from a stored checkpoint.

The fixture stores only the seconds accumulated so far and the moment the
clock last started running. Elapsed time is derived on every read, so a
viewer who just connected sees the right time without any server-side
ticking process.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_now(
    checkpoint: int,
    running_since: datetime | None,
    is_live: bool,
    now: datetime | None = None,
) -> int:
    """Return elapsed match seconds at ``now``.

    Pure function: no side effects, safe to call at any cadence.
    When the fixture is not live or the clock is paused the checkpoint is
    returned unchanged. Clock skew (``now`` before ``running_since``) is
    clamped so the result never drops below the checkpoint.
    """
    base = max(0, int(checkpoint or 0))
    if not is_live or running_since is None:
        return base

    if now is None:
        now = utcnow()

    delta = (_as_aware(now) - _as_aware(running_since)).total_seconds()
    if delta <= 0:
        return base
    return base + int(delta)


def minute_of(seconds: int) -> int:
    return max(0, seconds) // 60


def format_clock(seconds: int, show_seconds: bool = True) -> str:
    """Render elapsed seconds as ``M:SS`` or, in compact mode, ``M'``.

    Minutes are truncated, never rounded.
    """
    seconds = max(0, int(seconds))
    mins, secs = divmod(seconds, 60)
    if not show_seconds:
        return f"{mins}'"
    return f"{mins}:{secs:02d}"
