from __future__ import annotations

import math


def format_elapsed(ms: int | float | None) -> str:
    """``HH:MM:SS`` for a millisecond duration; hours are not wrapped at 24."""
    total_seconds = max(0, int((ms or 0) // 1000))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_minutes_label(
    minutes: int | float | None,
    *,
    min_unit: str = "mins",
    hour_unit: str = "hrs",
    decimals: int = 2,
) -> str:
    if minutes is None:
        return "-"
    try:
        value = float(minutes)
    except (TypeError, ValueError):
        return "-"
    if not math.isfinite(value):
        return "-"
    whole = max(0, int(math.floor(value + 0.5)))
    if whole < 60:
        return f"{whole} {min_unit}"
    hours = f"{whole / 60:.{decimals}f}"
    if "." in hours:
        hours = hours.rstrip("0").rstrip(".")
    return f"{hours} {hour_unit}"
