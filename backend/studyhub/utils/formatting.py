"""Display helpers for study durations."""

import math


def format_study_time(total_hours: float) -> str:
    """Render fractional hours as a compact `"1d 2h 30m"` string.

    Days and whole hours are shown when non-zero; minutes are rounded
    from the fractional hour and always shown when nothing else is.
    """
    if not total_hours:
        return "0m"
    days = math.floor(total_hours / 24)
    hours = math.floor(total_hours % 24)
    minutes = round((total_hours % 1) * 60)
    if minutes == 60:
        hours += 1
        minutes = 0
        if hours == 24:
            days += 1
            hours = 0
    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)
