"""Data for the yearly achievement heat map."""
from datetime import date, timedelta

from dates import date_to_key

WINDOW_DAYS = 365
MAX_LEVEL = 5


def trailing_window(today: date | None = None) -> tuple[int, int]:
    """(start, end) date keys covering the last 365 days, both ends inclusive."""
    today = today or date.today()
    return date_to_key(today - timedelta(days=WINDOW_DAYS)), date_to_key(today)


def achievement_level(total: int, completed: int) -> int:
    """0 for no todos or nothing done, 5 for everything done, 1-4 by quartile in between."""
    if total <= 0 or completed <= 0:
        return 0
    percentage = completed * 100 / total
    if percentage >= 100:
        return MAX_LEVEL
    if percentage >= 75:
        return 4
    if percentage >= 50:
        return 3
    if percentage >= 25:
        return 2
    return 1


def build_weeks(stats, today: date | None = None) -> list[list[dict]]:
    """
    Lay out the window as Sunday-first weeks, like a contribution graph.
    The first week starts on the Sunday on or before ``today - 365``; the
    last week ends at ``today`` and may be short.
    """
    today = today or date.today()
    by_date = {s.date: s for s in stats}

    start = today - timedelta(days=WINDOW_DAYS)
    current = start - timedelta(days=(start.weekday() + 1) % 7)

    weeks, week = [], []
    while current <= today:
        key = date_to_key(current)
        stat = by_date.get(key)
        total = stat.total_count if stat else 0
        completed = stat.completed_count if stat else 0
        week.append({
            "date": key,
            "total": total,
            "completed": completed,
            "level": achievement_level(total, completed),
        })
        if len(week) == 7:
            weeks.append(week)
            week = []
        current += timedelta(days=1)

    if week:
        weeks.append(week)
    return weeks
