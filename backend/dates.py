"""Date keys and timestamp helpers.

A date key is ``year*10000 + month*100 + day`` so that day comparisons and
range queries are plain integer comparisons.
"""
from datetime import date, datetime, timezone
import re


def date_to_key(d: date) -> int:
    return d.year * 10000 + d.month * 100 + d.day


def key_to_date(key: int) -> date:
    """Inverse of :func:`date_to_key`. Raises ValueError for impossible days."""
    key = int(key)
    return date(key // 10000, (key % 10000) // 100, key % 100)


def today_key() -> int:
    return date_to_key(date.today())


def format_key(key: int) -> str:
    """'Mon, Oct 19, 2026' style label for a date key."""
    d = key_to_date(key)
    return f"{d:%a}, {d:%b} {d.day}, {d.year}"


def parse_date_param(raw) -> int:
    """Accept 20261019, '20261019' or '2026-10-19'; return a validated date key."""
    if isinstance(raw, int):
        key = raw
    else:
        s = str(raw).strip()
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}", s):
            return date_to_key(date.fromisoformat(s))
        if not re.fullmatch(r"\d{8}", s):
            raise ValueError(f"invalid date: {raw!r}")
        key = int(s)
    key_to_date(key)
    return key


def now_iso() -> str:
    """UTC timestamp, millisecond precision, 'Z' suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(s: str | None):
    """
    Accepts '2025-09-07T18:30:00Z', '...+00:00', naive values, or even the bad '...+00:00Z'.
    Returns an aware UTC datetime; naive input is taken to be UTC.
    """
    if not s:
        return None
    s = s.strip()
    if s.endswith("Z") and re.search(r"[+-]\d{2}:?\d{2}$", s[:-1]):
        s = s[:-1]                     # drop the stray Z if an offset is present
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"          # make 'Z' parseable

    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        # last resort: strip a trailing offset/Z and parse as naive
        s2 = re.sub(r"([+-]\d{2}:?\d{2}|Z)$", "", s)
        dt = datetime.fromisoformat(s2)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def key_from_timestamp(s: str) -> int:
    """Local calendar day of a stored UTC timestamp."""
    return date_to_key(parse_iso_timestamp(s).astimezone().date())
