"""
Relative date parsing.

Recognises a closed set of phrases ("today", "last week", "this month",
"tomorrow at 3pm") and resolves them against a reference time supplied at
call time. Day, week, month and year phrases resolve to a half-open
[start, end) range of dates; compound day-and-clock phrases resolve to a
single point.
"""
import re
import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .candidates import TemporalMatch, spans_overlap
from .scanner import normalize_text

logger = logging.getLogger(__name__)


DAY_OFFSETS = {"yesterday": -1, "today": 0, "tomorrow": 1}
PERIOD_OFFSETS = {"last": -1, "this": 0, "next": 1}

COMPOUND_PATTERN = re.compile(
    r"\b(today|tomorrow|yesterday)\s+at\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b"
)
DAY_PATTERN = re.compile(r"\b(today|tomorrow|yesterday)\b")
WEEK_PATTERN = re.compile(r"\b(this|last|next)\s+week\b")
MONTH_PATTERN = re.compile(r"\b(this|last|next)\s+month\b")
YEAR_PATTERN = re.compile(r"\b(this|last)\s+year\b")


def _month_start(d: date, offset: int) -> date:
    month_index = d.year * 12 + (d.month - 1) + offset
    return date(month_index // 12, month_index % 12 + 1, 1)


def _clock_time(hour_raw: str, minute_raw: Optional[str],
                meridiem: Optional[str]) -> Optional[Tuple[int, int]]:
    """Convert "3", "30", "pm" to (15, 30); None when the time is impossible."""
    hour = int(hour_raw)
    minute = int(minute_raw) if minute_raw else 0
    if minute > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        hour = hour % 12
        if meridiem == "pm":
            hour += 12
    elif hour > 23:
        return None
    return hour, minute


class TemporalParser:
    """
    Parse relative date phrases.

    Weeks start on Monday. `clock` is only consulted when `parse` is called
    without an explicit `now`.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now

    def parse(self, text: str, now: Optional[datetime] = None) -> List[TemporalMatch]:
        now = now or self._clock()
        normalized = normalize_text(text)
        today = now.date()

        matches: List[TemporalMatch] = []

        def accept(match: TemporalMatch) -> None:
            if not any(spans_overlap((match.start, match.end), (m.start, m.end)) for m in matches):
                matches.append(match)

        for m in COMPOUND_PATTERN.finditer(normalized):
            clock_time = _clock_time(m.group(2), m.group(3), m.group(4))
            if clock_time is None:
                logger.debug(f"Ignoring impossible time in '{m.group(0)}'")
                continue
            day = today + timedelta(days=DAY_OFFSETS[m.group(1)])
            point = datetime(day.year, day.month, day.day, clock_time[0], clock_time[1])
            accept(TemporalMatch(
                start=m.start(),
                end=m.end(),
                text=text[m.start():m.end()],
                kind="point",
                value=point.isoformat(),
            ))

        for m in DAY_PATTERN.finditer(normalized):
            day = today + timedelta(days=DAY_OFFSETS[m.group(1)])
            accept(self._range(text, m, "day", day, day + timedelta(days=1)))

        for m in WEEK_PATTERN.finditer(normalized):
            start = today - timedelta(days=today.weekday()) + timedelta(weeks=PERIOD_OFFSETS[m.group(1)])
            accept(self._range(text, m, "week", start, start + timedelta(days=7)))

        for m in MONTH_PATTERN.finditer(normalized):
            start = _month_start(today, PERIOD_OFFSETS[m.group(1)])
            accept(self._range(text, m, "month", start, _month_start(start, 1)))

        for m in YEAR_PATTERN.finditer(normalized):
            year = today.year + PERIOD_OFFSETS[m.group(1)]
            accept(self._range(text, m, "year", date(year, 1, 1), date(year + 1, 1, 1)))

        return sorted(matches, key=lambda t: t.start)

    @staticmethod
    def _range(text: str, m: "re.Match", kind: str, start: date, end: date) -> TemporalMatch:
        return TemporalMatch(
            start=m.start(),
            end=m.end(),
            text=text[m.start():m.end()],
            kind=kind,
            value=start.isoformat(),
            range_start=start.isoformat(),
            range_end=end.isoformat(),
        )
