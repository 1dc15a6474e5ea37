"""Hours-of-operation extraction with a 3-level waterfall.

1. schema.org ``openingHoursSpecification`` entries (structured, exact)
2. schema.org ``openingHours`` strings ("Mo-Fr 09:00-17:00")
3. a line scan over the cleaned visible text ("Monday: 9am - 5pm")

Weekday indexes follow ISO order (Monday=1 .. Sunday=7). ``Period`` days use
the record convention (Sunday=0 .. Saturday=6), i.e. ``index % 7``.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from provider_scout.models import HoursOfOperation, Period, TimePoint
from provider_scout.text.normalize import clean_text_lines, dedupe_strings, normalize_whitespace

_DAYS: dict[str, tuple[str, int]] = {
    "monday": ("Monday", 1),
    "mon": ("Monday", 1),
    "mo": ("Monday", 1),
    "tuesday": ("Tuesday", 2),
    "tue": ("Tuesday", 2),
    "tues": ("Tuesday", 2),
    "tu": ("Tuesday", 2),
    "wednesday": ("Wednesday", 3),
    "wed": ("Wednesday", 3),
    "we": ("Wednesday", 3),
    "thursday": ("Thursday", 4),
    "thu": ("Thursday", 4),
    "thur": ("Thursday", 4),
    "thurs": ("Thursday", 4),
    "th": ("Thursday", 4),
    "friday": ("Friday", 5),
    "fri": ("Friday", 5),
    "fr": ("Friday", 5),
    "saturday": ("Saturday", 6),
    "sat": ("Saturday", 6),
    "sa": ("Saturday", 6),
    "sunday": ("Sunday", 7),
    "sun": ("Sunday", 7),
    "su": ("Sunday", 7),
}
_FULL_DAY_RE = re.compile(r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday)")

# Text scan tokens
_DAY_RE = re.compile(
    r"\b(mon(day)?|tue(s|sday)?|wed(nesday)?|thu(r|rs|rsday)?|fri(day)?|sat(urday)?|sun(day)?)\b",
    re.IGNORECASE,
)
_TIME_RE = re.compile(r"\b\d{1,2}(:\d{2})?\s?(am|pm)\b|\b\d{1,2}:\d{2}\b", re.IGNORECASE)
_CLOSED_RE = re.compile(r"\bclosed\b|\bby appointment\b", re.IGNORECASE)
_MONTH_RE = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\b",
    re.IGNORECASE,
)
_YEAR_RE = re.compile(r"\b\d{4}\b")
_HOURS_RE = re.compile(r"hours", re.IGNORECASE)
_LOOKAHEAD_LINES = 4

# Time tokens: "9", "9am", "9:00 am", "0900", "17:30", "09:00:00", "5 p.m."
_TIME_TOKEN_RE = re.compile(
    r"^(\d{1,2})(?::?(\d{2}))?(?::\d{2})?\s*(am|pm|a|p)?$",
)

# Period parsing over a single hours line
_CLOCK = r"(?<![\d:])(?:\d{3,4}|\d{1,2}(?::\d{2}){0,2})(?![\d:])"
_MERIDIEM = r"(?:\s*(?:am|pm|a\.m\.|p\.m\.))?"
_RANGE_RE = re.compile(
    rf"(?<!\d-)({_CLOCK}{_MERIDIEM})\s*(?:-|–|—|to)\s*({_CLOCK}{_MERIDIEM})(?!\s*-\s*\d)",
    re.IGNORECASE,
)
_DAY_TOKEN_RE = re.compile(
    r"\b(mon(?:day)?|tue(?:s|sday)?|wed(?:nesday)?|thu(?:r|rs|rsday)?|fri(?:day)?|sat(?:urday)?|sun(?:day)?)\b",
    re.IGNORECASE,
)
_DAY_CODE_RE = re.compile(
    r"\b(mon(?:day)?|tue(?:s|sday)?|wed(?:nesday)?|thu(?:r|rs|rsday)?|fri(?:day)?|sat(?:urday)?|sun(?:day)?"
    r"|mo|tu|we|th|fr|sa|su)\b",
    re.IGNORECASE,
)
_DAY_RANGE_SEP_RE = re.compile(r"^\s*(?:-|–|—|to|through|thru)\s*$", re.IGNORECASE)


def normalize_day(value: str) -> tuple[str, int] | None:
    """Map a weekday string, abbreviation or schema.org IRI to ``(name, 1..7)``."""
    key = value.strip().lower()
    if not key:
        return None
    # "https://schema.org/Monday", "http://schema.org/Monday", "schema:Monday"
    key = re.split(r"[/#:]", key)[-1]
    if key in _DAYS:
        return _DAYS[key]
    m = _FULL_DAY_RE.search(key)
    if m:
        return _DAYS[m.group(1)]
    return None


def normalize_time(value: Any, meridiem: str | None = None) -> str | None:
    """Normalize a time token to a 4-digit 24-hour string ("9:00 am" → "0900").

    ``meridiem`` ("am"/"pm") applies when the token carries none of its own.
    Returns None for anything that is not a recognizable time of day.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    raw = value.strip().lower().replace(".", "")
    m = _TIME_TOKEN_RE.match(raw)
    if not m:
        return None
    hour = int(m.group(1))
    minute = int(m.group(2) or 0)
    suffix = m.group(3) or (meridiem or "").lower()
    if suffix:
        suffix = suffix[0]
        if hour > 12:
            return None
        if suffix == "p" and hour < 12:
            hour += 12
        elif suffix == "a" and hour == 12:
            hour = 0
    if hour > 24 or minute > 59 or (hour == 24 and minute):
        return None
    return f"{hour:02d}{minute:02d}"


def format_time(value: str) -> str:
    """ "0900" → "09:00"; anything else passes through."""
    if len(value) == 4 and value.isdigit():
        return f"{value[:2]}:{value[2:]}"
    return value


def _period(day_index: int, open_time: str, close_time: str) -> Period:
    open_day = day_index % 7
    # Closing past midnight lands on the next day
    close_day = (open_day + 1) % 7 if close_time < open_time else open_day
    return Period(
        open=TimePoint(day=open_day, time=open_time),
        close=TimePoint(day=close_day, time=close_time),
    )


def _day_value_string(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in ("@id", "@value", "name"):
            if isinstance(value.get(key), str):
                return value[key]
    return None


def hours_from_specification(spec: dict[str, Any]) -> HoursOfOperation:
    """Parse one ``openingHoursSpecification`` entry ({dayOfWeek, opens, closes})."""
    open_time = normalize_time(spec.get("opens"))
    close_time = normalize_time(spec.get("closes"))
    if not open_time or not close_time:
        return HoursOfOperation()

    days_raw = spec.get("dayOfWeek")
    days = days_raw if isinstance(days_raw, list) else [days_raw]
    periods: list[Period] = []
    weekday_text: list[str] = []
    for day_value in days:
        day_string = _day_value_string(day_value)
        if not day_string:
            continue
        normalized = normalize_day(day_string)
        if not normalized:
            continue
        name, index = normalized
        periods.append(_period(index, open_time, close_time))
        weekday_text.append(f"{name}: {format_time(open_time)} - {format_time(close_time)}")
    return HoursOfOperation(periods=periods, weekday_text=weekday_text)


def _spec_entries(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [entry for entry in value if isinstance(entry, dict)]
    return []


def hours_from_structured(items: Iterable[dict[str, Any]]) -> HoursOfOperation:
    """Hours from ``openingHoursSpecification`` across all JSON-LD objects."""
    periods: list[Period] = []
    weekday_text: list[str] = []
    for item in items:
        for entry in _spec_entries(item.get("openingHoursSpecification")):
            parsed = hours_from_specification(entry)
            periods.extend(parsed.periods)
            weekday_text.extend(parsed.weekday_text)
    return HoursOfOperation(periods=periods, weekday_text=dedupe_strings(weekday_text))


def hours_from_opening_hours(items: Iterable[dict[str, Any]]) -> HoursOfOperation:
    """Hours from free-text ``openingHours`` values ("Mo-Fr 09:00-17:00")."""
    texts: list[str] = []
    for item in items:
        value = item.get("openingHours")
        if isinstance(value, str):
            texts.append(value)
        elif isinstance(value, list):
            texts.extend(entry for entry in value if isinstance(entry, str))
    weekday_text = dedupe_strings(texts)
    periods = [p for line in weekday_text for p in periods_from_line(line, day_codes=True)]
    return HoursOfOperation(periods=periods, weekday_text=weekday_text)


def hours_from_text(text: str) -> HoursOfOperation:
    """Scan visible page text for weekday/time lines.

    A line mentioning "hours" opens a short lookahead window. Lines naming a
    weekday together with a time (or "closed"/"by appointment") are captured;
    a day-only line is remembered and merged with the following time line.
    Dated lines ("March 3, 2024") and "published" bylines are skipped.
    """
    if not text:
        return HoursOfOperation()

    candidates: list[str] = []
    lookahead = 0
    pending_day: str | None = None
    for line in clean_text_lines(text):
        if _MONTH_RE.search(line) and _YEAR_RE.search(line):
            continue
        if "published" in line.lower():
            continue

        in_window = lookahead > 0
        if in_window:
            lookahead -= 1
        if _HOURS_RE.search(line):
            lookahead = _LOOKAHEAD_LINES

        has_day = bool(_DAY_RE.search(line))
        has_time = bool(_TIME_RE.search(line))
        has_closed = bool(_CLOSED_RE.search(line))

        if has_day and (has_time or has_closed):
            candidates.append(line)
            pending_day = None
        elif has_day:
            pending_day = line
        elif pending_day and (has_time or (in_window and has_closed)):
            candidates.append(f"{pending_day}: {line}")
            pending_day = None

    weekday_text = dedupe_strings(candidates)
    periods = [p for line in weekday_text for p in periods_from_line(line)]
    return HoursOfOperation(periods=periods, weekday_text=weekday_text)


def _split_meridiem(token: str) -> tuple[str, str | None]:
    m = re.search(r"(am|pm|a\.m\.|p\.m\.)\s*$", token, re.IGNORECASE)
    if not m:
        return token.strip(), None
    return token[: m.start()].strip(), m.group(1).replace(".", "").lower()


def _hour_of(token: str) -> int:
    if ":" in token:
        return int(token.split(":")[0])
    return int(token[:-2]) if len(token) > 2 else int(token)


def _parse_range(open_raw: str, close_raw: str) -> tuple[str, str] | None:
    open_token, open_meridiem = _split_meridiem(open_raw)
    close_token, close_meridiem = _split_meridiem(close_raw)
    if not open_meridiem and close_meridiem:
        # "9-5pm" and "9-12pm" open in the morning, "1-5pm" and "12-3pm" in the afternoon
        open_hour = _hour_of(open_token)
        close_hour = _hour_of(close_token)
        if close_meridiem == "pm" and (open_hour == 12 or open_hour <= close_hour < 12):
            open_meridiem = "pm"
        else:
            open_meridiem = "am"
    open_time = normalize_time(open_token, open_meridiem)
    close_time = normalize_time(close_token, close_meridiem)
    if not open_time or not close_time:
        return None
    return open_time, close_time


def _day_indexes(day_part: str, day_codes: bool) -> list[int]:
    token_re = _DAY_CODE_RE if day_codes else _DAY_TOKEN_RE
    matches = list(token_re.finditer(day_part))
    indexes = [normalize_day(m.group(1))[1] for m in matches if normalize_day(m.group(1))]
    if len(matches) == 2 and len(indexes) == 2:
        between = day_part[matches[0].end() : matches[1].start()]
        if _DAY_RANGE_SEP_RE.match(between):
            start, end = indexes
            span = (end - start) % 7
            return [((start - 1 + offset) % 7) + 1 for offset in range(span + 1)]
    return indexes


def periods_from_line(line: str, day_codes: bool = False) -> list[Period]:
    """Derive periods from one hours line such as "Mon-Fri 9am - 5pm".

    Only lines with a clear time range are converted; "closed" or
    appointment-only lines yield no periods. Each range takes its days from
    the text since the previous range ("Mo-Fr 09:00-17:00; Sa 10:00-14:00");
    a range with no days of its own reuses the previous ones
    ("Monday 9am-12pm, 1pm-5pm").
    """
    line = normalize_whitespace(line)
    seen: set[tuple[int, str, str]] = set()
    periods: list[Period] = []
    days: list[int] = []
    segment_start = 0
    for m in _RANGE_RE.finditer(line):
        day_part = line[segment_start : m.start()]
        segment_start = m.end()
        days = _day_indexes(day_part, day_codes) or days
        times = _parse_range(m.group(1), m.group(2))
        if not times:
            continue
        open_time, close_time = times
        for index in days:
            key = (index, open_time, close_time)
            if key in seen:
                continue
            seen.add(key)
            periods.append(_period(index, open_time, close_time))
    return periods


def extract_hours_waterfall(items: list[dict[str, Any]], text: str) -> HoursOfOperation:
    """Hours from the first source that yields any: specification, openingHours, text."""
    for step in (
        lambda: hours_from_structured(items),
        lambda: hours_from_opening_hours(items),
        lambda: hours_from_text(text),
    ):
        hours = step()
        if not hours.is_empty:
            return hours
    return HoursOfOperation()
