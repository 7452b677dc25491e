"""
Natural Date/Time Parser for English scheduling requests.

Parses informal date and time expressions to concrete, timezone-aware
instants. Used by check_availability() and book() to handle flexible inputs
like "tomorrow at 2pm", "next friday morning", "march 15", "half past 3".

The parser is a small ordered grammar: each rule is a regex plus a handler
that returns a value or None ("no match"). The first rule that produces a
value wins. If the remaining text still resolves to a DIFFERENT value
("monday or tuesday", "2pm or 4pm") the input is ambiguous and a ParseError
is raised, so the caller can ask a clarifying question instead of booking a
time nobody asked for.
"""

import calendar as month_calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Optional

from scheduling.errors import NoAvailabilityError, ParseError
from shared.business_hours import BusinessCalendar

DEFAULT_GRANULARITY_MINUTES = 15
DEFAULT_PM_THRESHOLD = 7

# English weekday mappings for parsing (0=Monday)
WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
    # Abbreviations
    "mon": 0,
    "tue": 1,
    "tues": 1,
    "wed": 2,
    "thu": 3,
    "thur": 3,
    "thurs": 3,
    "fri": 4,
    "sat": 5,
    "sun": 6,
}

# English month mappings for parsing written dates
MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
    # Abbreviations
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

# Named periods of the day (compound names first)
NAMED_TIMES = [
    ("early morning", time(7, 0)),
    ("late morning", time(11, 0)),
    ("early afternoon", time(13, 0)),
    ("late afternoon", time(16, 0)),
    ("morning", time(9, 0)),
    ("afternoon", time(14, 0)),
    ("evening", time(16, 0)),
    ("noon", time(12, 0)),
    ("midday", time(12, 0)),
    ("midnight", time(0, 0)),
]

# Periods that pin the meridiem of a bare clock ("at 3 in the afternoon")
_AM_PERIODS = {"early morning", "late morning", "morning"}
_PM_PERIODS = {"early afternoon", "late afternoon", "afternoon", "evening"}


def _alternation(words) -> str:
    # Longest first so "thurs" wins over "thu"
    return "|".join(sorted((re.escape(w) for w in words), key=len, reverse=True))


_WEEKDAY_ALT = _alternation(WEEKDAYS)
_MONTH_ALT = _alternation(MONTHS)
_NUMBER_ALT = r"\d+|" + _alternation(NUMBER_WORDS)


@dataclass(frozen=True)
class _Rule:
    name: str
    pattern: re.Pattern
    handler: Callable[[re.Match, Any], Any]


@dataclass(frozen=True)
class _Hit:
    rule: str
    value: Any
    span: tuple[int, int]


def _normalize(text: str) -> str:
    normalized = text.strip().lower().replace("’", "'")
    return re.sub(r"\s+", " ", normalized)


def _blank(text: str, span: tuple[int, int]) -> str:
    start, end = span
    return text[:start] + " " * (end - start) + text[end:]


def _first_hit(text: str, rules: list[_Rule], context: Any) -> Optional[_Hit]:
    for rule in rules:
        for match in rule.pattern.finditer(text):
            value = rule.handler(match, context)
            if value is not None:
                return _Hit(rule.name, value, match.span())
    return None


def _scan(text: str, rules: list[_Rule], context: Any, kind: str) -> Optional[_Hit]:
    """Run the grammar; reject a second, different reading as ambiguous."""
    hit = _first_hit(text, rules, context)
    if hit is None:
        return None

    remaining = _blank(text, hit.span)
    while True:
        other = _first_hit(remaining, rules, context)
        if other is None:
            return hit
        if other.value != hit.value:
            raise ParseError(
                f"Ambiguous {kind}: '{text[slice(*hit.span)]}' and "
                f"'{remaining[slice(*other.span)]}' both match",
                fragment=text.strip(),
                kind="ambiguous",
            )
        remaining = _blank(remaining, other.span)


# ============================================================================
# Date grammar
# ============================================================================


def _safe_date(year: int, month: int, day: int, fragment: str) -> date:
    try:
        return date(year, month, day)
    except ValueError as e:
        raise ParseError(f"Invalid date '{fragment}': {e}", fragment=fragment, kind="date") from e


def _expand_year(raw: str) -> int:
    year = int(raw)
    return 2000 + year if len(raw) == 2 else year


def _roll_year(month: int, day: int, reference: date, fragment: str) -> date:
    """Month/day without a year: this year, or next year once it has passed."""
    result = _safe_date(reference.year, month, day, fragment)
    if result < reference:
        result = _safe_date(reference.year + 1, month, day, fragment)
    return result


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = month_calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _days_until(weekday: int, reference: date) -> int:
    """Next occurrence strictly after the reference day."""
    return (weekday - reference.weekday()) % 7 or 7


def _iso_date(match: re.Match, reference: date) -> date:
    year, month, day = map(int, match.groups())
    return _safe_date(year, month, day, match.group(0))


def _relative_days(offset: int) -> Callable[[re.Match, date], date]:
    return lambda match, reference: reference + timedelta(days=offset)


def _in_n_units(match: re.Match, reference: date) -> date:
    raw, unit = match.group(1), match.group(2)
    amount = int(raw) if raw.isdigit() else NUMBER_WORDS[raw]
    if unit.startswith("week"):
        return reference + timedelta(weeks=amount)
    return reference + timedelta(days=amount)


def _next_month(match: re.Match, reference: date) -> date:
    return _add_months(reference, 1)


def _next_weekday(match: re.Match, reference: date) -> date:
    # The named day of the following week
    target = WEEKDAYS[match.group(1)]
    return reference + timedelta(days=target - reference.weekday() + 7)


def _weekday(match: re.Match, reference: date) -> date:
    target = WEEKDAYS[match.group(1)]
    return reference + timedelta(days=_days_until(target, reference))


def _numeric_date(match: re.Match, reference: date) -> date:
    month, day = int(match.group(1)), int(match.group(2))
    if match.group(3):
        return _safe_date(_expand_year(match.group(3)), month, day, match.group(0))
    return _roll_year(month, day, reference, match.group(0))


def _month_name_day(match: re.Match, reference: date) -> date:
    month, day = MONTHS[match.group(1)], int(match.group(2))
    if match.group(3):
        return _safe_date(int(match.group(3)), month, day, match.group(0))
    return _roll_year(month, day, reference, match.group(0))


def _day_month_name(match: re.Match, reference: date) -> date:
    day, month = int(match.group(1)), MONTHS[match.group(2)]
    if match.group(3):
        return _safe_date(int(match.group(3)), month, day, match.group(0))
    return _roll_year(month, day, reference, match.group(0))


def _ordinal_day(match: re.Match, reference: date) -> date:
    """Bare "the 15th": this month, or the next month that has that day."""
    day = int(match.group(1))
    if not 1 <= day <= 31:
        raise ParseError(f"Invalid day '{match.group(0)}'", fragment=match.group(0), kind="date")

    first_of_month = reference.replace(day=1)
    for offset in range(13):
        candidate_month = _add_months(first_of_month, offset)
        last_day = month_calendar.monthrange(candidate_month.year, candidate_month.month)[1]
        if day > last_day:
            continue
        candidate = candidate_month.replace(day=day)
        if candidate >= reference:
            return candidate
    raise ParseError(f"Invalid day '{match.group(0)}'", fragment=match.group(0), kind="date")


_DATE_RULES = [
    _Rule("iso", re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b"), _iso_date),
    _Rule("day_after_tomorrow", re.compile(r"\bday after tomorrow\b"), _relative_days(2)),
    _Rule("today", re.compile(r"\b(?:today|tonight)\b"), _relative_days(0)),
    _Rule("tomorrow", re.compile(r"\b(?:tomorrow|tmrw)\b"), _relative_days(1)),
    _Rule(
        "in_n_units",
        re.compile(rf"\bin ({_NUMBER_ALT}) (days?|weeks?)\b"),
        _in_n_units,
    ),
    _Rule("next_week", re.compile(r"\bnext week\b"), _relative_days(7)),
    _Rule("next_month", re.compile(r"\bnext month\b"), _next_month),
    _Rule("next_weekday", re.compile(rf"\bnext ({_WEEKDAY_ALT})\b"), _next_weekday),
    _Rule("weekday", re.compile(rf"\b(?:this |on )?({_WEEKDAY_ALT})\b"), _weekday),
    _Rule(
        "numeric",
        re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?\b"),
        _numeric_date,
    ),
    _Rule(
        "month_day",
        re.compile(rf"\b({_MONTH_ALT})\.? (\d{{1,2}})(?:st|nd|rd|th)?\b(?:,? (\d{{4}})\b)?"),
        _month_name_day,
    ),
    _Rule(
        "day_month",
        re.compile(rf"\b(\d{{1,2}})(?:st|nd|rd|th)? (?:of )?({_MONTH_ALT})\b\.?(?:,? (\d{{4}})\b)?"),
        _day_month_name,
    ),
    _Rule("ordinal_day", re.compile(r"\b(?:the )?(\d{1,2})(?:st|nd|rd|th)\b"), _ordinal_day),
]


# ============================================================================
# Time grammar
# ============================================================================


@dataclass(frozen=True)
class _Clock:
    hour: int
    minute: int
    has_meridiem: bool


@dataclass(frozen=True)
class _TimeContext:
    pm_threshold: int


def _check_clock(hour: int, minute: int, fragment: str) -> None:
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise ParseError(f"Invalid time '{fragment}'", fragment=fragment, kind="time")


def _apply_pm_heuristic(hour: int, context: _TimeContext) -> int:
    """Hours below the threshold with no am/pm are clinic afternoon hours."""
    if 1 <= hour < context.pm_threshold:
        return hour + 12
    return hour


def _half_past(match: re.Match, context: _TimeContext) -> _Clock:
    hour = int(match.group(1))
    _check_clock(hour, 30, match.group(0))
    return _Clock(hour, 30, has_meridiem=False)


def _quarter(match: re.Match, context: _TimeContext) -> _Clock:
    relation, hour = match.group(1), int(match.group(2))
    _check_clock(hour, 0, match.group(0))
    if relation in ("to", "till", "before"):
        # Same clock face as the stated hour: "quarter to 1" is 12:45
        previous = 12 if hour == 1 else (hour - 1) % 24
        return _Clock(previous, 45, has_meridiem=False)
    return _Clock(hour, 15, has_meridiem=False)


def _meridiem_clock(match: re.Match, context: _TimeContext) -> _Clock:
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    fragment = match.group(0)
    if not 1 <= hour <= 12:
        raise ParseError(f"Invalid 12-hour time '{fragment}'", fragment=fragment, kind="time")
    _check_clock(hour, minute, fragment)

    if match.group(3) == "p" and hour < 12:
        hour += 12
    elif match.group(3) == "a" and hour == 12:
        hour = 0
    return _Clock(hour, minute, has_meridiem=True)


def _colon_clock(match: re.Match, context: _TimeContext) -> _Clock:
    hour, minute = int(match.group(1)), int(match.group(2))
    _check_clock(hour, minute, match.group(0))
    # "14:30" is unambiguous; "2:30" still needs the heuristic
    return _Clock(hour, minute, has_meridiem=hour > 12 or hour == 0)


def _bare_hour(match: re.Match, context: _TimeContext) -> _Clock:
    hour = int(match.group(1))
    _check_clock(hour, 0, match.group(0))
    return _Clock(hour, 0, has_meridiem=hour > 12 or hour == 0)


def _named_time(value: time) -> Callable[[re.Match, _TimeContext], time]:
    return lambda match, context: value


_CLOCK_RULES = [
    _Rule("half_past", re.compile(r"\bhalf past (\d{1,2})\b"), _half_past),
    _Rule(
        "quarter",
        re.compile(r"\bquarter (past|after|to|till|before) (\d{1,2})\b"),
        _quarter,
    ),
    _Rule(
        "meridiem",
        re.compile(r"\b(\d{1,2})(?::(\d{2}))? ?([ap])\.?m\b\.?"),
        _meridiem_clock,
    ),
    _Rule("colon", re.compile(r"\b(\d{1,2}):(\d{2})\b"), _colon_clock),
    _Rule("oclock", re.compile(r"\b(\d{1,2}) ?o'?clock\b"), _bare_hour),
    _Rule("at_hour", re.compile(r"\bat (\d{1,2})\b(?![/:\-]|st|nd|rd|th)"), _bare_hour),
    _Rule("only_hour", re.compile(r"^ *(\d{1,2}) *$"), _bare_hour),
]

_PERIOD_RULES = [
    _Rule(name, re.compile(rf"\b(?:in the )?{re.escape(name)}\b"), _named_time(value))
    for name, value in NAMED_TIMES
]


def _round_to_slot(hour: int, minute: int, granularity: int, fragment: str) -> time:
    total = hour * 60 + (minute + granularity // 2) // granularity * granularity
    if total >= 24 * 60:
        raise ParseError(
            f"Time '{fragment}' rounds past midnight", fragment=fragment, kind="time"
        )
    return time(total // 60, total % 60)


def _scan_time(
    text: str,
    granularity_minutes: int,
    pm_threshold: int,
) -> Optional[time]:
    context = _TimeContext(pm_threshold=pm_threshold)
    clock_hit = _scan(text, _CLOCK_RULES, context, "time")
    period_hit = _scan(_blank(text, clock_hit.span) if clock_hit else text, _PERIOD_RULES, context, "time")

    if clock_hit is None:
        if period_hit is None:
            return None
        return period_hit.value

    clock: _Clock = clock_hit.value
    hour = clock.hour
    if not clock.has_meridiem:
        if period_hit is not None and period_hit.rule in _PM_PERIODS and hour < 12:
            hour += 12
        elif period_hit is None or period_hit.rule not in _AM_PERIODS:
            hour = _apply_pm_heuristic(hour, context)

    return _round_to_slot(hour, clock.minute, granularity_minutes, text.strip())


# ============================================================================
# Public API
# ============================================================================


def parse_date(text: str, reference: Optional[datetime | date] = None) -> date:
    """
    Parse a natural language date expression.

    Handles:
    - Relative: "today", "tomorrow", "day after tomorrow", "in 3 days",
      "in two weeks", "next week", "next month"
    - Weekdays: "friday", "this fri", "next friday"
    - Numeric: "3/15", "3/15/25", "2025-03-15"
    - Written: "march 15", "mar 15th, 2025", "15th of march"
    - Ordinal day: "the 15th"

    Args:
        text: Date expression
        reference: "Now" for relative calculations (default: today)

    Returns:
        date: The resolved calendar date

    Raises:
        ParseError: If nothing matches, the date is invalid, or the text
            names two different dates

    Rules:
        - Weekdays resolve to the next occurrence strictly after today
        - "next <weekday>" is that weekday in the following week
        - Dates without a year that already passed roll over to next year;
          a bare ordinal day that passed rolls to the next month
    """
    if reference is None:
        reference_day = date.today()
    elif isinstance(reference, datetime):
        reference_day = reference.date()
    else:
        reference_day = reference

    hit = _scan(_normalize(text), _DATE_RULES, reference_day, "date")
    if hit is None:
        raise ParseError(
            f"Could not parse the date '{text}'. "
            f"Try 'tomorrow', 'next friday', 'march 15' or '3/15'.",
            fragment=text,
            kind="date",
        )
    return hit.value


def parse_time(
    text: str,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    pm_threshold: int = DEFAULT_PM_THRESHOLD,
) -> time:
    """
    Parse a natural language time expression.

    Handles "2pm", "2:30 p.m.", "14:30", "at 3", "3 o'clock", "half past 2",
    "quarter to 4", "noon", "midnight", "morning" (09:00),
    "afternoon" (14:00), "evening" (16:00).

    Args:
        text: Time expression
        granularity_minutes: Slot size the minutes are rounded to
        pm_threshold: Hours below this without am/pm are read as pm

    Returns:
        time: Wall-clock time rounded to the nearest slot

    Raises:
        ParseError: If nothing matches, the value is invalid, or the text
            names two different times

    Examples:
        >>> parse_time("2pm")
        datetime.time(14, 0)
        >>> parse_time("half past 3")
        datetime.time(15, 30)
        >>> parse_time("10:08")
        datetime.time(10, 15)
    """
    value = _scan_time(_normalize(text), granularity_minutes, pm_threshold)
    if value is None:
        raise ParseError(
            f"Could not parse the time '{text}'. Try '2pm', '10:30' or 'morning'.",
            fragment=text,
            kind="time",
        )
    return value


def _next_opening(
    calendar: BusinessCalendar,
    moment: datetime,
    granularity_minutes: int,
    max_search_days: int,
) -> datetime:
    opening = calendar.next_opening(moment, granularity_minutes, max_search_days)
    if opening is None:
        day = moment.date().isoformat()
        raise NoAvailabilityError(
            f"No opening hours within {max_search_days} days of {day}",
            {"from_date": day, "max_search_days": max_search_days},
        )
    return opening


def resolve_datetime(
    text: str,
    calendar: BusinessCalendar,
    reference: Optional[datetime] = None,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
    pm_threshold: int = DEFAULT_PM_THRESHOLD,
    max_search_days: int = 14,
) -> datetime:
    """
    Resolve a combined date/time expression to a timezone-aware instant.

    - Date and time: combined in the calendar timezone
    - Time only: today at that time; once that time has passed, the next
      slot-aligned opening after now
    - Date only: first slot-aligned opening of that day; for today, the next
      slot-aligned opening after now; rolls over to the next business day
      when the day is closed or already past closing

    Raises:
        ParseError: No date or time found, ambiguous input, or a date-only
            request for a day in the past
        NoAvailabilityError: The calendar has no opening within the horizon
    """
    reference = calendar.localize(reference) if reference else datetime.now(calendar.tz)
    normalized = _normalize(text)

    date_hit = _scan(normalized, _DATE_RULES, reference.date(), "date")
    time_text = _blank(normalized, date_hit.span) if date_hit else normalized
    time_value = _scan_time(time_text, granularity_minutes, pm_threshold)

    if date_hit is None and time_value is None:
        raise ParseError(
            f"Could not find a date or time in '{text}'",
            fragment=text,
            kind="date",
        )

    if time_value is not None:
        day = date_hit.value if date_hit else reference.date()
        resolved = datetime.combine(day, time_value, tzinfo=calendar.tz)
        if date_hit is None and resolved < reference:
            return _next_opening(calendar, reference, granularity_minutes, max_search_days)
        return resolved

    day = date_hit.value
    if day < reference.date():
        raise ParseError(
            f"The date '{text}' is in the past",
            fragment=text,
            kind="date",
        )

    start_point = reference if day == reference.date() else datetime.combine(
        day, time.min, tzinfo=calendar.tz
    )
    return _next_opening(calendar, start_point, granularity_minutes, max_search_days)


def format_clock(moment: datetime | time) -> str:
    """'2:00 PM' style clock string."""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {meridiem}"


def format_appointment_time(moment: datetime) -> str:
    """
    Format a datetime to a readable English appointment time.

    Example:
        >>> format_appointment_time(datetime(2024, 3, 15, 14, 0))
        'Friday, March 15 at 2:00 PM'
    """
    return f"{moment.strftime('%A')}, {moment.strftime('%B')} {moment.day} at {format_clock(moment)}"
