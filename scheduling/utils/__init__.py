"""
Utility functions for the scheduling core.

- date_parser: Natural language date/time parsing for English
"""

from scheduling.utils.date_parser import (
    format_appointment_time,
    format_clock,
    parse_date,
    parse_time,
    resolve_datetime,
)

__all__ = [
    "format_appointment_time",
    "format_clock",
    "parse_date",
    "parse_time",
    "resolve_datetime",
]
