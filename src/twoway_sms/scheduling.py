"""Business-hour validation for call-back and visit times."""

import math
from datetime import date, datetime, time, timedelta
from typing import Union

from .models import PickerDefaults, ScheduledSlot

OPENING_HOUR = 9
CLOSING_HOUR = 17
MINUTE_STEP = 5

OUT_OF_HOURS_MESSAGE = "Please select a time between 9:00 AM and 5:00 PM"
INCOMPLETE_MESSAGE = "Please select both date and time"


class SchedulingError(ValueError):
    """A date/time selection the lead has to correct."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def to_24_hour(hour12: int, ampm: str) -> int:
    if ampm == "PM" and hour12 != 12:
        return hour12 + 12
    if ampm == "AM" and hour12 == 12:
        return 0
    return hour12


def meridiem_for_hour(hour12: int) -> str:
    """Picker hours 9-11 are mornings, 12 and 1-5 afternoons."""
    return "AM" if 9 <= hour12 <= 11 else "PM"


def format_date_label(value: datetime) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def format_time_label(value: datetime) -> str:
    hour12 = value.hour % 12 or 12
    ampm = "AM" if value.hour < 12 else "PM"
    return f"{hour12}:{value.minute:02d} {ampm}"


def format_date_time_label(value: datetime) -> str:
    return f"{format_date_label(value)} at {format_time_label(value)}"


class SchedulingValidator:
    """Validates picker selections against business hours.

    Minutes are assumed to come from the picker's 5-minute steps and are
    only range-checked here.
    """

    def validate(
        self,
        day: Union[date, str],
        hour12: int,
        minute: int,
        ampm: str,
    ) -> ScheduledSlot:
        day = self._parse_day(day)
        ampm = str(ampm).upper()
        try:
            hour12 = int(hour12)
            minute = int(minute)
        except (TypeError, ValueError):
            raise SchedulingError(INCOMPLETE_MESSAGE)
        if not 1 <= hour12 <= 12 or not 0 <= minute <= 59 or ampm not in ("AM", "PM"):
            raise SchedulingError(INCOMPLETE_MESSAGE)

        hour24 = to_24_hour(hour12, ampm)
        if hour24 < OPENING_HOUR or hour24 > CLOSING_HOUR:
            raise SchedulingError(OUT_OF_HOURS_MESSAGE)
        # 5:00 PM is the last valid instant.
        if hour24 == CLOSING_HOUR and minute != 0:
            raise SchedulingError(OUT_OF_HOURS_MESSAGE)

        at = datetime.combine(day, time(hour24, minute))
        return ScheduledSlot(
            at=at,
            date_label=format_date_label(at),
            time_label=format_time_label(at),
        )

    def default_selection(self, now: datetime) -> PickerDefaults:
        """Next 5-minute mark today, clamped to business hours."""
        rounded = math.ceil(now.minute / MINUTE_STEP) * MINUTE_STEP
        hour24 = now.hour
        minute = rounded
        if rounded >= 60:
            hour24 = (hour24 + 1) % 24
            minute = 0

        if hour24 < OPENING_HOUR:
            hour24, minute = OPENING_HOUR, 0
        elif hour24 >= CLOSING_HOUR:
            hour24, minute = CLOSING_HOUR, 0

        hour12 = hour24 % 12 or 12
        return PickerDefaults(
            date=now.date(),
            hour=hour12,
            minute=minute,
            ampm=meridiem_for_hour(hour12),
        )

    def _parse_day(self, day: Union[date, str]) -> date:
        if isinstance(day, datetime):
            return day.date()
        if isinstance(day, date):
            return day
        if not day:
            raise SchedulingError(INCOMPLETE_MESSAGE)
        try:
            return date.fromisoformat(str(day))
        except ValueError:
            raise SchedulingError(INCOMPLETE_MESSAGE)


def visit_time(now: datetime, days_ahead: int) -> datetime:
    """Sample appointment used by the confirm-visit script."""
    return now + timedelta(days=days_ahead)
