from datetime import date, timedelta
from typing import Iterable, Mapping, Optional

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def time_to_minutes(value: Optional[str]) -> int:
    if not value:
        return 0
    hours, _, minutes = value.partition(":")
    return int(hours or 0) * 60 + int(minutes or 0)


def _slot_minutes(start: Optional[str], end: Optional[str]) -> int:
    if not start or not end:
        return 0
    return max(0, time_to_minutes(end) - time_to_minutes(start))


def daily_minutes(slot: Optional[Mapping]) -> int:
    if not slot:
        return 0
    return (
        _slot_minutes(slot.get("morning_start"), slot.get("morning_end"))
        + _slot_minutes(slot.get("afternoon_start"), slot.get("afternoon_end"))
    )


def calculate_effective_days(start: Optional[date], end: Optional[date],
                             schedule: Optional[Mapping], absences: Iterable[Mapping] = ()) -> float:
    """
    Days actually present over the placement.

    Scheduled minutes of the period, minus the absence hours, divided by the
    average scheduled day and rounded to one decimal. Returns 0 when the period
    or the schedule gives nothing to count.
    """
    if not start or not end or not schedule or start > end:
        return 0

    total_minutes = 0
    working_days = 0
    day = start
    while day <= end:
        minutes = daily_minutes(schedule.get(WEEKDAYS[day.weekday()]))
        if minutes > 0:
            total_minutes += minutes
            working_days += 1
        day += timedelta(days=1)

    if working_days == 0:
        return 0

    average = total_minutes / working_days
    absence_minutes = sum(float(a.get("duration") or 0) * 60 for a in absences or ())
    effective = max(0, total_minutes - absence_minutes)
    return round(effective / average, 1)
