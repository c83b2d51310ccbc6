"""
Daily attendance status resolution.

``resolve`` turns one employee's punch pair for one day into a status code
plus the metrics behind it. The rules, in priority order:

    1. a record parked as UNRECONCILED_ABSENT resolves to blank
    2. no punch / no in-time      -> WO, H or A depending on the calendar
    3. in-time but no out-time    -> HD (missing punch), zero hours
    4. worked minutes = out - in, wrapping past midnight
    5. late  when in > shift start by more than 60 mins, or by any amount
       once the monthly tolerance is used up
    6. early when hours fall short of the required hours, same 60 min /
       tolerance rule
    7. late and early on the same day -> HD
    8. WO/H with >= 4 hours -> WOH, otherwise the off-day status stands
    9. >= 8 hours, not late, not early -> P
   10. 4..8 hours -> HD
   11. 0..4 hours -> HD
   12. anything else -> A
"""
import logging
from collections import defaultdict
from dataclasses import dataclass

from .calendar_rules import WORKING_DAY
from .config import DEFAULT_ALLOWED_LATE_COUNT, RESOLUTION_RULES, UNRECONCILED_ABSENT
from .statuses import AttendanceStatus
from .timeutils import (calculate_duration, is_missing_time, minutes_to_time_str,
                        parse_date, time_to_minutes)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedDay:
    status: AttendanceStatus
    hours_worked: float = 0.0
    is_late: bool = False
    is_early: bool = False
    late_minutes: int = 0
    early_minutes: int = 0
    worked_minutes: int = 0

    @property
    def code(self):
        return self.status.code


def _off_day_status(calendar_class):
    if calendar_class.is_weekly_off:
        return AttendanceStatus.WEEKLY_OFF
    if calendar_class.is_holiday:
        return AttendanceStatus.HOLIDAY
    return None


def resolve(punch, calendar_class=WORKING_DAY, shift_start_minutes=540,
            late_tolerance_used=False, early_tolerance_used=False, rules=None):
    """
    Resolve one day. ``punch`` is an AttendanceRecord (or anything with
    in_time/out_time/status attributes) or None when the employee has no
    record for the date. Pure: same inputs, same ResolvedDay.
    """
    rules = rules or RESOLUTION_RULES
    required_minutes = rules['required_hours'] * 60
    half_day_minutes = rules['half_day_hours'] * 60
    worked_off_minutes = rules['worked_off_min_hours'] * 60
    threshold = rules['violation_threshold_minutes']

    if punch is not None and getattr(punch, 'status', '') == UNRECONCILED_ABSENT:
        return ResolvedDay(AttendanceStatus.BLANK)

    if punch is None or is_missing_time(punch.in_time):
        off_status = _off_day_status(calendar_class)
        return ResolvedDay(off_status or AttendanceStatus.ABSENT)

    if is_missing_time(punch.out_time):
        return ResolvedDay(AttendanceStatus.HALF_DAY)

    in_minutes = time_to_minutes(punch.in_time)
    out_minutes = time_to_minutes(punch.out_time)
    worked_minutes = calculate_duration(in_minutes, out_minutes)
    hours_worked = worked_minutes / 60

    is_late = False
    late_minutes = 0
    if shift_start_minutes > 0 and in_minutes > shift_start_minutes:
        late_minutes = in_minutes - shift_start_minutes
        is_late = late_minutes > threshold or late_tolerance_used

    is_early = False
    early_minutes = 0
    if worked_minutes < required_minutes:
        early_minutes = required_minutes - worked_minutes
        is_early = early_minutes > threshold or early_tolerance_used

    metrics = dict(hours_worked=hours_worked, is_late=is_late, is_early=is_early,
                   late_minutes=late_minutes, early_minutes=early_minutes,
                   worked_minutes=worked_minutes)

    if is_late and is_early:
        return ResolvedDay(AttendanceStatus.HALF_DAY, **metrics)

    off_status = _off_day_status(calendar_class)
    if off_status is not None:
        if worked_minutes >= worked_off_minutes:
            return ResolvedDay(AttendanceStatus.WORKED_OFF, hours_worked=hours_worked,
                               worked_minutes=worked_minutes)
        return ResolvedDay(off_status, hours_worked=hours_worked, worked_minutes=worked_minutes)

    if worked_minutes >= required_minutes and not is_late and not is_early:
        return ResolvedDay(AttendanceStatus.PRESENT, **metrics)
    if half_day_minutes <= worked_minutes < required_minutes:
        return ResolvedDay(AttendanceStatus.HALF_DAY, **metrics)
    if 0 < worked_minutes < half_day_minutes:
        return ResolvedDay(AttendanceStatus.HALF_DAY, **metrics)
    return ResolvedDay(AttendanceStatus.ABSENT, **metrics)


class DailyStatusResolver:
    """
    Resolves a batch of attendance records, carrying each employee's
    monthly tolerance. A late or early occurrence inside the 60 minute
    threshold uses up one occasion of the shift's allowed_late_count (one
    cap shared by late-in and early-out); once the cap is reached, every
    later occurrence that month counts as a violation.
    """

    def __init__(self, calendar, shifts=(), default_shift=None, rules=None):
        self.calendar = calendar
        self.rules = rules or RESOLUTION_RULES
        self.shifts = {}
        for shift in shifts:
            self.shifts[shift.id.lower()] = shift
            self.shifts[shift.label.lower()] = shift
        self.default_shift = default_shift or (shifts[0] if shifts else None)

    def shift_for(self, record):
        shift = self.shifts.get((record.shift or '').strip().lower())
        return shift or self.default_shift

    def resolve_records(self, records):
        """Return [(record, ResolvedDay)] in date, then employee order."""
        threshold = self.rules['violation_threshold_minutes']
        occasions = defaultdict(int)
        results = []

        ordered = sorted(records, key=lambda r: (parse_date(r.date) or parse_date('01-JAN-1900'),
                                                 r.employee_number))
        for record in ordered:
            shift = self.shift_for(record)
            start = shift.start_minutes if shift else 540
            allowed = shift.allowed_late_count if shift else DEFAULT_ALLOWED_LATE_COUNT
            day = parse_date(record.date)
            month_key = (record.employee_number.strip().upper(),
                         day.year if day else 0, day.month if day else 0)
            exhausted = occasions[month_key] >= allowed

            resolved = resolve(record, self.calendar.classify(record.date), start,
                               late_tolerance_used=exhausted, early_tolerance_used=exhausted,
                               rules=self.rules)

            tolerated = ((0 < resolved.late_minutes <= threshold and not resolved.is_late) or
                         (0 < resolved.early_minutes <= threshold and not resolved.is_early))
            if tolerated:
                occasions[month_key] += 1
                logger.debug("%s %s tolerated occasion %d/%d", record.employee_number,
                             record.date, occasions[month_key], allowed)

            results.append((record, resolved))
        return results

    def apply(self, records):
        """Copies of the records with status and derived time columns filled in."""
        updated = []
        for record, resolved in self.resolve_records(records):
            updated.append(record.copy(
                status=resolved.code,
                total_hours=minutes_to_time_str(resolved.worked_minutes),
                late_by=minutes_to_time_str(resolved.late_minutes),
                early_by=minutes_to_time_str(resolved.early_minutes),
            ))
        logger.info("Resolved %d attendance records", len(updated))
        return updated
