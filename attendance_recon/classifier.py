import logging
from collections import defaultdict

from .config import CLASSIFICATION_RULES, DEFAULT_ALLOWED_LATE_COUNT
from .models import employee_key
from .timeutils import (calculate_duration, is_missing_time, minutes_to_time_str,
                        parse_date, time_to_minutes)

logger = logging.getLogger(__name__)


class AttendanceClassifier:
    """
    Classify consolidated punches into the raw statuses the reconciliation
    queues are built from: Clean, Audit, Absent, Weekly Off, Holiday,
    Worked Off and ID Error, each with a deviation note.

    Records are processed in date order so the monthly punctuality waiver
    (shift.allowed_late_count occasions, late-in and early-out combined) is
    handed out to the earliest violations of the month.
    """

    def __init__(self, employees, shifts, calendar, rules=None):
        self.employees = employees
        self.calendar = calendar
        self.rules = rules or CLASSIFICATION_RULES
        self.shifts = {}
        for shift in shifts:
            self.shifts[shift.id.lower()] = shift
            self.shifts[shift.label.lower()] = shift

    def classify(self, records):
        occasions = defaultdict(int)
        ordered = sorted(records, key=lambda r: (parse_date(r.date) or parse_date('01-JAN-1900'),
                                                 r.employee_number))
        classified = [self._classify_one(record, occasions) for record in ordered]

        counts = defaultdict(int)
        for record in classified:
            counts[record.status] += 1
        logger.info("Classified %d records: %s", len(classified), dict(counts))
        return classified

    def _classify_one(self, record, occasions):
        emp = self.employees.get(record.employee_number)
        calendar_class = self.calendar.classify(record.date)

        valid_in = not is_missing_time(record.in_time)
        valid_out = not is_missing_time(record.out_time)
        has_full_punch = valid_in and valid_out

        shift_start = record.shift_start or '00:00'
        shift_end = record.shift_end or '00:00'

        if emp is None:
            status, deviation = 'ID Error', 'ID Not Found in Master'
        elif not emp.is_active:
            status, deviation = 'ID Error', 'Staff Inactive/Terminated'
        elif not valid_in and not valid_out:
            if calendar_class.is_holiday:
                status, deviation = 'Holiday', calendar_class.holiday_label
            elif calendar_class.is_weekly_off:
                status, deviation = 'Weekly Off', 'Standard Weekly Off'
            else:
                status, deviation = 'Absent', 'No Punch Records'
        elif not has_full_punch:
            status = 'Audit'
            deviation = 'Missing Out Punch' if valid_in else 'Missing In Punch'
        elif calendar_class.is_off_day:
            status = 'Worked Off'
            if calendar_class.is_holiday:
                deviation = f"Worked on Holiday: {calendar_class.holiday_label}"
            else:
                deviation = 'Worked on Weekly Off'
        else:
            shift = self.shifts.get((record.shift or 'GS').strip().lower())
            if shift is None:
                status, deviation = 'Audit', f"Undefined Shift: {record.shift}"
            else:
                shift_start, shift_end = shift.start_time, shift.end_time
                status, deviation = self._punctuality(record, emp, shift, occasions)

        updated = record.copy(
            status=status,
            deviation=deviation,
            shift_start=shift_start,
            shift_end=shift_end,
        )
        if emp is not None:
            updated = updated.copy(
                employee_name=emp.full_name or record.employee_name,
                job_title=emp.job_title or record.job_title,
                business_unit=emp.business_unit or record.business_unit,
                department=emp.department or record.department,
                sub_department=emp.sub_department or record.sub_department,
                location=emp.location or record.location,
                cost_center=emp.cost_center or record.cost_center,
                reporting_manager=emp.reporting_to or record.reporting_manager,
                legal_entity=emp.legal_entity or record.legal_entity or 'N/A',
            )

        if has_full_punch:
            return self._with_hours(updated)
        return updated.copy(total_hours='00:00', effective_hours='00:00')

    def _punctuality(self, record, emp, shift, occasions):
        start = shift.start_minutes
        end = shift.end_minutes
        punch_in = time_to_minutes(record.in_time)
        punch_out = time_to_minutes(record.out_time)

        is_late_in = punch_in > start
        is_early_out = punch_out < end
        is_very_early_in = punch_in < start - (shift.early_in_threshold or 0)

        day = parse_date(record.date)
        month_key = (employee_key(emp.employee_number), day.year if day else 0, day.month if day else 0)
        allowed = shift.allowed_late_count or DEFAULT_ALLOWED_LATE_COUNT

        waiver_occasion = None
        single_violation = (is_late_in or is_early_out) and not (is_late_in and is_early_out)
        if single_violation and not emp.shift_deviation_allowed:
            if occasions[month_key] < allowed:
                occasions[month_key] += 1
                waiver_occasion = occasions[month_key]

        if is_very_early_in:
            return 'Audit', f"Very Early In ({start - punch_in}m)"
        if is_late_in or is_early_out:
            if is_late_in and is_early_out:
                reason = 'Double Violation (Late + Early)'
            elif is_late_in:
                reason = f"Late In ({punch_in - start}m)"
            else:
                reason = f"Early Out ({end - punch_out}m)"
            if waiver_occasion is not None:
                return 'Audit', f"Audit Waiver Eligible (Occasion {waiver_occasion}/{allowed}) - {reason}"
            return 'Audit', reason
        return 'Clean', 'On Time'

    def _with_hours(self, record):
        start = time_to_minutes(record.shift_start)
        end = time_to_minutes(record.shift_end)
        punch_in = time_to_minutes(record.in_time)
        punch_out = time_to_minutes(record.out_time)

        gross = calculate_duration(punch_in, punch_out)
        effective = max(0, gross - self.rules['break_minutes'])
        return record.copy(
            late_by=minutes_to_time_str(punch_in - start) if punch_in > start else '00:00',
            early_by=minutes_to_time_str(end - punch_out) if punch_out < end else '00:00',
            total_hours=minutes_to_time_str(gross),
            effective_hours=minutes_to_time_str(effective),
            over_time=minutes_to_time_str(punch_out - end) if punch_out > end else '00:00',
            total_short_hours_effective=minutes_to_time_str(self.rules['effective_day_minutes'] - effective),
            total_short_hours_gross=minutes_to_time_str(self.rules['gross_day_minutes'] - gross),
        )
