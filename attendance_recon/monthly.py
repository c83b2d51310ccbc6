"""
Monthly consolidation.

Each day of the month shows the reconciled final status or a blank. The
monthly view never derives a status from punches on its own; punches are
only used for the hours columns.
"""
import logging

from .config import RESOLUTION_RULES, WORK_HOURS_BANDS
from .models import DayAttendance, EmployeeMonthlyData, MonthlySummary, employee_key
from .statuses import AttendanceStatus, parse_status
from .timeutils import (calculate_duration, format_date, is_missing_time, month_dates,
                        parse_date, punch_duration, time_to_minutes)

logger = logging.getLogger(__name__)

BLANK = '-'

# Filter label -> statuses it shows
STATUS_FILTERS = {
    'Present': (AttendanceStatus.PRESENT,),
    'Absent': (AttendanceStatus.ABSENT,),
    'Worked Off': (AttendanceStatus.WORKED_OFF,),
    'Weekly Off': (AttendanceStatus.WEEKLY_OFF,),
    'Holiday': (AttendanceStatus.HOLIDAY,),
    'Audit': (AttendanceStatus.AUDIT, AttendanceStatus.HALF_DAY),
    'ID Error': (AttendanceStatus.ERROR,),
}


def status_matches_filter(status, status_filter):
    if not status_filter or status_filter == 'All':
        return True
    wanted = STATUS_FILTERS.get(status_filter)
    if wanted is not None:
        return parse_status(status) in wanted
    return status == status_filter


def hours_band(hours, bands=None):
    """Colour band for a work-hours figure: none, red, amber, green or purple."""
    bands = bands or WORK_HOURS_BANDS
    if hours <= 0:
        return 'none'
    if hours < bands['red_below']:
        return 'red'
    if hours < bands['amber_below']:
        return 'amber'
    if hours <= bands['green_up_to']:
        return 'green'
    return 'purple'


def _day_key(employee_number, day):
    return employee_key(employee_number), format_date(day).upper()


class MonthlyAggregator:

    def __init__(self, employees, attendance, reconciliation_records, shifts=(),
                 is_finalized=False, rules=None):
        self.employees = list(employees)
        self.attendance = list(attendance)
        self.rules = rules or RESOLUTION_RULES
        self.is_finalized = is_finalized
        self.shifts = {}
        for shift in shifts:
            self.shifts[shift.id.lower()] = shift
            self.shifts[shift.label.lower()] = shift
        self.default_shift = shifts[0] if shifts else None

        self.reconciliation = {}
        for record in reconciliation_records:
            key = _day_key(record.employee_number, record.date)
            current = self.reconciliation.get(key)
            if current is None or (record.is_reconciled and not current.is_reconciled):
                self.reconciliation[key] = record

    def shift_start_minutes(self, record):
        shift = self.shifts.get((record.shift or '').strip().lower()) or self.default_shift
        return shift.start_minutes if shift else 540

    def build(self, year, month, status_filter=None):
        """One EmployeeMonthlyData per known employee for the given month (1-12)."""
        dates = month_dates(year, month)
        by_employee = {}
        for record in self.attendance:
            day = parse_date(record.date)
            if day is None or (day.year, day.month) != (year, month):
                continue
            by_employee.setdefault(employee_key(record.employee_number), []).append(record)

        result = []
        for emp in self.employees:
            records = by_employee.get(emp.key, [])
            record_map = {format_date(record.date).upper(): record for record in records}
            result.append(self._build_employee(emp, dates, records, record_map, status_filter))

        logger.info("Built monthly view for %04d-%02d: %d employees", year, month, len(result))
        return result

    def _build_employee(self, emp, dates, records, record_map, status_filter):
        days = []
        has_unreconciled = False

        for day in dates:
            date_str = format_date(day)
            record = record_map.get(date_str.upper())
            reconciled = self.reconciliation.get(_day_key(emp.employee_number, day))
            is_reconciled = reconciled is not None and reconciled.is_reconciled

            if record is not None and not is_reconciled and not self.is_finalized:
                has_unreconciled = True

            status = BLANK
            hours = 0.0
            if is_reconciled:
                status = reconciled.final_status or reconciled.original_status or BLANK
                if record is not None:
                    hours = punch_duration(record.in_time, record.out_time) / 60

            if status != BLANK and not status_matches_filter(status, status_filter):
                status = BLANK

            days.append(DayAttendance(
                date=date_str,
                status=status,
                in_time=(record.in_time or BLANK) if record else BLANK,
                out_time=(record.out_time or BLANK) if record else BLANK,
                hours_worked=hours,
            ))

        return EmployeeMonthlyData(
            employee_number=emp.employee_number,
            employee_name=emp.full_name,
            department=emp.department,
            reporting_manager=emp.reporting_to or 'N/A',
            days=days,
            has_unreconciled_records=has_unreconciled,
            summary=self.summarize(days, records),
        )

    def summarize(self, days, records):
        counts = {status: 0 for status in AttendanceStatus}
        for day in days:
            parsed = parse_status(day.status)
            if parsed is not None:
                counts[parsed] += 1

        required = self.rules['required_hours']
        working_days = len(days) - counts[AttendanceStatus.WEEKLY_OFF] - counts[AttendanceStatus.HOLIDAY]
        effective_present = (counts[AttendanceStatus.PRESENT]
                             + counts[AttendanceStatus.HALF_DAY] * 0.5
                             + counts[AttendanceStatus.WORKED_OFF])
        percentage = (effective_present / working_days) * 100 if working_days > 0 else 0.0
        shortage = sum(required - day.hours_worked for day in days if 0 < day.hours_worked < required)

        actual_minutes = sum(punch_duration(record.in_time, record.out_time) for record in records)
        shift_minutes = 0
        for record in records:
            if is_missing_time(record.out_time):
                continue
            shift_minutes += calculate_duration(self.shift_start_minutes(record),
                                                time_to_minutes(record.out_time))

        return MonthlySummary(
            total_present=counts[AttendanceStatus.PRESENT],
            total_half_day=counts[AttendanceStatus.HALF_DAY],
            total_absent=counts[AttendanceStatus.ABSENT],
            total_weekly_off=counts[AttendanceStatus.WEEKLY_OFF],
            total_worked_off=counts[AttendanceStatus.WORKED_OFF],
            total_holiday=counts[AttendanceStatus.HOLIDAY],
            working_days=working_days,
            attendance_percentage=round(percentage, 2),
            total_shortage_hours=round(shortage, 2),
            total_work_hours_actual=round(actual_minutes / 60, 2),
            total_work_hours_shift=round(shift_minutes / 60, 2),
        )
