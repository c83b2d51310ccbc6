from dataclasses import dataclass, field, replace
from typing import List, Optional

from .config import DEFAULT_ALLOWED_LATE_COUNT, DEFAULT_SHIFT
from .statuses import Category
from .timeutils import format_time, parse_time, time_to_minutes


def employee_key(employee_number):
    """Case-insensitive identity used across every module."""
    return str(employee_number or '').strip().upper()


@dataclass
class Employee:
    employee_number: str
    full_name: str = ''
    email: str = ''
    date_of_joining: str = ''
    job_title: str = ''
    business_unit: str = ''
    department: str = ''
    sub_department: str = ''
    location: str = ''
    cost_center: str = ''
    legal_entity: str = ''
    band: str = ''
    reporting_to: str = ''
    dotted_line_manager: str = ''
    active_status: str = 'Active'
    resignation_date: str = ''
    left_date: str = ''
    contract_id: str = ''
    exclude_from_workhours: bool = False
    ot_eligible: bool = False
    comp_off_eligible: bool = False
    late_exemption: bool = False
    shift_deviation_allowed: bool = False
    status: str = 'Permanent'
    biometric_number: str = ''

    @property
    def key(self):
        return employee_key(self.employee_number)

    @property
    def is_active(self):
        return self.active_status == 'Active'


@dataclass
class Shift:
    """A named work schedule; allowed_late_count is one monthly cap for late-in and early-out together."""
    id: str
    label: str
    start_time: str
    end_time: str
    early_in_threshold: int = 0
    late_threshold: int = 0
    early_threshold: int = 0
    allowed_late_count: int = DEFAULT_ALLOWED_LATE_COUNT

    @property
    def start_minutes(self):
        return time_to_minutes(self.start_time)

    @property
    def end_minutes(self):
        return time_to_minutes(self.end_time)

    @classmethod
    def from_config(cls, config=None):
        config = config or DEFAULT_SHIFT
        return cls(
            id=config['id'],
            label=config['label'],
            start_time=config['begin_time'].strftime('%H:%M'),
            end_time=config['end_time'].strftime('%H:%M'),
            early_in_threshold=config.get('early_in_threshold', 0),
            late_threshold=config.get('late_threshold', 0),
            early_threshold=config.get('early_threshold', 0),
            allowed_late_count=config.get('allowed_late_count', DEFAULT_ALLOWED_LATE_COUNT),
        )


@dataclass(frozen=True)
class Holiday:
    date: str
    label: str = ''


@dataclass
class AttendanceRecord:
    """One employee, one date: the consolidated punch pair plus whatever the classifier derived."""
    employee_number: str
    date: str
    in_time: str = ''
    out_time: str = ''
    status: str = ''
    shift: str = ''
    deviation: str = ''
    employee_name: str = ''
    job_title: str = ''
    business_unit: str = ''
    department: str = ''
    sub_department: str = ''
    location: str = ''
    cost_center: str = ''
    legal_entity: str = ''
    reporting_manager: str = ''
    shift_start: str = ''
    shift_end: str = ''
    late_by: str = ''
    early_by: str = ''
    total_hours: str = ''
    effective_hours: str = ''
    over_time: str = ''
    total_short_hours_effective: str = ''
    total_short_hours_gross: str = ''
    device: str = ''

    @property
    def record_id(self):
        return f"{self.employee_number}-{self.date}"

    @property
    def has_in_punch(self):
        return bool(format_time(self.in_time))

    @property
    def has_out_punch(self):
        return bool(format_time(self.out_time))

    def copy(self, **changes):
        return replace(self, **changes)


@dataclass
class ReconciliationRecord:
    id: str
    employee_number: str
    date: str
    original_status: str
    final_status: str
    category: Category
    employee_name: str = ''
    department: str = 'N/A'
    sub_department: str = 'N/A'
    location: str = 'N/A'
    cost_center: str = 'N/A'
    legal_entity: str = 'N/A'
    reporting_manager: str = 'N/A'
    shift: str = 'N/A'
    shift_start: str = '00:00'
    shift_end: str = '00:00'
    in_time: str = '00:00'
    out_time: str = '00:00'
    total_hours: str = '00:00'
    deviation: str = ''
    late_by: str = ''
    early_by: str = ''
    excel_status: Optional[str] = None
    comments: str = ''
    is_reconciled: bool = False
    reconciled_by: Optional[str] = None
    reconciled_on: Optional[str] = None

    @classmethod
    def from_attendance(cls, att, category):
        return cls(
            id=att.record_id,
            employee_number=att.employee_number,
            date=att.date,
            original_status=att.status,
            final_status=att.status,
            category=category,
            employee_name=att.employee_name,
            department=att.department or 'N/A',
            sub_department=att.sub_department or 'N/A',
            location=att.location or 'N/A',
            cost_center=att.cost_center or 'N/A',
            legal_entity=att.legal_entity or 'N/A',
            reporting_manager=att.reporting_manager or 'N/A',
            shift=att.shift or 'N/A',
            shift_start=att.shift_start or '00:00',
            shift_end=att.shift_end or '00:00',
            in_time=att.in_time or '00:00',
            out_time=att.out_time or '00:00',
            total_hours=att.total_hours or '00:00',
            deviation=att.deviation or '',
            late_by=att.late_by or '',
            early_by=att.early_by or '',
        )

    def copy(self, **changes):
        return replace(self, **changes)


@dataclass
class ModuleStatus:
    name: str
    total: int = 0
    reconciled: int = 0
    is_complete: bool = False

    @property
    def pending(self):
        return self.total - self.reconciled


@dataclass
class DayAttendance:
    date: str
    status: str = '-'
    in_time: str = '-'
    out_time: str = '-'
    hours_worked: float = 0.0


@dataclass
class MonthlySummary:
    total_present: int = 0
    total_half_day: int = 0
    total_absent: int = 0
    total_weekly_off: int = 0
    total_worked_off: int = 0
    total_holiday: int = 0
    working_days: int = 0
    attendance_percentage: float = 0.0
    total_shortage_hours: float = 0.0
    total_work_hours_actual: float = 0.0
    total_work_hours_shift: float = 0.0


@dataclass
class EmployeeMonthlyData:
    employee_number: str
    employee_name: str
    department: str
    reporting_manager: str
    days: List[DayAttendance] = field(default_factory=list)
    has_unreconciled_records: bool = False
    summary: MonthlySummary = field(default_factory=MonthlySummary)


@dataclass
class ExcessHoursRecord:
    record: AttendanceRecord
    excess_minutes: int
    excess_hours: float
    final_payable_hours: float
    bucket: object = None
    is_reconciled: bool = False
    reconciled_by: Optional[str] = None
    reconciled_on: Optional[str] = None

    @property
    def id(self):
        return self.record.record_id


def shift_from_row(row):
    """Build a Shift from a generic key/value row of the shift matrix."""
    start = parse_time(row.get('Start Time') or row.get('startTime'))
    end = parse_time(row.get('End Time') or row.get('endTime'))
    return Shift(
        id=str(row.get('ID') or row.get('id') or row.get('Label') or '').strip(),
        label=str(row.get('Label') or row.get('label') or row.get('ID') or row.get('id') or '').strip(),
        start_time=start.strftime('%H:%M') if start else '00:00',
        end_time=end.strftime('%H:%M') if end else '00:00',
        early_in_threshold=int(row.get('Early In') or row.get('earlyInThreshold') or 0),
        late_threshold=int(row.get('Late In') or row.get('lateThreshold') or 0),
        early_threshold=int(row.get('Early Out') or row.get('earlyThreshold') or 0),
        allowed_late_count=int(row.get('Allowed Late') or row.get('allowedLateCount') or DEFAULT_ALLOWED_LATE_COUNT),
    )
