"""Attendance status resolution and reconciliation."""

from .calendar_rules import CalendarClass, CalendarClassifier
from .classifier import AttendanceClassifier
from .employees import EmployeeDirectory, consolidate_punches, detect_column_mapping
from .excess_hours import ExcessBucket, ExcessHoursClassifier
from .ledger import ReconciliationLedger, can_mutate
from .models import (AttendanceRecord, Employee, EmployeeMonthlyData, Holiday, ModuleStatus,
                     ReconciliationRecord, Shift)
from .monthly import MonthlyAggregator, hours_band
from .resolver import DailyStatusResolver, ResolvedDay, resolve
from .statuses import AttendanceStatus, Category, categorize, parse_status

__version__ = '0.1.0'
