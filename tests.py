"""
Unit tests for attendance resolution and reconciliation
"""
import os
import tempfile
import threading
import unittest
from datetime import date, datetime, time

import openpyxl

from attendance_recon.audit import (AuditBucket, categorize_audit_record, occurrence_color,
                                    occurrence_label, occurrence_number)
from attendance_recon.autosave import CommitScheduler
from attendance_recon.calendar_rules import CalendarClass, CalendarClassifier
from attendance_recon.classifier import AttendanceClassifier
from attendance_recon.cli import finalize as finalize_reconciliation
from attendance_recon.config import UNRECONCILED_ABSENT
from attendance_recon.employees import EmployeeDirectory, consolidate_punches, detect_column_mapping
from attendance_recon.exceptions import (FinalizeBlockedError, ImportFormatError, InvalidStatusError,
                                         MappingError, NotFinalizedError, PermissionDeniedError,
                                         RecordLockedError, RecordNotFoundError)
from attendance_recon.excess_hours import ExcessBucket, ExcessHoursClassifier
from attendance_recon.ledger import ReconciliationLedger, can_mutate
from attendance_recon.models import (AttendanceRecord, DayAttendance, Employee, Holiday,
                                     ReconciliationRecord, Shift, shift_from_row)
from attendance_recon.monthly import MonthlyAggregator, hours_band
from attendance_recon.resolver import DailyStatusResolver, resolve
from attendance_recon.spreadsheets import (export_filename, monthly_filename, read_rows,
                                           write_audit_bucket, write_monthly, write_queue)
from attendance_recon.statuses import (STATUS_OPTIONS, AttendanceStatus, Category, categorize,
                                       parse_status)
from attendance_recon.timeutils import (calculate_duration, format_date, format_time, hhmm_to_hours,
                                        is_missing_time, minutes_to_time_str, parse_date)

# March 2025: the 1st is a Saturday, Sundays are 2, 9, 16, 23, 30
SUNDAY = '02-MAR-2025'
MONDAY = '03-MAR-2025'
HOLIDAY = '14-MAR-2025'

WORKING = CalendarClass()
WEEKLY_OFF = CalendarClass(is_weekly_off=True)
PUBLIC_HOLIDAY = CalendarClass(is_holiday=True, holiday_label='Holi')


def punch(in_time, out_time, day=MONDAY, employee='E1', status='', shift='', deviation=''):
    return AttendanceRecord(employee_number=employee, date=day, in_time=in_time, out_time=out_time,
                            status=status, shift=shift, deviation=deviation)


def recon(employee, day, final_status, reconciled=True, category=Category.PRESENT, **fields):
    return ReconciliationRecord(id=f"{employee}-{day}", employee_number=employee, date=day,
                                original_status=final_status, final_status=final_status,
                                category=category, is_reconciled=reconciled, **fields)


def general_shift(**overrides):
    values = dict(id='GS', label='General', start_time='09:00', end_time='18:00')
    values.update(overrides)
    return Shift(**values)


class FixedClock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


class TestTimeUtils(unittest.TestCase):
    """Test time and date helpers"""

    def test_calculate_duration_overnight(self):
        """22:00 to 06:00 wraps past midnight"""
        self.assertEqual(calculate_duration(22 * 60, 6 * 60), 480)

    def test_missing_time_sentinels(self):
        """Empty, NA, dash and 00:00 all mean no punch"""
        for value in (None, '', 'NA', '-', '00:00', time(0, 0)):
            self.assertTrue(is_missing_time(value), value)
        self.assertFalse(is_missing_time('09:00'))

    def test_format_time_excel_fraction(self):
        """Excel stores 09:00 as 0.375 of a day"""
        self.assertEqual(format_time(0.375), '09:00')
        self.assertEqual(format_time('9:05:30'), '09:05')

    def test_format_date_variants(self):
        """Dates normalise to DD-MMM-YYYY"""
        self.assertEqual(format_date(date(2025, 3, 5)), '05-MAR-2025')
        self.assertEqual(format_date('2025-03-05'), '05-MAR-2025')
        self.assertEqual(format_date('05-mar-2025'), '05-MAR-2025')
        self.assertEqual(parse_date('05-Mar-2025'), date(2025, 3, 5))

    def test_minutes_to_time_str_clamps_negative(self):
        """Negative durations render as 00:00"""
        self.assertEqual(minutes_to_time_str(-5), '00:00')
        self.assertEqual(minutes_to_time_str(125), '02:05')

    def test_hhmm_to_hours(self):
        """HH:MM durations convert to decimal hours"""
        self.assertEqual(hhmm_to_hours('07:30'), 7.5)
        self.assertEqual(hhmm_to_hours('-'), 0.0)


class TestStatuses(unittest.TestCase):
    """Test the closed status vocabulary"""

    def test_parse_status_aliases(self):
        """Every spelling maps onto one status"""
        self.assertIs(parse_status('Clean'), AttendanceStatus.PRESENT)
        self.assertIs(parse_status('worked off'), AttendanceStatus.WORKED_OFF)
        self.assertIs(parse_status('ID Error'), AttendanceStatus.ERROR)
        self.assertIsNone(parse_status('Mystery'))

    def test_categorize_first_match(self):
        """Statuses route to exactly one queue"""
        self.assertIs(categorize('Absent'), Category.ABSENT)
        self.assertIs(categorize('Holiday'), Category.OFF_DAYS)
        self.assertIs(categorize('HD'), Category.UNCLASSIFIED)
        self.assertIs(categorize('HD', 'Missing Out Punch'), Category.AUDIT)
        self.assertIs(categorize('Very Late'), Category.AUDIT)
        self.assertIs(categorize('Mystery', 'Late In (20m)'), Category.AUDIT)
        self.assertIs(categorize('Mystery', '-'), Category.UNCLASSIFIED)

    def test_status_options_closed_set(self):
        """Full-day codes plus ordered half-day pairs of distinct codes"""
        self.assertIn('P/CL', STATUS_OPTIONS)
        self.assertIn('A/LOP', STATUS_OPTIONS)
        self.assertNotIn('P/P', STATUS_OPTIONS)
        self.assertNotIn('Present', STATUS_OPTIONS)
        self.assertEqual(len(STATUS_OPTIONS), 10 + 42)


class TestCalendarClassifier(unittest.TestCase):
    """Test weekly-off and holiday membership"""

    def setUp(self):
        self.calendar = CalendarClassifier(weekly_offs=(0,), holidays=[Holiday(HOLIDAY, 'Holi')])

    def test_sunday_is_weekly_off(self):
        """Weekday index 0 is Sunday"""
        self.assertTrue(self.calendar.is_weekly_off(SUNDAY))
        self.assertFalse(self.calendar.is_weekly_off(MONDAY))

    def test_holiday_lookup_case_insensitive(self):
        """Holiday dates match regardless of month case"""
        result = self.calendar.classify('14-mar-2025')
        self.assertTrue(result.is_holiday)
        self.assertEqual(result.holiday_label, 'Holi')
        self.assertTrue(result.is_off_day)


class TestDailyStatusResolver(unittest.TestCase):
    """Test the daily status rules"""

    # ==================== Documented Scenarios ====================
    def test_scenario_a_small_late_is_present(self):
        """10 minutes late within tolerance and 9.33h worked is Present"""
        result = resolve(punch('09:10', '18:30'), WORKING, 540)
        self.assertIs(result.status, AttendanceStatus.PRESENT)
        self.assertAlmostEqual(result.hours_worked, 9.33, places=2)
        self.assertEqual(result.late_minutes, 10)
        self.assertFalse(result.is_late)

    def test_scenario_b_short_day_is_half_day(self):
        """2.92h worked is a half day"""
        result = resolve(punch('09:05', '12:00'), WORKING, 540)
        self.assertIs(result.status, AttendanceStatus.HALF_DAY)
        self.assertAlmostEqual(result.hours_worked, 2.92, places=2)

    def test_scenario_c_weekly_off(self):
        """No punch on a weekly off is WO; 9h worked on it is WOH"""
        self.assertIs(resolve(None, WEEKLY_OFF).status, AttendanceStatus.WEEKLY_OFF)
        worked = resolve(punch('08:00', '17:00', day=SUNDAY), WEEKLY_OFF, 540)
        self.assertIs(worked.status, AttendanceStatus.WORKED_OFF)
        self.assertEqual(worked.hours_worked, 9.0)

    # ==================== Priority Rules ====================
    def test_unreconciled_absence_is_blank(self):
        """The parked-absence sentinel resolves to blank with no hours"""
        result = resolve(punch('09:00', '18:00', status=UNRECONCILED_ABSENT), WORKING)
        self.assertIs(result.status, AttendanceStatus.BLANK)
        self.assertEqual(result.hours_worked, 0)

    def test_no_punch_by_calendar(self):
        """No in-time resolves by calendar: WO before H before A"""
        both = CalendarClass(is_weekly_off=True, is_holiday=True)
        self.assertIs(resolve(punch('', '18:00'), both).status, AttendanceStatus.WEEKLY_OFF)
        self.assertIs(resolve(punch('NA', ''), PUBLIC_HOLIDAY).status, AttendanceStatus.HOLIDAY)
        self.assertIs(resolve(None, WORKING).status, AttendanceStatus.ABSENT)

    def test_missing_out_punch_is_half_day(self):
        """In without out is a half day with zero hours"""
        result = resolve(punch('09:00', '-'), WORKING)
        self.assertIs(result.status, AttendanceStatus.HALF_DAY)
        self.assertEqual(result.hours_worked, 0)

    def test_mutual_exclusion_late_and_early(self):
        """Late and early on the same day is always a half day"""
        result = resolve(punch('10:30', '15:00'), WORKING, 540)
        self.assertTrue(result.is_late and result.is_early)
        self.assertIs(result.status, AttendanceStatus.HALF_DAY)

        exhausted = resolve(punch('09:10', '17:05'), WORKING, 540,
                            late_tolerance_used=True, early_tolerance_used=True)
        self.assertTrue(exhausted.is_late and exhausted.is_early)
        self.assertIs(exhausted.status, AttendanceStatus.HALF_DAY)

    def test_worked_off_needs_four_hours(self):
        """Under 4h on an off day keeps the off-day status"""
        short = resolve(punch('08:00', '10:00', day=SUNDAY), WEEKLY_OFF, 540)
        self.assertIs(short.status, AttendanceStatus.WEEKLY_OFF)
        short_holiday = resolve(punch('09:00', '11:00', day=HOLIDAY), PUBLIC_HOLIDAY, 540)
        self.assertIs(short_holiday.status, AttendanceStatus.HOLIDAY)

    def test_worked_off_at_four_hours(self):
        """4h or more on a weekly off or holiday is worked-off"""
        sunday = resolve(punch('10:00', '14:30', day=SUNDAY), WEEKLY_OFF, 540)
        self.assertIs(sunday.status, AttendanceStatus.WORKED_OFF)
        self.assertEqual(sunday.hours_worked, 4.5)
        holiday = resolve(punch('09:00', '13:00', day=HOLIDAY), PUBLIC_HOLIDAY, 540)
        self.assertIs(holiday.status, AttendanceStatus.WORKED_OFF)

    def test_overnight_shift(self):
        """22:00 to 06:00 against a 22:00 shift is a full day"""
        result = resolve(punch('22:00', '06:00'), WORKING, 22 * 60)
        self.assertEqual(result.worked_minutes, 480)
        self.assertIs(result.status, AttendanceStatus.PRESENT)

    def test_zero_minutes_is_absent(self):
        """Identical in and out times fall through to Absent"""
        self.assertIs(resolve(punch('09:00', '09:00'), WORKING, 540).status, AttendanceStatus.ABSENT)

    def test_resolution_is_idempotent(self):
        """Same inputs, same result"""
        record = punch('09:40', '16:10')
        self.assertEqual(resolve(record, WORKING, 540), resolve(record, WORKING, 540))

    # ==================== Batch Resolution ====================
    def test_monthly_tolerance_exhaustion(self):
        """Two tolerated late days, then every small late counts"""
        calendar = CalendarClassifier(weekly_offs=(0,))
        resolver = DailyStatusResolver(calendar, shifts=[general_shift(allowed_late_count=2)])
        records = [punch('09:10', '18:30', day=day) for day in
                   ('06-MAR-2025', '03-MAR-2025', '05-MAR-2025', '04-MAR-2025')]

        results = resolver.resolve_records(records)
        self.assertEqual([record.date for record, _ in results],
                         ['03-MAR-2025', '04-MAR-2025', '05-MAR-2025', '06-MAR-2025'])
        self.assertEqual([resolved.is_late for _, resolved in results], [False, False, True, True])
        self.assertEqual([resolved.code for _, resolved in results], ['P', 'P', 'A', 'A'])

    def test_batch_without_shift_uses_default_tolerance(self):
        """With no shift configured the first small late of the month is still tolerated"""
        resolver = DailyStatusResolver(CalendarClassifier(weekly_offs=(0,)))
        results = resolver.resolve_records([punch('09:10', '18:30', day=day) for day in
                                            ('03-MAR-2025', '04-MAR-2025', '05-MAR-2025')])
        self.assertEqual([resolved.code for _, resolved in results], ['P', 'P', 'A'])
        self.assertEqual(results[0][1].late_minutes, 10)
        self.assertFalse(results[0][1].is_late)

    def test_apply_fills_status_and_hours(self):
        """apply() writes the code and HH:MM figures back onto copies"""
        resolver = DailyStatusResolver(CalendarClassifier(weekly_offs=(0,)), shifts=[general_shift()])
        updated = resolver.apply([punch('09:00', '13:30')])
        self.assertEqual(updated[0].status, 'HD')
        self.assertEqual(updated[0].total_hours, '04:30')
        self.assertEqual(updated[0].early_by, '03:30')


class TestAttendanceClassifier(unittest.TestCase):
    """Test raw status classification of consolidated punches"""

    def setUp(self):
        self.directory = EmployeeDirectory([
            Employee('E1', full_name='Asha', department='Ops'),
            Employee('E2', full_name='Ravi', active_status='Inactive'),
        ])
        calendar = CalendarClassifier(weekly_offs=(0,), holidays=[Holiday(HOLIDAY, 'Holi')])
        shift = general_shift(early_in_threshold=30, allowed_late_count=2)
        self.classifier = AttendanceClassifier(self.directory, [shift], calendar)

    def classify_one(self, record):
        return self.classifier.classify([record])[0]

    def test_id_errors(self):
        """Unknown and inactive employees are ID errors"""
        unknown = self.classify_one(punch('09:00', '18:00', employee='E9'))
        self.assertEqual((unknown.status, unknown.deviation), ('ID Error', 'ID Not Found in Master'))
        inactive = self.classify_one(punch('09:00', '18:00', employee='E2'))
        self.assertEqual(inactive.deviation, 'Staff Inactive/Terminated')

    def test_no_punch_days(self):
        """No punches: Holiday, Weekly Off or Absent"""
        self.assertEqual(self.classify_one(punch('', '', day=SUNDAY)).status, 'Weekly Off')
        holiday = self.classify_one(punch('', '', day=HOLIDAY))
        self.assertEqual((holiday.status, holiday.deviation), ('Holiday', 'Holi'))
        self.assertEqual(self.classify_one(punch('NA', 'NA')).status, 'Absent')

    def test_single_punch_goes_to_audit(self):
        """One punch is a missing-punch audit"""
        record = self.classify_one(punch('09:00', ''))
        self.assertEqual((record.status, record.deviation), ('Audit', 'Missing Out Punch'))
        self.assertEqual(record.total_hours, '00:00')

    def test_worked_on_weekly_off(self):
        """Full punches on a Sunday are Worked Off"""
        record = self.classify_one(punch('09:00', '15:00', day=SUNDAY))
        self.assertEqual((record.status, record.deviation), ('Worked Off', 'Worked on Weekly Off'))

    def test_undefined_shift(self):
        """Unknown shift codes are flagged"""
        record = self.classify_one(punch('09:00', '18:00', shift='NS'))
        self.assertEqual((record.status, record.deviation), ('Audit', 'Undefined Shift: NS'))

    def test_clean_day_with_hours(self):
        """An on-time day is Clean and gets its derived hours"""
        record = self.classify_one(punch('08:50', '18:10', shift='GS'))
        self.assertEqual((record.status, record.deviation), ('Clean', 'On Time'))
        self.assertEqual(record.total_hours, '09:20')
        self.assertEqual(record.effective_hours, '08:20')
        self.assertEqual(record.over_time, '00:10')
        self.assertEqual(record.late_by, '00:00')
        self.assertEqual(record.employee_name, 'Asha')

    def test_very_early_in(self):
        """Arriving before start minus the early-in threshold is audited"""
        record = self.classify_one(punch('08:00', '18:00', shift='GS'))
        self.assertEqual(record.deviation, 'Very Early In (60m)')

    def test_waiver_occasions_per_month(self):
        """The first two single violations of the month are waiver eligible"""
        records = [punch('09:20', '18:00', day=day, shift='GS')
                   for day in ('05-MAR-2025', '03-MAR-2025', '04-MAR-2025')]
        result = self.classifier.classify(records)
        self.assertEqual([r.deviation for r in result], [
            'Audit Waiver Eligible (Occasion 1/2) - Late In (20m)',
            'Audit Waiver Eligible (Occasion 2/2) - Late In (20m)',
            'Late In (20m)',
        ])

    def test_double_violation(self):
        """Late in and early out together never consume a waiver"""
        record = self.classify_one(punch('09:30', '17:00', shift='GS'))
        self.assertEqual(record.deviation, 'Double Violation (Late + Early)')


def attendance_set():
    """One record per queue plus a bare half day and an unknown status."""
    return [
        punch('', '', employee='E1', status='Absent', deviation='No Punch Records'),
        punch('09:00', '18:00', employee='E2', status='Clean', deviation='On Time'),
        punch('09:00', '18:00', employee='E3', status='Present'),
        punch('09:00', '15:00', employee='E4', status='Worked Off', day=SUNDAY),
        punch('', '', employee='E5', status='Weekly Off', day=SUNDAY),
        punch('', '', employee='E6', status='Holiday', day=HOLIDAY),
        punch('09:00', '18:00', employee='E7', status='ID Error', deviation='ID Not Found in Master'),
        punch('09:00', '', employee='E8', status='Audit', deviation='Missing Out Punch'),
        punch('09:00', '18:00', employee='E9', status='HD'),
        punch('09:00', '18:00', employee='E10', status='Mystery'),
    ]


class TestReconciliationLedger(unittest.TestCase):
    """Test queue partitioning and the review lifecycle"""

    def setUp(self):
        self.clock = FixedClock(datetime(2025, 3, 31, 10, 0, 0))
        self.ledger = ReconciliationLedger(actor='reviewer@example.com', clock=self.clock)
        self.counts = self.ledger.initialize(attendance_set())

    # ==================== Partitioning ====================
    def test_partition_counts(self):
        """Each known status lands in its queue"""
        self.assertEqual(self.counts[Category.ABSENT], 1)
        self.assertEqual(self.counts[Category.PRESENT], 2)
        self.assertEqual(self.counts[Category.WORKED_OFF], 1)
        self.assertEqual(self.counts[Category.OFF_DAYS], 2)
        self.assertEqual(self.counts[Category.ERRORS], 1)
        self.assertEqual(self.counts[Category.AUDIT], 1)
        self.assertEqual(self.counts[Category.UNCLASSIFIED], 2)

    def test_partition_completeness(self):
        """Every record appears in exactly one queue"""
        for att in attendance_set():
            hits = [category for category in Category
                    if any(r.id == att.record_id for r in self.ledger.records(category))]
            self.assertEqual(len(hits), 1, att.record_id)

    def test_reinitialize_declined(self):
        """Declining re-initialization keeps the current queues"""
        self.assertIsNone(self.ledger.initialize([], confirm=lambda message: False))
        self.assertEqual(len(self.ledger), 10)

    # ==================== Overlay Import ====================
    def test_scenario_d_overlay_import(self):
        """38 of 45 absent records matched; the rest are Not Found"""
        attendance = [punch('', '', employee=f"E{n:03d}", status='Absent') for n in range(1, 46)]
        self.ledger.initialize(attendance)
        rows = [{'Employee Number': f"E{n:03d}", 'Date': MONDAY, 'Final Status': 'CL', 'Comments': 'Leave'}
                for n in range(1, 39)]

        result = self.ledger.import_overlay(Category.ABSENT, rows)

        self.assertEqual(result, {'matched': 38, 'unmatched': 7})
        records = {r.employee_number: r for r in self.ledger.records(Category.ABSENT)}
        self.assertEqual(records['E001'].final_status, 'CL')
        self.assertEqual(records['E001'].excel_status, 'CL')
        self.assertEqual(records['E001'].comments, 'Leave')
        self.assertEqual(records['E045'].excel_status, 'Not Found')
        self.assertFalse(any(r.is_reconciled for r in records.values()))

    def test_overlay_key_matching(self):
        """Employee number is trimmed but case-sensitive; real dates are normalised"""
        rows = [{'Employee Number': ' E1 ', 'Date': datetime(2025, 3, 3), 'Final Status': 'PL'}]
        self.assertEqual(self.ledger.import_overlay(Category.ABSENT, rows), {'matched': 1, 'unmatched': 0})
        rows = [{'Employee Number': 'e1', 'Date': MONDAY, 'Final Status': 'PL'}]
        self.assertEqual(self.ledger.import_overlay(Category.ABSENT, rows), {'matched': 0, 'unmatched': 1})

    def test_overlay_missing_column(self):
        """An overlay without an employee column is rejected"""
        with self.assertRaises(MappingError):
            self.ledger.import_overlay(Category.ABSENT, [{'Date': MONDAY, 'Status': 'P'}])

    # ==================== Accepting ====================
    def test_scenario_e_accept_all(self):
        """Accept All stamps every pending record with one timestamp"""
        attendance = [punch('09:00', '18:00', employee=f"E{n}", status='P') for n in range(12)]
        self.ledger.initialize(attendance)

        accepted = self.ledger.accept_all(Category.PRESENT, confirm=lambda message: True)

        self.assertEqual(accepted, 12)
        records = self.ledger.records(Category.PRESENT)
        self.assertTrue(all(r.is_reconciled for r in records))
        self.assertEqual({r.reconciled_on for r in records}, {'31-MAR-2025 10:00:00'})
        self.assertEqual({r.reconciled_by for r in records}, {'reviewer@example.com'})
        status = self.ledger.module_status(Category.PRESENT)
        self.assertEqual((status.total, status.reconciled), (12, 12))
        self.assertFalse(status.is_complete)

    def test_accept_all_declined(self):
        """Declining Accept All changes nothing"""
        self.assertEqual(self.ledger.accept_all(Category.PRESENT, confirm=lambda message: False), 0)
        self.assertEqual(self.ledger.module_status(Category.PRESENT).reconciled, 0)

    def test_single_accept_keeps_override(self):
        """Accepting keeps the staged final status"""
        record_id = f"E1-{MONDAY}"
        self.ledger.override_status(record_id, 'P/CL')
        accepted = self.ledger.accept(record_id)
        self.assertTrue(accepted.is_reconciled)
        self.assertEqual(accepted.final_status, 'P/CL')

    def test_smart_reconcile_safety(self):
        """Smart reconcile only accepts clean records in the safe queues"""
        self.ledger.override_status(f"E3-{MONDAY}", 'A')
        untouched = (Category.ABSENT, Category.ERRORS, Category.AUDIT, Category.UNCLASSIFIED)
        before = {category: self.ledger.module_status(category).reconciled for category in untouched}

        accepted = self.ledger.smart_reconcile()

        self.assertEqual(accepted, 4)
        after = {category: self.ledger.module_status(category).reconciled for category in untouched}
        self.assertEqual(before, after)
        self.assertFalse(self.ledger.get(f"E3-{MONDAY}").is_reconciled)
        self.assertTrue(self.ledger.get(f"E2-{MONDAY}").is_reconciled)

    # ==================== Editing ====================
    def test_override_outside_closed_set(self):
        """Free-text statuses are rejected"""
        with self.assertRaises(InvalidStatusError):
            self.ledger.override_status(f"E1-{MONDAY}", 'Present-ish')

    def test_locked_after_reconcile(self):
        """Reconciled records can no longer be edited"""
        record_id = f"E1-{MONDAY}"
        self.ledger.accept(record_id)
        with self.assertRaises(RecordLockedError):
            self.ledger.override_status(record_id, 'CL')
        with self.assertRaises(RecordLockedError):
            self.ledger.edit_comment(record_id, 'too late')

    def test_unknown_record(self):
        """Unknown ids raise RecordNotFoundError"""
        with self.assertRaises(RecordNotFoundError):
            self.ledger.accept('E99-01-JAN-2025')

    def test_read_only_role(self):
        """A viewer may not mutate the ledger"""
        self.assertTrue(can_mutate('Manager'))
        self.assertFalse(can_mutate('Viewer'))
        ledger = ReconciliationLedger(role='Viewer')
        with self.assertRaises(PermissionDeniedError):
            ledger.initialize(attendance_set())

    # ==================== Completion and Finalize ====================
    def test_mark_complete_declined(self):
        """Declining the shortfall prompt leaves the module open"""
        self.assertFalse(self.ledger.mark_complete(Category.ABSENT, confirm=lambda message: False))
        self.assertFalse(self.ledger.module_status(Category.ABSENT).is_complete)

    def test_finalize_gate(self):
        """Finalize is refused while a module is incomplete"""
        self.ledger.accept(f"E2-{MONDAY}")
        with self.assertRaises(FinalizeBlockedError) as ctx:
            self.ledger.finalize()
        self.assertIn('Absent', ctx.exception.incomplete)
        self.assertFalse(self.ledger.is_finalized)

    def test_unclassified_blocks_finalize(self):
        """Unknown statuses must be reviewed before finalizing"""
        for category in (Category.ABSENT, Category.PRESENT, Category.WORKED_OFF,
                         Category.OFF_DAYS, Category.ERRORS, Category.AUDIT):
            self.ledger.mark_complete(category, confirm=lambda message: True)
        with self.assertRaises(FinalizeBlockedError) as ctx:
            self.ledger.finalize()
        self.assertEqual(ctx.exception.incomplete, ['Unclassified'])

    def test_finalize_emits_reconciled_subset(self):
        """Finalize returns only reconciled records and applies them"""
        self.ledger.override_status(f"E1-{MONDAY}", 'CL')
        self.ledger.accept(f"E1-{MONDAY}")
        for category in Category:
            self.ledger.mark_complete(category, confirm=lambda message: True)

        reconciled = self.ledger.finalize()

        self.assertTrue(self.ledger.is_finalized)
        self.assertEqual([r.id for r in reconciled], [f"E1-{MONDAY}"])
        applied = self.ledger.apply_final_statuses(attendance_set())
        self.assertEqual(applied[0].status, 'CL')
        self.assertEqual(applied[1].status, 'Clean')

    def test_download_requires_finalize(self):
        """Reconciled records are only released for download after finalize"""
        self.ledger.accept(f"E1-{MONDAY}")
        with self.assertRaises(NotFinalizedError):
            self.ledger.finalized_records()

        for category in Category:
            self.ledger.mark_complete(category, confirm=lambda message: True)
        self.ledger.finalize()

        self.assertEqual([r.id for r in self.ledger.finalized_records()], [f"E1-{MONDAY}"])

    def test_command_line_finalize_flow(self):
        """Declining leaves exports locked; confirming completes modules and finalizes"""
        self.assertFalse(finalize_reconciliation(self.ledger, confirm=lambda message: False))
        self.assertFalse(self.ledger.is_finalized)
        self.assertEqual(len(self.ledger.incomplete_modules()), 7)

        self.assertTrue(finalize_reconciliation(self.ledger, confirm=lambda message: True))
        self.assertTrue(self.ledger.is_finalized)
        self.assertEqual(self.ledger.finalized_records(), [])

    def test_commit_on_flush(self):
        """Snapshots reach the host only when the scheduler flushes"""
        snapshots = []
        ledger = ReconciliationLedger(on_commit=snapshots.append)
        ledger.initialize(attendance_set())
        ledger.accept(f"E1-{MONDAY}")
        self.assertEqual(snapshots, [])
        self.assertTrue(ledger.scheduler.flush())
        self.assertEqual(len(snapshots), 1)
        self.assertTrue(snapshots[0]['queues']['absent'][0].is_reconciled)


class TestCommitScheduler(unittest.TestCase):
    """Test commit-after-idle scheduling"""

    def test_manual_flush_only(self):
        """With no delay, commits happen on flush"""
        calls = []
        scheduler = CommitScheduler(lambda: calls.append(1), delay=None)
        scheduler.mark_dirty()
        scheduler.mark_dirty()
        self.assertFalse(scheduler.pending)
        self.assertTrue(scheduler.flush())
        self.assertFalse(scheduler.flush())
        self.assertEqual(calls, [1])

    def test_cancel_drops_pending_commit(self):
        """Cancel stops a scheduled commit"""
        calls = []
        scheduler = CommitScheduler(lambda: calls.append(1), delay=60)
        scheduler.mark_dirty()
        self.assertTrue(scheduler.pending)
        scheduler.cancel()
        self.assertFalse(scheduler.pending)
        self.assertEqual(calls, [])

    def test_timer_fires(self):
        """The commit runs once the delay passes"""
        fired = threading.Event()
        scheduler = CommitScheduler(fired.set, delay=0.05)
        scheduler.mark_dirty()
        self.assertTrue(fired.wait(2))
        scheduler.close()

    def test_closed_scheduler_ignores_changes(self):
        """After close nothing is scheduled"""
        scheduler = CommitScheduler(lambda: None, delay=60)
        scheduler.close()
        scheduler.mark_dirty()
        self.assertFalse(scheduler.pending)
        self.assertFalse(scheduler.dirty)


def audit_record(employee='E1', day=MONDAY, deviation='', total_hours='08:30', late_by='00:00',
                 early_by='00:00'):
    return recon(employee, day, 'Audit', reconciled=False, category=Category.AUDIT,
                 deviation=deviation, total_hours=total_hours, late_by=late_by, early_by=early_by)


class TestAuditSubCategorizer(unittest.TestCase):
    """Test audit bucket priority and occurrence counting"""

    def test_bucket_priority(self):
        """Missing punch, shift, hours bands, late/early, other"""
        cases = [
            (audit_record(deviation='Missing In Punch', total_hours='05:00'), AuditBucket.MISSING),
            (audit_record(deviation='Very Early In (30m)'), AuditBucket.SHIFT),
            (audit_record(deviation='Undefined Shift: NS'), AuditBucket.SHIFT),
            (audit_record(total_hours='03:30', late_by='00:20'), AuditBucket.UNDER_4_HOURS),
            (audit_record(total_hours='05:00', late_by='00:20'), AuditBucket.FOUR_TO_SEVEN_HOURS),
            (audit_record(late_by='00:20'), AuditBucket.LATE_EARLY),
            (audit_record(early_by='00:15'), AuditBucket.LATE_EARLY),
            (audit_record(early_by=''), AuditBucket.OTHER),
        ]
        for record, expected in cases:
            self.assertIs(categorize_audit_record(record), expected)

    def test_occurrence_number(self):
        """Rank among the employee's late/early records of the month"""
        records = [
            audit_record(day='03-MAR-2025', late_by='00:10'),
            audit_record(day='05-MAR-2025', late_by='00:10'),
            audit_record(day='10-MAR-2025', early_by='00:30'),
            audit_record(day='02-APR-2025', late_by='00:10'),
            audit_record(employee='E2', day='04-MAR-2025', late_by='00:10'),
            audit_record(day='04-MAR-2025', deviation='Missing Out Punch'),
        ]
        self.assertEqual([occurrence_number(r, records) for r in records], [1, 2, 3, 1, 1, 0])

    def test_occurrence_same_day_ranked_by_position(self):
        """Two late/early records on one date get consecutive ranks"""
        records = [
            audit_record(day='03-MAR-2025', late_by='00:10'),
            audit_record(day='04-MAR-2025', late_by='00:20'),
            audit_record(day='04-MAR-2025', early_by='00:30'),
        ]
        self.assertEqual([occurrence_number(r, records) for r in records], [1, 2, 3])

    def test_occurrence_label_and_color(self):
        """1st green, 2nd amber, 3rd and later red"""
        self.assertEqual(occurrence_label(3), '3rd+')
        self.assertEqual(occurrence_color(1), 'D4EDDA')
        self.assertEqual(occurrence_color(2), 'FFF3CD')
        self.assertEqual(occurrence_color(5), 'F8D7DA')
        self.assertIsNone(occurrence_color(0))


class TestMonthlyAggregator(unittest.TestCase):
    """Test the monthly consolidation and its blank gate"""

    def setUp(self):
        self.employees = [Employee('E1', full_name='Asha', department='Ops', reporting_to='Meena'),
                          Employee('E2', full_name='Ravi')]
        self.attendance = [
            punch('09:00', '18:00', day='03-MAR-2025', status='Clean'),
            punch('10:00', '15:00', day='04-MAR-2025', status='Audit'),
            punch('09:00', '18:00', day='05-MAR-2025', status='Clean'),
        ]
        self.reconciliation = [
            recon('e1', '03-MAR-2025', 'P'),
            recon('E1', '04-MAR-2025', 'HD'),
            recon('E1', '05-MAR-2025', 'P', reconciled=False),
            recon('E1', SUNDAY, 'WO'),
            recon('E1', HOLIDAY, 'H'),
        ]
        self.shifts = [general_shift()]

    def build(self, **kwargs):
        aggregator = MonthlyAggregator(self.employees, self.attendance, self.reconciliation,
                                       self.shifts, **kwargs)
        return aggregator.build(2025, 3)

    def test_blank_gate(self):
        """Unreconciled days are blank even with punches"""
        e1 = self.build()[0]
        self.assertEqual(len(e1.days), 31)
        statuses = {day.date: day.status for day in e1.days}
        self.assertEqual(statuses['03-MAR-2025'], 'P')
        self.assertEqual(statuses['04-MAR-2025'], 'HD')
        self.assertEqual(statuses['05-MAR-2025'], '-')
        self.assertEqual(statuses['06-MAR-2025'], '-')
        self.assertTrue(e1.has_unreconciled_records)

    def test_summary_math(self):
        """Counts, working days, percentage, shortage and both hour totals"""
        summary = self.build()[0].summary
        self.assertEqual((summary.total_present, summary.total_half_day), (1, 1))
        self.assertEqual((summary.total_weekly_off, summary.total_holiday), (1, 1))
        self.assertEqual(summary.working_days, 29)
        self.assertEqual(summary.attendance_percentage, 5.17)
        self.assertEqual(summary.total_shortage_hours, 3.0)
        self.assertEqual(summary.total_work_hours_actual, 23.0)
        self.assertEqual(summary.total_work_hours_shift, 24.0)

    def test_employee_without_records(self):
        """No data means all blank and 0% attendance"""
        e2 = self.build()[1]
        self.assertTrue(all(day.status == '-' for day in e2.days))
        self.assertEqual(e2.summary.working_days, 31)
        self.assertEqual(e2.summary.attendance_percentage, 0.0)
        self.assertFalse(e2.has_unreconciled_records)

    def test_status_filter_blanks_other_days(self):
        """A filter is display only: non-matching days show blank"""
        aggregator = MonthlyAggregator(self.employees, self.attendance, self.reconciliation, self.shifts)
        e1 = aggregator.build(2025, 3, status_filter='Present')[0]
        statuses = {day.date: day.status for day in e1.days}
        self.assertEqual(statuses['03-MAR-2025'], 'P')
        self.assertEqual(statuses['04-MAR-2025'], '-')

    def test_finalized_clears_unreconciled_flag(self):
        """After finalize nothing is reported as pending"""
        self.assertFalse(self.build(is_finalized=True)[0].has_unreconciled_records)

    def test_zero_working_days(self):
        """Zero working days yields 0% instead of failing"""
        aggregator = MonthlyAggregator([], [], [])
        days = [DayAttendance(date='01-MAR-2025', status='WO'), DayAttendance(date='02-MAR-2025', status='H')]
        summary = aggregator.summarize(days, [])
        self.assertEqual(summary.working_days, 0)
        self.assertEqual(summary.attendance_percentage, 0.0)

    def test_hours_band(self):
        """Colour bands for work hours"""
        self.assertEqual([hours_band(h) for h in (0, 3.5, 5, 7, 12, 12.5)],
                         ['none', 'red', 'amber', 'green', 'green', 'purple'])


class TestExcessHoursClassifier(unittest.TestCase):
    """Test excess hours and their buckets"""

    def setUp(self):
        self.classifier = ExcessHoursClassifier([general_shift()], actor='payroll',
                                                clock=FixedClock(datetime(2025, 3, 31, 9, 0)))

    def excess(self, status, in_time, out_time, **fields):
        record = punch(in_time, out_time, status=status, **fields).copy(shift_start='09:00', shift_end='18:00')
        return self.classifier.excess_for(record)

    def test_present_overtime(self):
        """Present days count only time past shift end"""
        result = self.excess('P', '09:00', '20:30')
        self.assertEqual(result.excess_minutes, 150)
        self.assertEqual(result.excess_hours, 2.5)
        self.assertIs(result.bucket, ExcessBucket.PRESENT_2_TO_4)
        self.assertIsNone(self.excess('P', '09:00', '17:30'))

    def test_bucket_boundaries(self):
        """40 minutes is under an hour; exactly 60 is 1-2"""
        self.assertIs(self.excess('Clean', '09:00', '18:40').bucket, ExcessBucket.PRESENT_UNDER_1)
        self.assertIs(self.excess('P', '09:00', '19:00').bucket, ExcessBucket.PRESENT_1_TO_2)

    def test_worked_off_from_shift_start(self):
        """Worked-off days pay from shift start to out punch"""
        result = self.excess('WOH', '10:00', '15:00', day=SUNDAY)
        self.assertEqual(result.excess_hours, 6.0)
        self.assertEqual(result.final_payable_hours, 6.0)
        self.assertIs(result.bucket, ExcessBucket.WORKED_OFF_4_PLUS)

    def test_other_statuses_ignored(self):
        """Absent, off days and punchless records have no excess"""
        self.assertIsNone(self.excess('A', '09:00', '20:00'))
        self.assertIsNone(self.excess('WO', '09:00', '20:00'))
        self.assertIsNone(self.excess('P', '', ''))

    def test_shift_fallback(self):
        """Records without shift times use the configured shift"""
        result = self.classifier.excess_for(punch('09:00', '19:30', status='P'))
        self.assertEqual(result.excess_minutes, 90)

    def test_accept_all_bucket(self):
        """Accept all touches one bucket only"""
        attendance = [punch('09:00', '20:30', employee='E1', status='P'),
                      punch('09:00', '18:30', employee='E2', status='P')]
        self.classifier.classify(attendance)
        self.assertEqual(self.classifier.accept_all(ExcessBucket.PRESENT_2_TO_4, confirm=lambda m: False), 0)
        self.assertEqual(self.classifier.accept_all(ExcessBucket.PRESENT_2_TO_4), 1)

        buckets = self.classifier.by_bucket()
        accepted = buckets[ExcessBucket.PRESENT_2_TO_4][0]
        self.assertTrue(accepted.is_reconciled)
        self.assertEqual(accepted.reconciled_by, 'payroll')
        self.assertFalse(buckets[ExcessBucket.PRESENT_UNDER_1][0].is_reconciled)


class TestEmployees(unittest.TestCase):
    """Test employee master import and biometric consolidation"""

    def test_import_upsert(self):
        """New rows add, repeated numbers update, blanks keep old values"""
        directory = EmployeeDirectory()
        result = directory.import_rows([
            {'Employee Number': 'E001', 'Full Name': 'Asha', 'Department': 'Ops', 'OT': 'Yes'},
            {'Employee Number': 'E002', 'Full Name': 'Ravi'},
        ])
        self.assertEqual(result, {'added': 2, 'updated': 0})

        result = directory.import_rows([{'Employee Number': 'e001 ', 'Full Name': 'Asha K', 'Department': None}])
        self.assertEqual(result, {'added': 0, 'updated': 1})
        emp = directory.get('E001')
        self.assertEqual(emp.full_name, 'Asha K')
        self.assertEqual(emp.department, 'Ops')
        self.assertTrue(emp.ot_eligible)
        self.assertEqual(len(directory), 2)

    def test_new_employee_defaults(self):
        """Missing name defaults for new employees; clear empties the table"""
        directory = EmployeeDirectory()
        directory.import_rows([{'ID': 'X1'}])
        self.assertEqual(directory.get('x1').full_name, 'New Employee')
        directory.clear()
        self.assertEqual(len(directory), 0)

    def test_detect_column_mapping(self):
        """Column roles are guessed from header names"""
        mapping = detect_column_mapping(['Bio ID', 'Punch Date', 'In Time', 'Out Time'])
        self.assertEqual(mapping['biometric_id'], 'Bio ID')
        self.assertEqual(mapping['date'], 'Punch Date')
        self.assertEqual(mapping['in_time'], 'In Time')
        self.assertEqual(mapping['out_time'], 'Out Time')
        self.assertEqual(mapping['device'], '')

    def directory(self):
        return EmployeeDirectory([Employee('E1', full_name='Asha', biometric_number='101')])

    def test_consolidate_single_row(self):
        """In and out on one row; unknown biometric IDs are listed"""
        rows = [
            {'Bio ID': 101, 'Punch Date': datetime(2025, 3, 3), 'In Time': 0.375, 'Out Time': '18:05'},
            {'Bio ID': 999, 'Punch Date': '03-MAR-2025', 'In Time': '09:00', 'Out Time': '18:00'},
        ]
        records, summary = consolidate_punches(rows, self.directory())
        self.assertEqual(summary['format'], 'single-row')
        self.assertEqual((summary['matched'], summary['unmatched']), (1, 1))
        self.assertEqual(summary['unmatched_biometrics'], ['999'])
        self.assertEqual((records[0].employee_number, records[0].date), ('E1', MONDAY))
        self.assertEqual((records[0].in_time, records[0].out_time), ('09:00', '18:05'))
        self.assertEqual(records[0].employee_name, 'Asha')

    def test_consolidate_dual_row(self):
        """One row per punch with a direction column"""
        rows = [
            {'Bio ID': '101', 'Date': MONDAY, 'Time': '09:02', 'Direction': 'IN'},
            {'Bio ID': '101', 'Date': MONDAY, 'Time': '18:10', 'Direction': 'OUT'},
        ]
        mapping = {'biometric_id': 'Bio ID', 'date': 'Date', 'in_time': 'Time', 'out_time': '',
                   'direction': 'Direction', 'device': ''}
        records, summary = consolidate_punches(rows, self.directory(), mapping)
        self.assertEqual(summary['format'], 'dual-row')
        self.assertEqual(len(records), 1)
        self.assertEqual((records[0].in_time, records[0].out_time), ('09:02', '18:10'))

    def test_consolidate_requires_id_and_date(self):
        """Biometric ID and date columns are mandatory"""
        with self.assertRaises(MappingError):
            consolidate_punches([{'Name': 'x'}], self.directory(),
                                {'biometric_id': 'Bio ID', 'date': ''})

    def test_shift_from_row(self):
        """Shift matrix rows accept either header style"""
        shift = shift_from_row({'ID': 'GEN', 'Label': 'General', 'Start Time': '09:30',
                                'End Time': time(18, 30), 'Late In': 10, 'Early Out': 5})
        self.assertEqual(shift.id, 'GEN')
        self.assertEqual(shift.start_time, '09:30')
        self.assertEqual(shift.end_time, '18:30')
        self.assertEqual(shift.late_threshold, 10)
        self.assertEqual(shift.early_threshold, 5)
        self.assertEqual(shift.allowed_late_count, 2)

        night = shift_from_row({'id': 'N', 'startTime': '22:00', 'endTime': '06:00', 'allowedLateCount': 4})
        self.assertEqual(night.label, 'N')
        self.assertEqual(night.allowed_late_count, 4)


class TestSpreadsheets(unittest.TestCase):
    """Test workbook import and export"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def path(self, name):
        return os.path.join(self.tmp.name, name)

    def test_export_filenames(self):
        """File names carry the view and the date"""
        self.assertEqual(export_filename('Reconciled Attendance', date(2025, 3, 31)),
                         'Reconciled_Attendance_2025-03-31.xlsx')
        self.assertEqual(monthly_filename(2025, 3), 'Monthly_Attendance_March_2025.xlsx')

    def test_read_rows_blank_cells(self):
        """Rows come back as dicts with blanks as None"""
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(['Employee Number', 'Department'])
        ws.append(['E1', 'Ops'])
        ws.append(['E2', None])
        wb.save(self.path('employees.xlsx'))

        rows = read_rows(self.path('employees.xlsx'))
        self.assertEqual(rows, [{'Employee Number': 'E1', 'Department': 'Ops'},
                                {'Employee Number': 'E2', 'Department': None}])

    def test_read_rows_bad_file(self):
        """Unreadable files raise ImportFormatError"""
        with open(self.path('broken.xlsx'), 'w') as f:
            f.write('not a workbook')
        with self.assertRaises(ImportFormatError):
            read_rows(self.path('broken.xlsx'))
        with self.assertRaises(ImportFormatError):
            read_rows(self.path('missing.xlsx'))

    def test_queue_export_columns(self):
        """Only the absent queue carries the Excel Status column"""
        ledger = ReconciliationLedger()
        ledger.initialize(attendance_set())

        write_queue(self.path('absent.xlsx'), Category.ABSENT, ledger.records(Category.ABSENT))
        write_queue(self.path('present.xlsx'), Category.PRESENT, ledger.records(Category.PRESENT))

        absent = openpyxl.load_workbook(self.path('absent.xlsx')).active
        present = openpyxl.load_workbook(self.path('present.xlsx')).active
        self.assertIn('Excel Status', [cell.value for cell in absent[1]])
        self.assertNotIn('Excel Status', [cell.value for cell in present[1]])
        self.assertEqual(absent.freeze_panes, 'A2')
        self.assertEqual(present.max_row, 3)

    def test_audit_export_occurrence_fill(self):
        """Late/early export colours rows by occurrence"""
        records = [audit_record(day=day, late_by='00:10')
                   for day in ('05-MAR-2025', '03-MAR-2025', '04-MAR-2025')]
        write_audit_bucket(self.path('audit.xlsx'), AuditBucket.LATE_EARLY, records)

        ws = openpyxl.load_workbook(self.path('audit.xlsx')).active
        headers = [cell.value for cell in ws[1]]
        column = headers.index('Occurrence') + 1
        self.assertEqual([ws.cell(row=r, column=column).value for r in (2, 3, 4)], [1, 2, 3])
        self.assertTrue(ws.cell(row=4, column=1).fill.start_color.rgb.endswith('F8D7DA'))

    def test_monthly_workbook_sheets(self):
        """Monthly export has a calendar and a summary sheet"""
        data = MonthlyAggregator([Employee('E1', full_name='Asha')],
                                 [punch('09:00', '18:00')], [recon('E1', MONDAY, 'P')]).build(2025, 3)
        write_monthly(self.path('monthly.xlsx'), data, 2025, 3)

        wb = openpyxl.load_workbook(self.path('monthly.xlsx'))
        self.assertEqual(wb.sheetnames, ['Calendar View', 'Summary'])
        calendar_view = wb['Calendar View']
        self.assertEqual(calendar_view.cell(row=1, column=5).value, '01')
        self.assertEqual(calendar_view.cell(row=2, column=7).value, 'P')


if __name__ == '__main__':
    unittest.main(verbosity=2)
