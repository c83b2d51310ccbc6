import logging
import os
import sys
from datetime import date

from .calendar_rules import CalendarClassifier
from .classifier import AttendanceClassifier
from .config import LOG_FORMAT, LOG_LEVEL_ENV
from .employees import EmployeeDirectory, consolidate_punches
from .exceptions import FinalizeBlockedError, ReconciliationError
from .excess_hours import ExcessHoursClassifier
from .ledger import ReconciliationLedger
from .models import AttendanceRecord, Holiday, Shift, shift_from_row
from .monthly import MonthlyAggregator
from .resolver import resolve
from .spreadsheets import (export_filename, monthly_filename, read_rows, write_excess,
                           write_monthly, write_queue, write_reconciled)
from .statuses import Category
from .timeutils import format_date, parse_date, time_to_minutes

USAGE = """\
Usage:
  attendance-recon EMPLOYEES BIOMETRIC [OUTPUT_DIR] [--weekly-off 0,6] [--holidays FILE] [--shifts FILE]
  attendance-recon --resolve IN OUT [--date DD-MMM-YYYY] [--shift-start HH:MM] [--weekly-off 0]

Examples:
  attendance-recon employees.xlsx punches.xlsx out --weekly-off 0
  attendance-recon --resolve 09:10 18:30 --shift-start 09:00"""


def configure_logging():
    level = os.environ.get(LOG_LEVEL_ENV, 'INFO').upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)


def ask(message):
    """Interactive confirmation for bulk actions."""
    answer = input(f"{message} [y/N] ")
    return answer.strip().lower() in ('y', 'yes')


def split_options(argv):
    """Separate positional arguments from --name value pairs."""
    positional = []
    options = {}
    i = 0
    while i < len(argv):
        if argv[i].startswith('--'):
            name = argv[i][2:]
            if i + 1 < len(argv) and not argv[i + 1].startswith('--'):
                options[name] = argv[i + 1]
                i += 2
            else:
                options[name] = ''
                i += 1
        else:
            positional.append(argv[i])
            i += 1
    return positional, options


def parse_weekly_offs(text):
    if not text:
        return ()
    return tuple(int(part) for part in text.split(',') if part.strip())


def load_holidays(filepath):
    holidays = []
    for row in read_rows(filepath):
        day = row.get('Date')
        if day is None:
            continue
        holidays.append(Holiday(date=format_date(day), label=str(row.get('Holiday') or row.get('Label') or '')))
    return holidays


def print_resolution(in_time, out_time, options):
    day = options.get('date') or format_date(date.today())
    calendar = CalendarClassifier(weekly_offs=parse_weekly_offs(options.get('weekly-off')))
    shift_start = time_to_minutes(options.get('shift-start') or '09:00')
    punch = AttendanceRecord(employee_number='-', date=day, in_time=in_time, out_time=out_time)
    result = resolve(punch, calendar.classify(day), shift_start)

    print("=" * 60)
    print(f"Date:          {day}")
    print(f"In / Out:      {in_time} / {out_time}")
    print(f"Shift start:   {options.get('shift-start') or '09:00'}")
    print("-" * 60)
    print(f"Status:        {result.code} ({result.status.label})")
    print(f"Hours worked:  {result.hours_worked:.2f}")
    print(f"Late:          {'yes' if result.is_late else 'no'} ({result.late_minutes} mins)")
    print(f"Early:         {'yes' if result.is_early else 'no'} ({result.early_minutes} mins)")
    print("=" * 60)


def process(employees_file, biometric_file, output_dir, options):
    """Employee master + biometric dump -> review queues, smart reconcile and exports."""
    print("Reading employee master...")
    directory = EmployeeDirectory()
    counts = directory.import_rows(read_rows(employees_file))
    print(f"Employees: {counts['added']} added, {counts['updated']} updated")

    print("Consolidating biometric punches...")
    records, summary = consolidate_punches(read_rows(biometric_file), directory)
    print(f"Format: {summary['format']}, matched {summary['matched']} of {summary['total']} rows")
    if summary['unmatched_biometrics']:
        print(f"Unmatched biometric IDs: {', '.join(summary['unmatched_biometrics'])}")

    holidays = load_holidays(options['holidays']) if options.get('holidays') else []
    calendar = CalendarClassifier(weekly_offs=parse_weekly_offs(options.get('weekly-off', '0')),
                                  holidays=holidays)
    shifts = [Shift.from_config()]
    if options.get('shifts'):
        shifts = [shift_from_row(row) for row in read_rows(options['shifts'])] or shifts

    print("Classifying attendance...")
    classified = AttendanceClassifier(directory, shifts, calendar).classify(records)

    ledger = ReconciliationLedger()
    ledger.initialize(classified)
    accepted = ledger.smart_reconcile(confirm=ask)
    print(f"Smart reconcile accepted {accepted} records")

    os.makedirs(output_dir, exist_ok=True)
    for category in Category:
        queue = ledger.records(category)
        if queue:
            write_queue(os.path.join(output_dir, export_filename(f"Reconciliation_{category.value.upper()}")),
                        category, queue)

    excess = ExcessHoursClassifier(shifts)
    excess_records = excess.classify(ledger.apply_final_statuses(classified))
    for bucket, items in excess.by_bucket().items():
        if items:
            write_excess(os.path.join(output_dir, export_filename(f"Excess_Hours_{bucket.value}")),
                         bucket, excess_records)

    for status in ledger.module_statuses().values():
        print(f"  {status.name:<14} {status.reconciled:>5}/{status.total:<5} reconciled")

    if finalize(ledger):
        write_reconciled(os.path.join(output_dir, export_filename("Reconciled_Attendance")),
                         ledger.finalized_records())
        months = sorted({(day.year, day.month) for day in map(parse_date, (r.date for r in classified)) if day})
        aggregator = MonthlyAggregator(directory, classified, ledger.finalized_records(), shifts,
                                       is_finalized=ledger.is_finalized)
        for year, month in months:
            write_monthly(os.path.join(output_dir, monthly_filename(year, month)),
                          aggregator.build(year, month), year, month)
    else:
        print("Reconciliation not finalized; skipping reconciled attendance and monthly reports.")
    print("Done!")


def finalize(ledger, confirm=ask):
    """Offer to complete each open module, then finalize. Returns True once finalized."""
    for category, status in ledger.module_statuses().items():
        if not status.is_complete:
            ledger.mark_complete(category, confirm=confirm)
    try:
        ledger.finalize(confirm=confirm)
    except FinalizeBlockedError as e:
        print(e.message)
    return ledger.is_finalized


def main(argv=None):
    configure_logging()
    argv = sys.argv[1:] if argv is None else argv
    positional, options = split_options(argv)

    try:
        if 'resolve' in options:
            # --resolve takes the in time as its value and the out time positionally
            if not options['resolve'] or not positional:
                print(USAGE)
                return 1
            print_resolution(options['resolve'], positional[0], options)
            return 0

        if len(positional) < 2:
            print(USAGE)
            return 1
        output_dir = positional[2] if len(positional) > 2 else 'output'
        process(positional[0], positional[1], output_dir, options)
        return 0
    except ReconciliationError as e:
        print(f"Error: {e}")
        return 2


if __name__ == '__main__':
    sys.exit(main())
