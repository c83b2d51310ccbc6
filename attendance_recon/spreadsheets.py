"""
Spreadsheet import and export.

Input tables (employee master, biometric dumps, overlay files) are read
with pandas into plain key/value rows. Exports are openpyxl workbooks
with a styled header row and frozen panes.
"""
import calendar
import logging
import os
import zipfile
from datetime import date

import openpyxl
import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .audit import AuditBucket, categorize_audit_record, occurrence_color, occurrence_number
from .excess_hours import BUCKET_LABELS
from .exceptions import ImportFormatError
from .statuses import Category
from .timeutils import (calculate_duration, is_missing_time, minutes_to_decimal_hours,
                        parse_date, punch_duration, time_to_minutes)

logger = logging.getLogger(__name__)

HEADER_COLOR = "366092"

QUEUE_HEADERS = [
    ("Employee Number", 14), ("Employee Name", 25), ("Department", 20), ("Sub Department", 20),
    ("Location", 15), ("Cost Center", 12), ("Legal Entity", 15), ("Reporting Manager", 25),
    ("Date", 13), ("Shift", 8), ("Shift Start", 10), ("Shift End", 10), ("In Time", 10),
    ("Out Time", 10), ("Work Hours", 11), ("Original Status", 15),
]

RECONCILED_HEADERS = [
    ("Employee Number", 14), ("Employee Name", 25), ("Department", 20), ("Sub Department", 20),
    ("Location", 15), ("Cost Center", 12), ("Legal Entity", 15), ("Reporting Manager", 25),
    ("Date", 13), ("Shift", 8), ("Shift Start", 10), ("Shift End", 10), ("In Time", 10),
    ("Out Time", 10), ("Total Hours", 12), ("Work Hours (Actual)", 18), ("Work Hours (Shift)", 18),
    ("Final Status", 12), ("Deviation", 30), ("Late By", 10), ("Early By", 10), ("Comments", 30),
    ("Reconciled By", 20), ("Reconciled On", 20),
]


def read_rows(filepath, sheet_name=0):
    """Read an .xlsx/.xls/.csv table into a list of dicts; blank cells become None."""
    extension = os.path.splitext(filepath)[1].lower()
    try:
        if extension == '.csv':
            df = pd.read_csv(filepath)
        else:
            df = pd.read_excel(filepath, sheet_name=sheet_name, engine="openpyxl")
    except (OSError, ValueError, KeyError, zipfile.BadZipFile) as e:
        raise ImportFormatError(f"Could not read {filepath}: {e}", {'file': str(filepath)}) from e

    df.columns = [str(column).strip() for column in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    rows = df.to_dict(orient="records")
    logger.info("Read %d rows from %s", len(rows), filepath)
    return rows


def export_filename(view, today=None, extension='xlsx'):
    """'Reconciled_Attendance' -> 'Reconciled_Attendance_2025-03-31.xlsx'"""
    today = today or date.today()
    view = str(view).strip().replace(' ', '_')
    return f"{view}_{today.isoformat()}.{extension}"


def monthly_filename(year, month):
    return f"Monthly_Attendance_{calendar.month_name[month]}_{year}.xlsx"


def _styles():
    thin = Side(style='thin')
    return {
        'header_font': Font(bold=True, color="FFFFFF"),
        'header_fill': PatternFill(start_color=HEADER_COLOR, end_color=HEADER_COLOR, fill_type="solid"),
        'header_alignment': Alignment(horizontal="center", vertical="center", wrap_text=True),
        'data_alignment': Alignment(horizontal="left", vertical="center"),
        'center_alignment': Alignment(horizontal="center", vertical="center"),
        'border': Border(left=thin, right=thin, top=thin, bottom=thin),
    }


def _fill(color):
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


def _write_sheet(ws, headers, rows, row_fills=None, number_columns=()):
    """
    Write a header row plus data rows.
    headers is a list of (title, width); row_fills maps a 0-based data row index to a fill colour.
    """
    styles = _styles()
    row_fills = row_fills or {}

    for col, (title, width) in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col)
        cell.value = title
        cell.font = styles['header_font']
        cell.fill = styles['header_fill']
        cell.alignment = styles['header_alignment']
        cell.border = styles['border']
        ws.column_dimensions[get_column_letter(col)].width = width

    for index, values in enumerate(rows):
        row = index + 2
        fill = _fill(row_fills[index]) if row_fills.get(index) else None
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col)
            cell.value = value
            cell.border = styles['border']
            if col in number_columns:
                cell.alignment = styles['center_alignment']
                cell.number_format = '0.00'
            else:
                cell.alignment = styles['data_alignment']
            if fill is not None:
                cell.fill = fill

    ws.freeze_panes = 'A2'


def _save(wb, output_filepath):
    wb.save(output_filepath)
    logger.info("Workbook written: %s", output_filepath)
    return output_filepath


def _org_columns(record):
    return [
        record.employee_number, record.employee_name, record.department, record.sub_department,
        record.location, record.cost_center, record.legal_entity, record.reporting_manager,
        record.date, record.shift, record.shift_start, record.shift_end,
        record.in_time, record.out_time,
    ]


def write_queue(output_filepath, category, records):
    """One review queue; the Excel Status column is only shown for the absent queue."""
    headers = list(QUEUE_HEADERS)
    if category is Category.ABSENT:
        headers.append(("Excel Status", 13))
    headers += [("Final Status", 12), ("Comments", 30), ("Reconciled", 10),
                ("Reconciled By", 20), ("Reconciled On", 20)]

    rows = []
    for record in records:
        values = _org_columns(record) + [record.total_hours, record.original_status]
        if category is Category.ABSENT:
            values.append(record.excel_status or '-')
        values += [record.final_status, record.comments,
                   'Yes' if record.is_reconciled else 'No',
                   record.reconciled_by or '-', record.reconciled_on or '-']
        rows.append(values)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = category.value.upper()
    _write_sheet(ws, headers, rows)
    return _save(wb, output_filepath)


def _sort_key(record):
    return record.employee_number, parse_date(record.date) or date.min


def write_reconciled(output_filepath, records):
    """Reconciled records only, by employee then date, with both work-hour conventions."""
    rows = []
    for record in sorted((r for r in records if r.is_reconciled), key=_sort_key):
        actual = minutes_to_decimal_hours(punch_duration(record.in_time, record.out_time))
        shift_based = 0.0
        if not is_missing_time(record.out_time) and not is_missing_time(record.shift_start):
            shift_based = minutes_to_decimal_hours(
                calculate_duration(time_to_minutes(record.shift_start), time_to_minutes(record.out_time)))
        rows.append(_org_columns(record) + [
            record.total_hours, actual, shift_based, record.final_status, record.deviation,
            record.late_by, record.early_by, record.comments,
            record.reconciled_by or '-', record.reconciled_on or '-',
        ])

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Reconciled Records"
    _write_sheet(ws, RECONCILED_HEADERS, rows, number_columns=(16, 17))
    return _save(wb, output_filepath)


def write_audit_bucket(output_filepath, bucket, records):
    """
    Audit records of one bucket. The late/early bucket is sorted by employee
    then date and carries an Occurrence column with green/amber/red rows.
    """
    selected = [record for record in records if categorize_audit_record(record) is bucket]
    headers = list(QUEUE_HEADERS) + [("Deviation", 30), ("Late By", 10), ("Early By", 10)]
    is_late_early = bucket is AuditBucket.LATE_EARLY
    if is_late_early:
        selected.sort(key=_sort_key)
        headers.append(("Occurrence", 12))
    headers += [("Final Status", 12), ("Comments", 30)]

    rows = []
    fills = {}
    for index, record in enumerate(selected):
        values = _org_columns(record) + [record.total_hours, record.original_status,
                                         record.deviation, record.late_by, record.early_by]
        if is_late_early:
            number = occurrence_number(record, records)
            values.append(number)
            fills[index] = occurrence_color(number)
        values += [record.final_status, record.comments]
        rows.append(values)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = bucket.label[:31]
    _write_sheet(ws, headers, rows, row_fills=fills)
    return _save(wb, output_filepath)


def write_monthly(output_filepath, monthly_data, year, month):
    """Calendar View (one column per day) and Summary sheets."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Calendar View"

    days_count = len(monthly_data[0].days) if monthly_data else calendar.monthrange(year, month)[1]
    headers = [("Employee Number", 14), ("Employee Name", 25), ("Department", 20),
               ("Reporting Manager", 25)]
    headers += [(f"{day:02d}", 6) for day in range(1, days_count + 1)]
    rows = []
    for emp in monthly_data:
        rows.append([emp.employee_number, emp.employee_name, emp.department, emp.reporting_manager]
                    + [day.status for day in emp.days])
    _write_sheet(ws, headers, rows)

    summary = wb.create_sheet("Summary")
    summary_headers = [
        ("Employee Number", 14), ("Employee Name", 25), ("Department", 20), ("Present", 9),
        ("Half Day", 9), ("Absent", 9), ("Weekly Off", 10), ("Worked Off", 10), ("Holiday", 9),
        ("Working Days", 12), ("Attendance %", 13), ("Shortage Hours", 14),
        ("Work Hours (Actual)", 18), ("Work Hours (Shift)", 18),
    ]
    summary_rows = []
    for emp in monthly_data:
        s = emp.summary
        summary_rows.append([
            emp.employee_number, emp.employee_name, emp.department,
            s.total_present, s.total_half_day, s.total_absent, s.total_weekly_off,
            s.total_worked_off, s.total_holiday, s.working_days, s.attendance_percentage,
            s.total_shortage_hours, s.total_work_hours_actual, s.total_work_hours_shift,
        ])
    _write_sheet(summary, summary_headers, summary_rows, number_columns=(11, 12, 13, 14))
    return _save(wb, output_filepath)


def write_excess(output_filepath, bucket, records):
    """Excess-hours records of one bucket."""
    anchor = ("Shift Start", 10) if bucket.is_worked_off else ("Shift End", 10)
    headers = [("Employee Number", 14), ("Employee Name", 25), ("Department", 20), ("Date", 13),
               ("Status", 10), ("In Time", 10), ("Out Time", 10), anchor,
               ("Excess Hours", 12), ("Final Payable Hours", 18), ("Reconciled", 10)]
    rows = []
    for excess in records:
        if excess.bucket is not bucket:
            continue
        att = excess.record
        rows.append([
            att.employee_number, att.employee_name, att.department, att.date, att.status,
            att.in_time, att.out_time, att.shift_start if bucket.is_worked_off else att.shift_end,
            excess.excess_hours, excess.final_payable_hours,
            'Yes' if excess.is_reconciled else 'No',
        ])

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = BUCKET_LABELS[bucket][:31]
    _write_sheet(ws, headers, rows, number_columns=(9, 10))
    return _save(wb, output_filepath)
