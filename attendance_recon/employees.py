import logging
import re

from .exceptions import MappingError
from .models import AttendanceRecord, Employee, employee_key
from .timeutils import format_date, format_time

logger = logging.getLogger(__name__)

# Column name -> Employee field, first non-blank alias wins
EMPLOYEE_COLUMNS = {
    'full_name': ('Full Name', 'Name'),
    'email': ('Email',),
    'date_of_joining': ('Date of Joining', 'DOJ'),
    'job_title': ('Job Title',),
    'business_unit': ('Business Unit',),
    'department': ('Department',),
    'sub_department': ('Sub Department',),
    'location': ('Location',),
    'cost_center': ('Cost Center',),
    'legal_entity': ('Legal Entity',),
    'band': ('Band',),
    'reporting_to': ('Reporting To',),
    'dotted_line_manager': ('Dotted Line Manager',),
    'active_status': ('Active Status',),
    'resignation_date': ('Resignation Date',),
    'left_date': ('Left Date',),
    'contract_id': ('Contract ID',),
    'status': ('Status',),
    'biometric_number': ('Biometric Number',),
}

BOOLEAN_COLUMNS = {
    'exclude_from_workhours': ('WH Excl', 'Exclude From Workhours'),
    'ot_eligible': ('OT', 'OT Eligible'),
    'comp_off_eligible': ('CompOff', 'Comp Off Eligible'),
    'late_exemption': ('Late Exm', 'Late Exemption'),
    'shift_deviation_allowed': ('Dev Allow', 'Shift Deviation'),
}

DATE_FIELDS = ('date_of_joining', 'resignation_date', 'left_date')

ID_COLUMNS = ('Employee Number', 'ID', 'Staff ID')

NEW_EMPLOYEE_DEFAULTS = {
    'full_name': 'New Employee',
    'active_status': 'Active',
    'status': 'Permanent',
}


def _first(row, aliases):
    for alias in aliases:
        value = row.get(alias)
        if value is not None and str(value).strip() != '':
            return value
    return None


def parse_bool(value):
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('yes', 'y', 'true', '1')


class EmployeeDirectory:
    """Employee master keyed by the case-folded, trimmed employee number."""

    def __init__(self, employees=()):
        self._employees = {}
        for emp in employees:
            self._employees[emp.key] = emp

    def __len__(self):
        return len(self._employees)

    def __iter__(self):
        return iter(list(self._employees.values()))

    def __contains__(self, employee_number):
        return employee_key(employee_number) in self._employees

    def get(self, employee_number):
        return self._employees.get(employee_key(employee_number))

    def by_biometric(self):
        mapping = {}
        for emp in self._employees.values():
            if emp.biometric_number:
                mapping[str(emp.biometric_number).strip().upper()] = emp
        return mapping

    def clear(self):
        self._employees = {}

    def import_rows(self, rows):
        """
        Upsert employees from generic key/value rows.
        On update, blank cells keep the value already on file.
        Returns {'added': n, 'updated': m}.
        """
        merged = dict(self._employees)
        added = 0
        updated = 0

        for row in rows:
            raw_id = str(_first(row, ID_COLUMNS) or '').strip()
            if not raw_id:
                continue
            key = employee_key(raw_id)
            existing = merged.get(key)
            if existing is None:
                added += 1
            else:
                updated += 1

            values = {}
            for field_name, aliases in EMPLOYEE_COLUMNS.items():
                value = _first(row, aliases)
                if value is None:
                    if existing is not None:
                        values[field_name] = getattr(existing, field_name)
                    else:
                        values[field_name] = NEW_EMPLOYEE_DEFAULTS.get(field_name, '')
                elif field_name in DATE_FIELDS:
                    values[field_name] = format_date(value)
                else:
                    values[field_name] = str(value).strip()

            for field_name, aliases in BOOLEAN_COLUMNS.items():
                value = _first(row, aliases)
                if value is None:
                    values[field_name] = getattr(existing, field_name) if existing else False
                else:
                    values[field_name] = parse_bool(value)

            number = existing.employee_number if existing is not None else raw_id
            merged[key] = Employee(employee_number=number, **values)

        self._employees = merged
        logger.info("Employee import: %d added, %d updated", added, updated)
        return {'added': added, 'updated': updated}


# Auto-detection patterns for biometric export columns
COLUMN_PATTERNS = {
    'biometric_id': r'bio.*id|bio.*num|employee.*id|emp.*id|staff.*id|id|badge',
    'name': r'name|employee.*name',
    'date': r'date|attendance.*date|punch.*date',
    'in_time': r'in.*time|check.*in|first.*punch|entry.*time|time.*in',
    'out_time': r'out.*time|check.*out|last.*punch|exit.*time|time.*out',
    'device': r'device|terminal|machine|location',
    'direction': r'direction|type|status|in.*out',
}


def detect_column_mapping(columns):
    """Guess which column holds what; unmatched roles map to ''."""
    mapping = {}
    for role, pattern in COLUMN_PATTERNS.items():
        regex = re.compile(pattern, re.IGNORECASE)
        mapping[role] = next((column for column in columns if regex.search(str(column))), '')
    return mapping


def _direction(value):
    text = str(value or '').strip().lower()
    if 'in' in text or 'entry' in text or text == 'i':
        return 'in'
    if 'out' in text or 'exit' in text or text == 'o':
        return 'out'
    return ''


def _record_for(emp, date, in_time, out_time, device):
    return AttendanceRecord(
        employee_number=emp.employee_number,
        date=date,
        in_time=in_time,
        out_time=out_time,
        employee_name=emp.full_name,
        job_title=emp.job_title,
        business_unit=emp.business_unit,
        department=emp.department,
        sub_department=emp.sub_department,
        location=emp.location,
        cost_center=emp.cost_center,
        reporting_manager=emp.reporting_to,
        legal_entity=emp.legal_entity,
        device=device,
    )


def consolidate_punches(rows, directory, mapping=None):
    """
    Turn raw biometric rows into AttendanceRecords keyed to the employee master.

    Two layouts are understood: single-row (in and out columns on one row)
    and dual-row (one row per punch with a direction column). Biometric IDs
    missing from the master are collected, not raised.
    """
    rows = list(rows)
    if mapping is None:
        mapping = detect_column_mapping(list(rows[0].keys()) if rows else [])
    if not mapping.get('biometric_id') or not mapping.get('date'):
        raise MappingError("Please map at least Biometric ID and Date columns.",
                           {'mapping': mapping})

    bio_map = directory.by_biometric()
    has_in = bool(mapping.get('in_time')) and any(row.get(mapping['in_time']) for row in rows)
    has_out = bool(mapping.get('out_time')) and any(row.get(mapping['out_time']) for row in rows)
    has_direction = bool(mapping.get('direction')) and any(row.get(mapping['direction']) for row in rows)

    if has_direction:
        layout = 'dual-row'
    elif has_in and has_out:
        layout = 'single-row'
    else:
        layout = 'unknown'

    records = []
    unmatched = []
    matched = 0

    def note_unmatched(bio_id):
        if bio_id not in unmatched:
            unmatched.append(bio_id)

    if layout == 'single-row':
        for row in rows:
            bio_id = str(row.get(mapping['biometric_id']) or '').strip()
            if not bio_id:
                continue
            emp = bio_map.get(bio_id.upper())
            if emp is None:
                note_unmatched(bio_id)
                continue
            matched += 1
            records.append(_record_for(
                emp,
                format_date(row.get(mapping['date'])),
                format_time(row.get(mapping['in_time'])),
                format_time(row.get(mapping['out_time'])),
                str(row.get(mapping.get('device')) or '') if mapping.get('device') else '',
            ))
    elif layout == 'dual-row':
        punches = {}
        time_column = mapping.get('in_time') or mapping.get('out_time')
        for row in rows:
            bio_id = str(row.get(mapping['biometric_id']) or '').strip()
            if not bio_id:
                continue
            day = format_date(row.get(mapping['date']))
            punch_time = format_time(row.get(time_column)) if time_column else ''
            device = str(row.get(mapping.get('device')) or '') if mapping.get('device') else ''
            entry = punches.setdefault((bio_id, day), {'in': '', 'out': '', 'device': ''})

            direction = _direction(row.get(mapping['direction']))
            if direction == 'in':
                entry['in'] = punch_time
                entry['device'] = device
            elif direction == 'out':
                entry['out'] = punch_time
                entry['device'] = entry['device'] or device
            elif not entry['in']:
                entry['in'] = punch_time
                entry['device'] = device
            elif not entry['out']:
                entry['out'] = punch_time

        for (bio_id, day), entry in punches.items():
            emp = bio_map.get(bio_id.upper())
            if emp is None:
                note_unmatched(bio_id)
                continue
            matched += 1
            records.append(_record_for(emp, day, entry['in'], entry['out'], entry['device']))

    if unmatched:
        logger.warning("%d biometric IDs not found in employee master: %s",
                       len(unmatched), ', '.join(unmatched))
    summary = {
        'total': len(rows),
        'matched': matched,
        'unmatched': len(unmatched),
        'unmatched_biometrics': unmatched,
        'format': layout,
    }
    logger.info("Biometric consolidation (%s): %d matched, %d unmatched", layout, matched, len(unmatched))
    return records, summary
