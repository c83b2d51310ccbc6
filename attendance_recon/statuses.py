"""
Closed status vocabulary.

Raw attendance files, the classifier and reviewers all spell statuses
differently ('P', 'Present', 'Clean'; 'WOH', 'Worked Off'; ...). Every
spelling is mapped here, once, onto ``AttendanceStatus`` and from there
onto exactly one reconciliation ``Category``. Statuses nobody recognises
land in ``Category.UNCLASSIFIED`` instead of vanishing.
"""
from enum import Enum
from itertools import permutations


class AttendanceStatus(Enum):
    PRESENT = 'P'
    ABSENT = 'A'
    HALF_DAY = 'HD'
    WORKED_OFF = 'WOH'
    WEEKLY_OFF = 'WO'
    HOLIDAY = 'H'
    AUDIT = 'Audit'
    ERROR = 'Error'
    BLANK = '-'

    @property
    def code(self):
        return self.value

    @property
    def label(self):
        return STATUS_LABELS[self]


STATUS_LABELS = {
    AttendanceStatus.PRESENT: 'Present',
    AttendanceStatus.ABSENT: 'Absent',
    AttendanceStatus.HALF_DAY: 'Half Day',
    AttendanceStatus.WORKED_OFF: 'Worked Off',
    AttendanceStatus.WEEKLY_OFF: 'Weekly Off',
    AttendanceStatus.HOLIDAY: 'Holiday',
    AttendanceStatus.AUDIT: 'Audit',
    AttendanceStatus.ERROR: 'Error',
    AttendanceStatus.BLANK: '',
}

# Every accepted spelling, upper-cased
_ALIASES = {
    'P': AttendanceStatus.PRESENT,
    'PRESENT': AttendanceStatus.PRESENT,
    'CLEAN': AttendanceStatus.PRESENT,
    'A': AttendanceStatus.ABSENT,
    'ABSENT': AttendanceStatus.ABSENT,
    'HD': AttendanceStatus.HALF_DAY,
    'HALF DAY': AttendanceStatus.HALF_DAY,
    'HALFDAY': AttendanceStatus.HALF_DAY,
    'WOH': AttendanceStatus.WORKED_OFF,
    'WORKED OFF': AttendanceStatus.WORKED_OFF,
    'WORKEDOFF': AttendanceStatus.WORKED_OFF,
    'WO': AttendanceStatus.WEEKLY_OFF,
    'WEEKLY OFF': AttendanceStatus.WEEKLY_OFF,
    'WEEKLYOFF': AttendanceStatus.WEEKLY_OFF,
    'H': AttendanceStatus.HOLIDAY,
    'HOLIDAY': AttendanceStatus.HOLIDAY,
    'AUDIT': AttendanceStatus.AUDIT,
    'VERY LATE': AttendanceStatus.AUDIT,
    '-': AttendanceStatus.BLANK,
    '': AttendanceStatus.BLANK,
}


class Category(Enum):
    ABSENT = 'absent'
    PRESENT = 'present'
    WORKED_OFF = 'workedoff'
    OFF_DAYS = 'offdays'
    ERRORS = 'errors'
    AUDIT = 'audit'
    UNCLASSIFIED = 'unclassified'

    @property
    def label(self):
        return CATEGORY_LABELS[self]


CATEGORY_LABELS = {
    Category.ABSENT: 'Absent',
    Category.PRESENT: 'Present',
    Category.WORKED_OFF: 'Worked Off',
    Category.OFF_DAYS: 'Off Days',
    Category.ERRORS: 'Errors',
    Category.AUDIT: 'Audit Queue',
    Category.UNCLASSIFIED: 'Unclassified',
}

# The six review modules, in display order
REVIEW_CATEGORIES = (
    Category.ABSENT,
    Category.PRESENT,
    Category.WORKED_OFF,
    Category.OFF_DAYS,
    Category.ERRORS,
    Category.AUDIT,
)

# Smart reconcile only ever looks at these queues
SMART_RECONCILE_CATEGORIES = (Category.PRESENT, Category.OFF_DAYS, Category.WORKED_OFF)

CLEAN_STATUSES = frozenset({
    AttendanceStatus.PRESENT,
    AttendanceStatus.WEEKLY_OFF,
    AttendanceStatus.HOLIDAY,
    AttendanceStatus.WORKED_OFF,
})

FULL_DAY_CODES = ('P', 'A', 'CL', 'PL', 'ML', 'MEL', 'CO', 'LOP', 'WO', 'H')

# Codes that may be split across the two halves of a day
HALF_DAY_CODES = ('P', 'A', 'CL', 'PL', 'ML', 'CO', 'LOP')

HALF_DAY_COMBINATIONS = tuple(f"{first}/{second}" for first, second in permutations(HALF_DAY_CODES, 2))

# Closed set a reviewer may pick as a final status
STATUS_OPTIONS = FULL_DAY_CODES + HALF_DAY_COMBINATIONS


def parse_status(raw):
    """Map any known status spelling to AttendanceStatus; None when unknown."""
    if raw is None:
        return AttendanceStatus.BLANK
    if isinstance(raw, AttendanceStatus):
        return raw
    text = str(raw).strip()
    status = _ALIASES.get(text.upper())
    if status is not None:
        return status
    if 'ERROR' in text.upper():
        return AttendanceStatus.ERROR
    return None


def has_deviation(deviation):
    return bool(deviation) and str(deviation).strip() not in ('', '-')


def categorize(status, deviation=None):
    """
    Route a record to its review queue. First match wins:
    Absent, Present/Clean, Worked Off, Weekly Off/Holiday, *Error*,
    Audit/Very Late or any deviation annotation. A bare Half Day with no
    deviation matches nothing and stays Unclassified.
    """
    parsed = parse_status(status)
    if parsed is AttendanceStatus.ABSENT:
        return Category.ABSENT
    if parsed is AttendanceStatus.PRESENT:
        return Category.PRESENT
    if parsed is AttendanceStatus.WORKED_OFF:
        return Category.WORKED_OFF
    if parsed in (AttendanceStatus.WEEKLY_OFF, AttendanceStatus.HOLIDAY):
        return Category.OFF_DAYS
    if parsed is AttendanceStatus.ERROR:
        return Category.ERRORS
    if parsed is AttendanceStatus.AUDIT:
        return Category.AUDIT
    if has_deviation(deviation):
        return Category.AUDIT
    return Category.UNCLASSIFIED


def is_clean(status):
    return parse_status(status) in CLEAN_STATUSES


def is_valid_option(status):
    return status in STATUS_OPTIONS
