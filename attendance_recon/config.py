from datetime import time

# Shift Configuration
DEFAULT_SHIFT = {
    'id': 'GS',
    'label': 'General',
    'begin_time': time(9, 0),
    'end_time': time(18, 0),
    'early_in_threshold': 0,    # mins
    'late_threshold': 0,        # mins
    'early_threshold': 0,       # mins
    'allowed_late_count': 2     # occasions per month, late-in and early-out combined
}

DEFAULT_ALLOWED_LATE_COUNT = 2

# Daily status resolution rules
RESOLUTION_RULES = {
    'required_hours': 8,
    'half_day_hours': 4,
    'worked_off_min_hours': 4,
    'violation_threshold_minutes': 60
}

# Attendance classification (gross/effective hours)
CLASSIFICATION_RULES = {
    'break_minutes': 60,
    'effective_day_minutes': 480,
    'gross_day_minutes': 540
}

# Audit queue hour bands
AUDIT_RULES = {
    'short_hours': 4,
    'partial_hours': 7
}

# Excess hours magnitude bands (hours)
EXCESS_HOURS_BANDS = (1, 2, 4)

# Work hours colour bands (hours)
WORK_HOURS_BANDS = {
    'red_below': 4,
    'amber_below': 7,
    'green_up_to': 12
}

# Occurrence colours for the late/early audit bucket
OCCURRENCE_FILLS = {
    1: 'D4EDDA',    # green
    2: 'FFF3CD',    # amber
    3: 'F8D7DA'     # red (3rd and later)
}

AUTOSAVE_DELAY_SECONDS = 1.5

ADMIN_ROLES = ('SaaS_Admin', 'Admin', 'Manager')

# Time cells that mean "no punch"
MISSING_TIME_TOKENS = ('', '-', 'NA', 'N/A', '00:00')

NOT_FOUND = 'Not Found'
UNRECONCILED_ABSENT = 'UNRECONCILED_ABSENT'

LOG_LEVEL_ENV = 'ATTENDANCE_RECON_LOG_LEVEL'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
