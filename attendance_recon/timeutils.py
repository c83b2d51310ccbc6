"""
Time arithmetic helpers shared by every component.

Times travel as ``HH:MM`` strings (or sentinels such as ``NA``) and are
compared as minute offsets from midnight. Dates travel as ``DD-MMM-YYYY``
strings, e.g. ``05-MAR-2025``.
"""
import calendar
from datetime import date, datetime, time

from .config import MISSING_TIME_TOKENS

MINUTES_PER_DAY = 24 * 60

MONTHS = ('JAN', 'FEB', 'MAR', 'APR', 'MAY', 'JUN',
          'JUL', 'AUG', 'SEP', 'OCT', 'NOV', 'DEC')

_DATE_FORMATS = ('%Y-%m-%d', '%d/%m/%Y', '%d-%m-%Y', '%Y-%m-%d %H:%M:%S')


def is_missing_time(value):
    """True for empty cells and the 'no punch' sentinels (NA, -, 00:00)."""
    if value is None:
        return True
    if isinstance(value, time):
        return value == time(0, 0)
    return str(value).strip().upper() in MISSING_TIME_TOKENS


def parse_time(value):
    """Convert an HH:MM string, time, datetime or Excel day fraction to a time object"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 0 <= value < 1:
            total = int(round(value * MINUTES_PER_DAY)) % MINUTES_PER_DAY
            return time(total // 60, total % 60)
        return None
    text = str(value).strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time().replace(second=0)
        except ValueError:
            continue
    return None


def format_time(value):
    """Normalise a punch cell to HH:MM; sentinels and unreadable values become ''."""
    if is_missing_time(value) and not isinstance(value, time):
        return ''
    parsed = parse_time(value)
    if parsed is None:
        return ''
    return parsed.strftime('%H:%M')


def time_to_minutes(value):
    """Convert a time (or HH:MM string) to minutes since midnight; missing -> 0"""
    if value is None:
        return 0
    if not isinstance(value, time):
        if is_missing_time(value):
            return 0
        value = parse_time(value)
        if value is None:
            return 0
    return value.hour * 60 + value.minute


def minutes_to_time_str(minutes):
    """Convert minutes to HH:MM format, clamping negatives to 00:00"""
    minutes = max(0, int(round(minutes)))
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours:02d}:{mins:02d}"


def hhmm_to_hours(value):
    """'07:30' -> 7.5; used for duration cells such as total hours."""
    if value is None:
        return 0.0
    text = str(value).strip()
    if not text or text in ('-', 'NA'):
        return 0.0
    hours, _, minutes = text.partition(':')
    try:
        return int(hours) + (int(minutes or 0) / 60)
    except ValueError:
        return 0.0


def minutes_to_decimal_hours(minutes):
    """Convert minutes to decimal hours"""
    return round(minutes / 60, 2)


def calculate_duration(entry_minutes, exit_minutes):
    """
    Minutes between two wall-clock offsets.
    An exit earlier than the entry is taken to be on the next day
    (e.g. 22:00 to 06:00 is 480 minutes).
    """
    if exit_minutes >= entry_minutes:
        return exit_minutes - entry_minutes
    return (MINUTES_PER_DAY - entry_minutes) + exit_minutes


def punch_duration(in_time, out_time):
    """Minutes worked between two punch cells, 0 when either punch is missing."""
    if is_missing_time(in_time) or is_missing_time(out_time):
        return 0
    entry = parse_time(in_time)
    exit_time = parse_time(out_time)
    if entry is None or exit_time is None:
        return 0
    return calculate_duration(time_to_minutes(entry), time_to_minutes(exit_time))


def format_date(value):
    """Render a date-like value as DD-MMM-YYYY; unparseable text is returned trimmed."""
    if value is None:
        return ''
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return f"{value.day:02d}-{MONTHS[value.month - 1]}-{value.year}"
    text = str(value).strip()
    if not text:
        return ''
    parsed = parse_date(text)
    if parsed is not None:
        return format_date(parsed)
    for fmt in _DATE_FORMATS:
        try:
            return format_date(datetime.strptime(text, fmt).date())
        except ValueError:
            continue
    return text


def parse_date(value):
    """Parse DD-MMM-YYYY (month name case-insensitive) into a date, or None"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    parts = str(value).strip().split('-')
    if len(parts) != 3:
        return None
    day, month, year = parts
    month = month.upper()
    if month not in MONTHS:
        return None
    try:
        return date(int(year), MONTHS.index(month) + 1, int(day))
    except ValueError:
        return None


def days_in_month(year, month):
    return calendar.monthrange(year, month)[1]


def month_dates(year, month):
    """Every calendar date of the month, in order."""
    return [date(year, month, day) for day in range(1, days_in_month(year, month) + 1)]
