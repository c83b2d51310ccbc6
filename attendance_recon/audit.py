"""
Audit queue triage.

Audit records are split into six buckets, checked in this order:
missing punch, shift deviation, under 4 hours, 4 to 7 hours, late/early,
other. Late/early records also get an occurrence number: their rank among
the same employee's late/early records of that month, by date.
"""
import logging
from enum import Enum

from .config import AUDIT_RULES, OCCURRENCE_FILLS
from .models import employee_key
from .timeutils import hhmm_to_hours, parse_date

logger = logging.getLogger(__name__)


class AuditBucket(Enum):
    MISSING = 'missing'
    SHIFT = 'shift'
    UNDER_4_HOURS = 'under4hrs'
    FOUR_TO_SEVEN_HOURS = '4to7hrs'
    LATE_EARLY = 'lateearly'
    OTHER = 'other'

    @property
    def label(self):
        return AUDIT_BUCKET_LABELS[self]


AUDIT_BUCKET_LABELS = {
    AuditBucket.MISSING: 'Missing Punch',
    AuditBucket.SHIFT: 'Shift Deviation',
    AuditBucket.UNDER_4_HOURS: 'Under 4 Hours',
    AuditBucket.FOUR_TO_SEVEN_HOURS: '4-7 Hours',
    AuditBucket.LATE_EARLY: 'Late-Early',
    AuditBucket.OTHER: 'Other',
}


def _nonzero(value):
    text = str(value or '').strip()
    return text not in ('', '-', '0', '00:00', '0:00')


def categorize_audit_record(record, rules=None):
    rules = rules or AUDIT_RULES
    deviation = (record.deviation or '').lower()

    if 'missing' in deviation or 'punch' in deviation:
        return AuditBucket.MISSING
    if 'shift' in deviation or 'very early' in deviation:
        return AuditBucket.SHIFT

    hours = hhmm_to_hours(record.total_hours)
    if 0 < hours < rules['short_hours']:
        return AuditBucket.UNDER_4_HOURS
    if rules['short_hours'] <= hours < rules['partial_hours']:
        return AuditBucket.FOUR_TO_SEVEN_HOURS

    if _nonzero(record.late_by) or _nonzero(record.early_by):
        return AuditBucket.LATE_EARLY
    return AuditBucket.OTHER


def split_audit_queue(records, rules=None):
    """Bucket -> records, every bucket present even when empty."""
    buckets = {bucket: [] for bucket in AuditBucket}
    for record in records:
        buckets[categorize_audit_record(record, rules)].append(record)
    logger.debug("Audit split: %s", {bucket.value: len(items) for bucket, items in buckets.items()})
    return buckets


def occurrence_number(record, records, rules=None):
    """
    1-based position of a late/early record within its employee's month,
    ordered by date then record id; 0 if not late/early.
    """
    if categorize_audit_record(record, rules) is not AuditBucket.LATE_EARLY:
        return 0
    day = parse_date(record.date)
    if day is None:
        return 0

    key = employee_key(record.employee_number)
    ranked = []
    own = None
    for position, other in enumerate(records):
        other_day = parse_date(other.date)
        if (other_day is None or employee_key(other.employee_number) != key
                or (other_day.year, other_day.month) != (day.year, day.month)):
            continue
        if categorize_audit_record(other, rules) is AuditBucket.LATE_EARLY:
            ranked.append((other_day, other.id, position))
            if other is record:
                own = ranked[-1]
    if own is None:
        own = (day, record.id, len(records))
        ranked.append(own)
    ranked.sort()
    return ranked.index(own) + 1


def occurrence_label(number):
    if number <= 0:
        return ''
    if number == 1:
        return '1st'
    if number == 2:
        return '2nd'
    return '3rd+'


def occurrence_color(number):
    """Fill colour for an occurrence: green, amber, then red from the 3rd on."""
    if number <= 0:
        return None
    return OCCURRENCE_FILLS[min(number, 3)]
