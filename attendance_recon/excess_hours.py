import logging
from datetime import datetime
from enum import Enum

from .config import EXCESS_HOURS_BANDS
from .models import ExcessHoursRecord
from .statuses import AttendanceStatus, parse_status
from .timeutils import format_date, is_missing_time, minutes_to_decimal_hours, time_to_minutes

logger = logging.getLogger(__name__)


class ExcessBucket(Enum):
    PRESENT_UNDER_1 = 'present-under1'
    PRESENT_1_TO_2 = 'present-1to2'
    PRESENT_2_TO_4 = 'present-2to4'
    PRESENT_4_PLUS = 'present-4plus'
    WORKED_OFF_UNDER_1 = 'workedoff-under1'
    WORKED_OFF_1_TO_2 = 'workedoff-1to2'
    WORKED_OFF_2_TO_4 = 'workedoff-2to4'
    WORKED_OFF_4_PLUS = 'workedoff-4plus'

    @property
    def is_worked_off(self):
        return self.value.startswith('workedoff')


PRESENT_BUCKETS = (ExcessBucket.PRESENT_UNDER_1, ExcessBucket.PRESENT_1_TO_2,
                   ExcessBucket.PRESENT_2_TO_4, ExcessBucket.PRESENT_4_PLUS)
WORKED_OFF_BUCKETS = (ExcessBucket.WORKED_OFF_UNDER_1, ExcessBucket.WORKED_OFF_1_TO_2,
                      ExcessBucket.WORKED_OFF_2_TO_4, ExcessBucket.WORKED_OFF_4_PLUS)

BUCKET_LABELS = {
    ExcessBucket.PRESENT_UNDER_1: 'Present < 1 Hr',
    ExcessBucket.PRESENT_1_TO_2: 'Present 1-2 Hrs',
    ExcessBucket.PRESENT_2_TO_4: 'Present 2-4 Hrs',
    ExcessBucket.PRESENT_4_PLUS: 'Present 4+ Hrs',
    ExcessBucket.WORKED_OFF_UNDER_1: 'Worked Off < 1 Hr',
    ExcessBucket.WORKED_OFF_1_TO_2: 'Worked Off 1-2 Hrs',
    ExcessBucket.WORKED_OFF_2_TO_4: 'Worked Off 2-4 Hrs',
    ExcessBucket.WORKED_OFF_4_PLUS: 'Worked Off 4+ Hrs',
}


def bucket_for(is_worked_off, hours, bands=EXCESS_HOURS_BANDS):
    buckets = WORKED_OFF_BUCKETS if is_worked_off else PRESENT_BUCKETS
    for index, upper in enumerate(bands):
        if hours < upper:
            return buckets[index]
    return buckets[-1]


class ExcessHoursClassifier:
    """
    Overtime review for present and worked-off days.

    Worked-off days pay everything from shift start to the out punch;
    present days pay only what lies past shift end. Days with no excess
    are left out.
    """

    def __init__(self, shifts=(), actor='System', clock=None, bands=EXCESS_HOURS_BANDS):
        self.actor = actor
        self.clock = clock or datetime.now
        self.bands = bands
        self.shifts = {}
        for shift in shifts:
            self.shifts[shift.id.lower()] = shift
            self.shifts[shift.label.lower()] = shift
        self.default_shift = shifts[0] if shifts else None
        self.records = []

    def _shift_bounds(self, att):
        start = time_to_minutes(att.shift_start)
        end = time_to_minutes(att.shift_end)
        if start and end:
            return start, end
        shift = self.shifts.get((att.shift or '').strip().lower()) or self.default_shift
        if shift is None:
            return start, end
        return start or shift.start_minutes, end or shift.end_minutes

    def excess_for(self, att):
        """ExcessHoursRecord for one attendance record, or None when it has no excess."""
        status = parse_status(att.status)
        if status not in (AttendanceStatus.PRESENT, AttendanceStatus.WORKED_OFF):
            return None
        if is_missing_time(att.in_time) and is_missing_time(att.out_time):
            return None

        start, end = self._shift_bounds(att)
        out_minutes = time_to_minutes(att.out_time)
        excess = 0
        if status is AttendanceStatus.WORKED_OFF:
            if start > 0 and out_minutes > 0:
                excess = out_minutes - start
        elif end > 0 and out_minutes > end:
            excess = out_minutes - end

        if excess <= 0:
            return None
        hours = minutes_to_decimal_hours(excess)
        return ExcessHoursRecord(
            record=att,
            excess_minutes=excess,
            excess_hours=hours,
            final_payable_hours=hours,
            bucket=bucket_for(status is AttendanceStatus.WORKED_OFF, excess / 60, self.bands),
        )

    def classify(self, attendance):
        attendance = list(attendance)
        self.records = [excess for excess in map(self.excess_for, attendance) if excess is not None]
        logger.info("Excess hours: %d of %d records carry excess time",
                    len(self.records), len(attendance))
        return list(self.records)

    def by_bucket(self):
        buckets = {bucket: [] for bucket in ExcessBucket}
        for record in self.records:
            buckets[record.bucket].append(record)
        return buckets

    def accept_all(self, bucket, confirm=None):
        """Mark every pending record of one bucket accepted; returns the count."""
        pending = [record for record in self.records
                   if record.bucket is bucket and not record.is_reconciled]
        if not pending:
            return 0
        if confirm is not None and not confirm(
                f"Accept all {len(pending)} pending excess hours records?"):
            return 0

        now = self.clock()
        stamp = f"{format_date(now)} {now:%H:%M:%S}"
        ids = {id(record) for record in pending}
        accepted = []
        for record in self.records:
            if id(record) in ids:
                record = ExcessHoursRecord(
                    record=record.record,
                    excess_minutes=record.excess_minutes,
                    excess_hours=record.excess_hours,
                    final_payable_hours=record.final_payable_hours,
                    bucket=record.bucket,
                    is_reconciled=True,
                    reconciled_by=self.actor,
                    reconciled_on=stamp,
                )
            accepted.append(record)
        self.records = accepted
        logger.info("Accepted %d excess hours records in %s", len(pending), bucket.value)
        return len(pending)
