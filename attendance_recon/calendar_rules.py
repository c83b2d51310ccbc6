from dataclasses import dataclass

from .timeutils import format_date, parse_date


@dataclass(frozen=True)
class CalendarClass:
    is_weekly_off: bool = False
    is_holiday: bool = False
    holiday_label: str = ''

    @property
    def is_off_day(self):
        return self.is_weekly_off or self.is_holiday


WORKING_DAY = CalendarClass()


class CalendarClassifier:
    """
    Weekly-off and holiday membership for a date.
    weekly_offs holds weekday indices with 0=Sunday .. 6=Saturday, applied to everyone.
    """

    def __init__(self, weekly_offs=(), holidays=()):
        self.weekly_offs = frozenset(int(day) for day in weekly_offs)
        self.holidays = {}
        for holiday in holidays:
            self.holidays[format_date(holiday.date).upper()] = holiday

    @staticmethod
    def weekday_index(day):
        # Python counts Monday=0; the calendar convention here is Sunday=0
        return (day.weekday() + 1) % 7

    def is_weekly_off(self, value):
        day = parse_date(value)
        if day is None:
            return False
        return self.weekday_index(day) in self.weekly_offs

    def holiday_for(self, value):
        return self.holidays.get(format_date(value).upper())

    def is_holiday(self, value):
        return self.holiday_for(value) is not None

    def classify(self, value):
        holiday = self.holiday_for(value)
        return CalendarClass(
            is_weekly_off=self.is_weekly_off(value),
            is_holiday=holiday is not None,
            holiday_label=holiday.label if holiday else '',
        )
