from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidInputError


MIN_YEAR = 1970
MAX_YEAR = 3000

MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@dataclass(frozen=True)
class MonthPeriod:
    year: int
    month: int

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES[self.month - 1]} {self.year}"

    def previous(self) -> "MonthPeriod":
        if self.month == 1:
            return MonthPeriod(self.year - 1, 12)
        return MonthPeriod(self.year, self.month - 1)


def resolve_month(month: int, year: int) -> MonthPeriod:
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidInputError(f"Month must be between 1 and 12, got {month!r}")
    if not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidInputError(
            f"Year must be between {MIN_YEAR} and {MAX_YEAR}, got {year!r}"
        )
    return MonthPeriod(year, month)


def local_now() -> datetime:
    return (
        datetime.now(ZoneInfo(get_settings().timezone))
        .replace(tzinfo=None)
        .replace(microsecond=0)
    )


def to_local_naive(value: datetime) -> datetime:
    """Express an aware datetime as naive wall-clock time in the configured zone."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(get_settings().timezone)).replace(tzinfo=None)


def current_month(today: Optional[date] = None) -> MonthPeriod:
    today = today or local_now().date()
    return MonthPeriod(today.year, today.month)
