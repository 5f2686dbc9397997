import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from errors import InvalidInput

MONTH_PATTERN = r"^\d{4}-\d{2}$"
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True)
class MonthPeriod:
    """A calendar month as the half-open UTC range [start, end)."""

    token: str
    start: datetime
    end: datetime

    @property
    def year(self) -> int:
        return self.start.year

    @property
    def month(self) -> int:
        return self.start.month


def _split(token: str) -> tuple[int, int]:
    match = _MONTH_RE.match(token or "")
    if not match:
        raise InvalidInput("Invalid month format (YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or year < 1:
        raise InvalidInput("Invalid month format (YYYY-MM)")
    return year, month


def _token(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def shift_month(token: str, count: int) -> str:
    year, month = _split(token)
    month_index = (year * 12) + (month - 1) + count
    return _token(month_index // 12, (month_index % 12) + 1)


def parse_month(token: str) -> MonthPeriod:
    year, month = _split(token)
    next_year, next_month = _split(shift_month(token, 1))
    # Naive datetimes, interpreted as UTC like every stored timestamp.
    return MonthPeriod(
        token=_token(year, month),
        start=datetime(year, month, 1),
        end=datetime(next_year, next_month, 1),
    )


def current_month(today: Optional[date] = None) -> str:
    today = today or datetime.utcnow().date()
    return _token(today.year, today.month)
