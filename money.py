import re
from decimal import Decimal, InvalidOperation

from errors import InvalidInput

AMOUNT_PATTERN = r"^\d+(\.\d{1,2})?$"
_AMOUNT_RE = re.compile(AMOUNT_PATTERN)


def parse_amount(value: str) -> int:
    """Parse a non-negative decimal string with at most two fraction digits
    into integer cents."""
    clean = (value or "").strip()
    if not _AMOUNT_RE.match(clean):
        raise InvalidInput(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise InvalidInput(f"Invalid amount: {value!r}") from exc
    return int((amount * 100).quantize(Decimal("1")))


def format_amount(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
