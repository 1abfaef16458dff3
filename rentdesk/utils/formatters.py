"""
Formatting helpers shared by the report renderer, the CSV export and logging.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, List, Optional

RUPEE = "₹"


def to_number(value: Any) -> float:
    """Coerce a stored amount to a number; missing or non-numeric is 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if value == value else 0
    try:
        number = float(str(value).strip())
    except ValueError:
        return 0
    return number if number == number else 0


def js_number(value: Any) -> str:
    """Render a number the way the dashboard does: no trailing ``.0``."""
    number = to_number(value)
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return repr(number) if isinstance(number, float) else str(number)


def format_indian_number(amount: Any, max_fraction_digits: int = 3) -> str:
    """
    Group digits in the Indian system (lakh/crore).

    Example:
        1234567.5 -> "12,34,567.5"
    """
    try:
        value = Decimal(str(to_number(amount)))
    except InvalidOperation:
        value = Decimal(0)
    quantum = Decimal(1).scaleb(-max_fraction_digits)
    value = value.quantize(quantum, rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    integer, _, fraction = f"{abs(value):f}".partition(".")
    fraction = fraction.rstrip("0")

    head, tail = integer[:-3], integer[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    grouped = ",".join(groups + [tail])

    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_currency(amount: Optional[Any]) -> str:
    """Rupee amount for the report; anything that is not a number renders as ``-``."""
    if amount is None or isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return "-"
    return f"{RUPEE}{format_indian_number(amount)}"


def mask_email(address: str) -> str:
    """Keep the first character of the local part: ``jane@x.io`` -> ``j***@x.io``."""
    return re.sub(r"(?<=.).(?=.*@)", "*", address or "")


def parse_recipients(value: Optional[str]) -> List[str]:
    """Split a comma/semicolon separated address list, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in re.split(r"[;,]", value) if part.strip()]
