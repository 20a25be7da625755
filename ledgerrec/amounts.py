"""Exact amounts and calendar dates used for matching.

Ledger amounts are stored as integer numerator/denominator pairs. They are
converted to ``Decimal`` for comparison and back again when new splits are
written, so equality is always exact and never float-based.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any

from ledgerrec.errors import DataIntegrityError

LEDGER_DATETIME_FORMATS = ("%Y%m%d%H%M%S", "%Y-%m-%d %H:%M:%S")
LEDGER_DATETIME_OUTPUT = "%Y-%m-%d %H:%M:%S"

_TEXTUAL_DATE = re.compile(r"(\d{4})\.(\d{2})\.(\d{2})")
_CURRENCY_MARKS = ("$", "€", "£", "HUF", "EUR", "USD", "Ft", "\u00a0", " ")


@dataclass(frozen=True)
class DenominatedValue:
    """Fixed-point value as stored in the ledger.

    Attributes:
        num: Integer numerator
        denom: Integer denominator (commodity fraction or account SCU)
    """

    num: int
    denom: int

    def to_decimal(self) -> Decimal:
        return to_decimal(self.num, self.denom)


def to_decimal(num: int, denom: int) -> Decimal:
    """Convert a ledger numerator/denominator pair to an exact decimal.

    Args:
        num: Numerator
        denom: Denominator

    Returns:
        The exact quotient

    Raises:
        DataIntegrityError: If the denominator is zero
    """
    if denom == 0:
        raise DataIntegrityError(f"Zero denominator for numerator {num}")
    return Decimal(num) / Decimal(denom)


def denominate(amount: Decimal, denom: int) -> DenominatedValue:
    """Express an amount over a fixed denominator.

    The numerator is ``amount * denom`` rounded half-to-even, the ledger's
    rounding rule.

    Args:
        amount: Exact amount
        denom: Commodity fraction (for values) or account SCU (for quantities)

    Returns:
        DenominatedValue over ``denom``

    Raises:
        DataIntegrityError: If ``denom`` is not positive
    """
    if denom <= 0:
        raise DataIntegrityError(f"Invalid denominator {denom}")
    scaled = (amount * denom).quantize(Decimal(1), rounding=ROUND_HALF_EVEN)
    return DenominatedValue(num=int(scaled), denom=denom)


def quantize_to_fraction(amount: Decimal, fraction: int) -> Decimal:
    """Round an amount to the precision a denominator can represent."""
    return denominate(amount, fraction).to_decimal()


def parse_amount(value: Any) -> Decimal | None:
    """Convert a spreadsheet cell into an exact decimal.

    Floats go through their shortest ``repr`` so a cell holding ``10.001``
    stays ``10.001`` instead of picking up binary expansion noise.

    Args:
        value: Raw cell value (str, int, float, Decimal or None)

    Returns:
        Decimal amount, or None if the cell is empty or not a number
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Decimal(repr(value))

    text = str(value).strip()
    if not text:
        return None

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    for mark in _CURRENCY_MARKS:
        text = text.replace(mark, "")
    if "," in text and "." in text:
        # Whichever separator comes last marks the decimals
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(",") == 1:
        # "1 234,50" style: a lone comma is the decimal separator
        text = text.replace(",", ".")
    else:
        text = text.replace(",", "")

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return -amount if negative else amount


def shift_days(day: date, delta: int) -> date:
    return day + timedelta(days=delta)


def parse_ledger_datetime(text: str) -> datetime:
    """Parse a transaction ``post_date``/``enter_date`` column.

    Both the compact (``YYYYMMDDHHMMSS``) and the dashed
    (``YYYY-MM-DD HH:MM:SS``) ledger formats are accepted.

    Raises:
        DataIntegrityError: If the text matches neither format
    """
    candidate = text.strip()
    for fmt in LEDGER_DATETIME_FORMATS:
        try:
            return datetime.strptime(candidate, fmt)
        except ValueError:
            continue
    raise DataIntegrityError(f"Malformed ledger date: {text!r}")


def format_ledger_datetime(value: datetime) -> str:
    return value.strftime(LEDGER_DATETIME_OUTPUT)


def extract_date(text: str | None) -> date | None:
    """Find the first ``YYYY.MM.DD`` date embedded in free text.

    Card payments carry the spending date in their description, e.g.
    ``"XYZ. PD.  2016.10.20 4488620465"``.

    Args:
        text: Description text

    Returns:
        The embedded date, or None if absent or not a real calendar date
    """
    if not text:
        return None
    found = _TEXTUAL_DATE.search(text)
    if found is None:
        return None
    year, month, day = (int(part) for part in found.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def to_date(text: str | None) -> date | None:
    """Parse a strict ``YYYY-MM-DD`` string; None passes through.

    Raises:
        ValueError: If the text is not a valid ISO date
    """
    if text is None:
        return None
    return datetime.strptime(text, "%Y-%m-%d").date()


__all__ = [
    "DenominatedValue",
    "to_decimal",
    "denominate",
    "quantize_to_fraction",
    "parse_amount",
    "shift_days",
    "parse_ledger_datetime",
    "format_ledger_datetime",
    "extract_date",
    "to_date",
]
