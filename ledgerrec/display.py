"""Shared display formatting for CLI output."""

from datetime import date
from decimal import Decimal

from ledgerrec.amounts import parse_ledger_datetime
from ledgerrec.errors import DataIntegrityError
from ledgerrec.models import (
    Account,
    Commodity,
    ExternalTransaction,
    LedgerEntry,
    Split,
    Transaction,
)

NO_DATE = "----------"


def format_date(value: date | None) -> str:
    """Format a date as ``YYYY-MM-DD``, or dashes when missing."""
    if value is None:
        return NO_DATE
    return value.strftime("%Y-%m-%d")


def format_amount(value: Decimal | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:f}"


def truncate_string(s: str, max_len: int) -> str:
    """Truncate string to max length with ellipsis.

    Args:
        s: String to truncate
        max_len: Maximum length before truncation

    Returns:
        Truncated string with "..." appended if truncated, otherwise original string
    """
    return s[:max_len] + "..." if len(s) > max_len else s


def format_external(external: ExternalTransaction) -> str:
    """``<date> <secondary date> <amount> (value: <date>) (fee: <fee>) [<category>] - <description>``.

    The value date is only shown when it differs from the booking date.
    """
    text = f"{format_date(external.primary_date)} {format_date(external.secondary_date)}"
    text += f" {format_amount(external.amount)}"
    if external.value_date is not None and external.value_date != external.primary_date:
        text += f" (value: {format_date(external.value_date)})"
    if external.fee is not None:
        text += f" (fee: {format_amount(external.fee)})"
    if external.category:
        text += f" [{external.category}]"
    if external.description:
        text += f" - {external.description}"
    return text


def _format_fraction(num: int, denom: int) -> str:
    if denom == 0:
        return f"{num}/0"
    value = Decimal(num) / Decimal(denom)
    digits = str(denom)
    if digits.startswith("1") and set(digits[1:]) <= {"0"}:
        value = value.quantize(Decimal(1).scaleb(-(len(digits) - 1)))
    return format_amount(value)


def format_split(split: Split) -> str:
    """``<memo>:<action> - <value> <quantity>``."""
    value = _format_fraction(split.value_num, split.value_denom)
    quantity = _format_fraction(split.quantity_num, split.quantity_denom)
    return f"{split.memo}:{split.action} - {value} {quantity}"


def format_transaction(transaction: Transaction) -> str:
    if transaction.post_date:
        try:
            posted = format_date(parse_ledger_datetime(transaction.post_date).date())
        except DataIntegrityError:
            posted = transaction.post_date
    else:
        posted = NO_DATE
    return f"{posted} {transaction.description or ''}".rstrip()


def format_entry(entry: LedgerEntry) -> str:
    return f"{format_transaction(entry.transaction)} - {format_split(entry.split)}"


def format_split_row(split: Split, transaction: Transaction) -> str:
    """One row of the ``transactions`` listing."""
    return f"[{split.account_guid}]<{split.tx_guid}> - {format_transaction(transaction)} - {format_split(split)}"


def format_account(account: Account) -> str:
    return f"[{account.account_type}]<{account.guid}> - {account.name}"


def format_commodity(commodity: Commodity) -> str:
    name = f" - {commodity.fullname}" if commodity.fullname else ""
    return f"[{commodity.namespace}]<{commodity.guid}> {commodity.mnemonic}{name} (1/{commodity.fraction})"


def format_date_range(first: date | None, last: date | None) -> str:
    if first is None or last is None:
        return "no dates"
    return f"{format_date(first)} .. {format_date(last)}"


__all__ = [
    "NO_DATE",
    "format_account",
    "format_amount",
    "format_commodity",
    "format_date",
    "format_date_range",
    "format_entry",
    "format_external",
    "format_split",
    "format_split_row",
    "format_transaction",
    "truncate_string",
]
