"""Spreadsheet loading and normalization for bank exports.

Each supported bank layout is a ``SheetFormat`` member. Positional layouts
(OTP, Granit) are read without a header; the generic layout detects its
columns from the header row with fuzzy matching. Whatever the layout, the
output is a list of ``ExternalTransaction``.
"""

from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import pandas as pd
from dateutil import parser as date_parser
from rapidfuzz import fuzz, process

from ledgerrec.amounts import extract_date, parse_amount
from ledgerrec.errors import ConfigurationError
from ledgerrec.logging_setup import get_logger
from ledgerrec.models import ExternalTransaction, ExternalTransactionList, Matching

logger = get_logger(__name__)

_CSV_SUFFIXES = {".csv", ".txt"}

_ACCENT_DIGRAPHS = (
    ("A'", "Á"), ("I'", "Í"), ("E'", "É"), ("O'", "Ó"), ("U'", "Ú"), ("U:", "Ü"), ("O:", "Ö"),
    ("a'", "á"), ("i'", "í"), ("e'", "é"), ("o'", "ó"), ("u'", "ú"), ("u:", "ü"), ("o:", "ö"),
)


class SheetFormat(str, Enum):
    """Supported bank export layouts."""

    OTP = "otp"
    GRANIT = "granit"
    GENERIC = "generic"

    @classmethod
    def from_name(cls, name: str | None) -> "SheetFormat":
        """Look up a layout by name; ``None`` selects OTP.

        Raises:
            ConfigurationError: If the name is unknown
        """
        if name is None:
            return cls.OTP
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown format: '{name}'") from None

    @property
    def has_header(self) -> bool:
        return self == SheetFormat.GENERIC


# -- cell helpers ---------------------------------------------------------


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_to_string(value: Any) -> str | None:
    if _is_blank(value):
        return None
    return str(value).strip()


def cell_to_date(value: Any, fmt: str) -> date | None:
    """Parse a date cell written in ``fmt``; native date cells pass through."""
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), fmt).date()
    except ValueError:
        return None


def cleanup_string(text: str) -> str:
    """Lower-case all-caps text and fold ``A'``-style digraphs into accented letters."""
    fixed = text.lower() if text.upper() == text else text
    for digraph, letter in _ACCENT_DIGRAPHS:
        fixed = fixed.replace(digraph, letter)
    return fixed


def _join(first: str | None, second: str | None) -> str | None:
    parts = [p for p in (first, second) if p]
    return " ".join(parts) if parts else None


def _cell(row: list[Any], idx: int) -> Any:
    return row[idx] if idx < len(row) else None


# -- positional layouts ---------------------------------------------------


def parse_otp_rows(rows: list[list[Any]]) -> list[ExternalTransaction]:
    """Normalize rows of an OTP Bank account history export.

    Columns: 1 category, 2 booking date and 3 value date (``YYYY.MM.DD.``), 4 amount,
    6 counterparty account, 7 counterparty name, 8 description. Rows with an
    empty first cell or a non-numeric amount (headers, footers) are skipped.
    """
    transactions = []
    for row_no, row in enumerate(rows):
        if _is_blank(_cell(row, 0)):
            continue
        amount = parse_amount(_cell(row, 4))
        if amount is None:
            continue
        description = cell_to_string(_cell(row, 8))
        transactions.append(
            ExternalTransaction(
                primary_date=cell_to_date(_cell(row, 2), "%Y.%m.%d."),
                secondary_date=extract_date(description),
                value_date=cell_to_date(_cell(row, 3), "%Y.%m.%d."),
                amount=amount,
                category=cell_to_string(_cell(row, 1)),
                description=description,
                counterparty_account_id=cell_to_string(_cell(row, 6)),
                counterparty_name=cell_to_string(_cell(row, 7)),
                row=row_no,
            )
        )
    return transactions


def parse_granit_rows(rows: list[list[Any]]) -> list[ExternalTransaction]:
    """Normalize rows of a Granit Bank export.

    Columns: 1 amount, 4 ISO date, 6 category, 7 or 9 counterparty name,
    8 counterparty account, 11 comment. Only rows with a numeric amount count.
    """
    transactions = []
    for row_no, row in enumerate(rows):
        amount = parse_amount(_cell(row, 1))
        if amount is None:
            continue
        name = cell_to_string(_cell(row, 7)) or cell_to_string(_cell(row, 9))
        if name is not None:
            name = cleanup_string(name)
        comment = cell_to_string(_cell(row, 11))
        transactions.append(
            ExternalTransaction(
                primary_date=cell_to_date(_cell(row, 4), "%Y-%m-%d"),
                amount=amount,
                category=cell_to_string(_cell(row, 6)),
                description=_join(name, comment),
                counterparty_account_id=cell_to_string(_cell(row, 8)),
                counterparty_name=name,
                row=row_no,
            )
        )
    return transactions


# -- generic layout -------------------------------------------------------


_FIELD_KEYWORDS = {
    "date": ["date", "booking date", "transaction date", "posted date", "value date"],
    "amount": ["amount", "amt", "sum"],
    "debit": ["debit", "withdrawal", "paid out"],
    "credit": ["credit", "deposit", "paid in"],
    "fee": ["fee", "fees", "commission"],
    "description": ["description", "desc", "details", "memo", "narrative"],
    "category": ["category", "type"],
    "counterparty": ["counterparty", "payee", "partner name", "beneficiary"],
    "counterparty_account": ["counterparty account", "partner account", "iban"],
}


def detect_columns(columns: list[str]) -> dict[str, str | None]:
    """Detect which header holds which field.

    Exact (case-insensitive) header names are assigned first; the remaining
    fields are fuzzy-matched against the headers nobody claimed yet.

    Args:
        columns: Header row

    Returns:
        Mapping of field name (date, amount, debit, credit, fee, description,
        category, counterparty, counterparty_account) to column name or None
    """
    column_lower = [str(col).lower().strip() for col in columns]
    mapping: dict[str, str | None] = {}
    claimed: set[int] = set()

    for field_name, keywords in _FIELD_KEYWORDS.items():
        mapping[field_name] = None
        for keyword in keywords:
            if keyword in column_lower and column_lower.index(keyword) not in claimed:
                idx = column_lower.index(keyword)
                mapping[field_name] = columns[idx]
                claimed.add(idx)
                break

    for field_name, keywords in _FIELD_KEYWORDS.items():
        if mapping[field_name] is not None:
            continue
        free = {idx: col for idx, col in enumerate(column_lower) if idx not in claimed}
        if not free:
            break
        match = process.extractOne(keywords[0], free, scorer=fuzz.WRatio, score_cutoff=85)
        if match:
            mapping[field_name] = columns[match[2]]
            claimed.add(match[2])

    return mapping


def infer_date_format(dates: pd.Series) -> dict:
    """Infer day/month order from a sample of date strings.

    Returns:
        Dict with ``dayfirst``/``yearfirst`` hints for ``dateutil.parser``
    """
    hints = {"dayfirst": False, "yearfirst": False}

    sample = dates.dropna().head(10)
    for date_str in sample:
        date_str = str(date_str).strip()

        if date_str[:4].isdigit() and len(date_str) > 4 and date_str[4] in "-./":
            hints["yearfirst"] = True
            return hints

        for sep in ("/", ".", "-"):
            parts = date_str.split(sep)
            if len(parts) >= 3:
                try:
                    first, second = int(parts[0]), int(parts[1])
                except ValueError:
                    continue
                if first > 12 and second <= 12:
                    hints["dayfirst"] = True
                    return hints
    return hints


def standardize_date(value: Any, format_hints: dict) -> date | None:
    if _is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value), **format_hints).date()
    except (ValueError, TypeError, OverflowError):
        return None


def parse_generic_frame(df: pd.DataFrame) -> list[ExternalTransaction]:
    """Normalize a sheet with a header row.

    The amount is the signed amount column, or credit minus debit when the
    sheet splits them. A fee column is carried over when present.
    """
    mapping = detect_columns([str(c) for c in df.columns])
    logger.debug("Detected columns: %s", mapping)
    if mapping["date"] is None or (
        mapping["amount"] is None and mapping["debit"] is None and mapping["credit"] is None
    ):
        raise ConfigurationError(
            f"Cannot find date and amount columns among {list(df.columns)}"
        )

    date_hints = infer_date_format(df[mapping["date"]].astype(str))

    def get(row: pd.Series, key: str) -> Any:
        column = mapping[key]
        return row[column] if column is not None else None

    transactions = []
    for row_no, (_, row) in enumerate(df.iterrows()):
        if mapping["amount"] is not None:
            amount = parse_amount(get(row, "amount"))
        else:
            credit = parse_amount(get(row, "credit"))
            debit = parse_amount(get(row, "debit"))
            amount = None if credit is None and debit is None else (credit or 0) - (debit or 0)
        if amount is None:
            continue

        description = cell_to_string(get(row, "description"))
        transactions.append(
            ExternalTransaction(
                primary_date=standardize_date(get(row, "date"), date_hints),
                secondary_date=extract_date(description),
                amount=amount,
                fee=parse_amount(get(row, "fee")),
                category=cell_to_string(get(row, "category")),
                description=description,
                counterparty_account_id=cell_to_string(get(row, "counterparty_account")),
                counterparty_name=cell_to_string(get(row, "counterparty")),
                row=row_no,
            )
        )
    return transactions


# -- loading --------------------------------------------------------------


def read_sheet(path: Path, sheet_name: str | None, header: bool) -> pd.DataFrame | None:
    """Read a workbook sheet or a CSV file into a DataFrame.

    Args:
        path: Spreadsheet path
        sheet_name: Sheet to read (first sheet when None; ignored for CSV)
        header: Whether the first row is a header

    Returns:
        Raw DataFrame, or None if the sheet does not exist
    """
    header_row = 0 if header else None
    if path.suffix.lower() in _CSV_SUFFIXES:
        try:
            return pd.read_csv(path, header=header_row, dtype=object)
        except UnicodeDecodeError:
            return pd.read_csv(path, header=header_row, dtype=object, encoding="latin-1")

    with pd.ExcelFile(path) as workbook:
        target = sheet_name if sheet_name is not None else workbook.sheet_names[0]
        if target not in workbook.sheet_names:
            logger.warning("Sheet '%s' not found in %s (sheets: %s)", target, path.name, workbook.sheet_names)
            return None
        logger.info("Found sheet '%s'", target)
        return workbook.parse(target, header=header_row)


def parse_frame(df: pd.DataFrame, sheet_format: SheetFormat) -> list[ExternalTransaction]:
    if sheet_format == SheetFormat.GENERIC:
        return parse_generic_frame(df)
    rows = df.astype(object).where(df.notna(), None).values.tolist()
    if sheet_format == SheetFormat.GRANIT:
        return parse_granit_rows(rows)
    return parse_otp_rows(rows)


def load_transactions(
    path: Path,
    sheet_name: str | None = None,
    sheet_format: SheetFormat = SheetFormat.OTP,
    matching: Matching = Matching.BY_SPENDING,
) -> ExternalTransactionList:
    """Load and normalize a bank export.

    Args:
        path: Spreadsheet (xlsx/xls/ods) or CSV file
        sheet_name: Sheet to read, defaults to the first one
        sheet_format: Bank layout
        matching: Date used to compute the matching-date range

    Returns:
        ExternalTransactionList with the min/max matching dates
    """
    df = read_sheet(path, sheet_name, header=sheet_format.has_header)
    if df is None:
        return ExternalTransactionList(transactions=[])
    transactions = parse_frame(df, sheet_format)
    logger.info("Loaded %d transactions from %s", len(transactions), path.name)
    return ExternalTransactionList.from_transactions(transactions, matching)


__all__ = [
    "SheetFormat",
    "cleanup_string",
    "detect_columns",
    "infer_date_format",
    "load_transactions",
    "parse_generic_frame",
    "parse_granit_rows",
    "parse_otp_rows",
    "read_sheet",
]
