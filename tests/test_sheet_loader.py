"""Tests for bank export loading and normalization."""

from datetime import date
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

from ledgerrec.errors import ConfigurationError
from ledgerrec.models import Matching
from ledgerrec.sheet_loader import (
    SheetFormat,
    cleanup_string,
    detect_columns,
    infer_date_format,
    load_transactions,
    parse_granit_rows,
    parse_otp_rows,
)
from tests.factories import TestDataFactory


def write_xlsx(path: Path, rows: list[list], sheet_name: str = "Sheet1") -> Path:
    pd.DataFrame(rows).to_excel(path, sheet_name=sheet_name, header=False, index=False)
    return path


class TestSheetFormat:
    def test_from_name(self) -> None:
        assert SheetFormat.from_name(None) is SheetFormat.OTP
        assert SheetFormat.from_name("Granit") is SheetFormat.GRANIT
        assert SheetFormat.from_name(" generic ") is SheetFormat.GENERIC

    def test_unknown_name(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown format: 'kh'"):
            SheetFormat.from_name("kh")


class TestOtpRows:
    """OTP Bank positional layout."""

    def test_row_mapping(self) -> None:
        row = TestDataFactory.otp_row(
            booking="2016.10.24.",
            value="2016.10.25.",
            amount="-3 000",
            counterparty_account="11600006-00000000",
            counterparty_name="Bakery Ltd",
            description="XYZ. PD.  2016.10.20 4488620465",
        )

        [tx] = parse_otp_rows([row])

        assert tx.primary_date == date(2016, 10, 24)
        assert tx.secondary_date == date(2016, 10, 20)
        assert tx.value_date == date(2016, 10, 25)
        assert tx.amount == Decimal("-3000")
        assert tx.category == "Kártyatranzakció"
        assert tx.counterparty_account_id == "11600006-00000000"
        assert tx.counterparty_name == "Bakery Ltd"
        assert tx.fee is None

    def test_skips_header_and_blank_rows(self) -> None:
        rows = [
            ["Számlaszám", "Típus", "Könyvelés", "Értéknap", "Összeg"],
            [None, None, None, None, None],
            TestDataFactory.otp_row(amount=-1500),
        ]
        assert [tx.amount for tx in parse_otp_rows(rows)] == [Decimal("-1500")]

    def test_malformed_booking_date_is_kept_dateless(self) -> None:
        [tx] = parse_otp_rows([TestDataFactory.otp_row(booking="24/10/2016")])
        assert tx.primary_date is None


class TestGranitRows:
    """Granit Bank positional layout."""

    def test_row_mapping(self) -> None:
        [tx] = parse_granit_rows([TestDataFactory.granit_row(comment="Rent March")])

        assert tx.primary_date == date(2024, 3, 5)
        assert tx.amount == Decimal("-2500")
        assert tx.category == "Átutalás"
        assert tx.counterparty_name == "kovács péter"
        assert tx.counterparty_account_id == "12100011-00000000"
        assert tx.description == "kovács péter Rent March"

    def test_falls_back_to_alternate_name_column(self) -> None:
        [tx] = parse_granit_rows([TestDataFactory.granit_row(name=None, alt_name="Landlord")])
        assert tx.counterparty_name == "Landlord"

    def test_only_numeric_amount_rows(self) -> None:
        rows = [["Típus", "Összeg"], TestDataFactory.granit_row(amount="12.5")]
        assert [tx.amount for tx in parse_granit_rows(rows)] == [Decimal("12.5")]


class TestCleanupString:
    def test_all_caps_lowered_and_accented(self) -> None:
        assert cleanup_string("KOVA'CS PE'TER") == "kovács péter"
        assert cleanup_string("O:RDO:G") == "ördög"

    def test_mixed_case_kept(self) -> None:
        assert cleanup_string("Kova'cs") == "Kovács"


class TestGenericColumns:
    """Header detection for the generic layout."""

    def test_exact_headers(self) -> None:
        mapping = detect_columns(["Date", "Description", "Amount", "Fee", "Counterparty", "IBAN"])
        assert mapping["date"] == "Date"
        assert mapping["amount"] == "Amount"
        assert mapping["fee"] == "Fee"
        assert mapping["counterparty"] == "Counterparty"
        assert mapping["counterparty_account"] == "IBAN"
        assert mapping["debit"] is None

    def test_fuzzy_headers(self) -> None:
        mapping = detect_columns(["Booking Date", "Details", "Debit", "Credit"])
        assert mapping["date"] == "Booking Date"
        assert mapping["description"] == "Details"
        assert mapping["debit"] == "Debit"
        assert mapping["credit"] == "Credit"
        assert mapping["amount"] is None

    def test_infer_day_first(self) -> None:
        hints = infer_date_format(pd.Series(["25/03/2024", "01/04/2024"]))
        assert hints == {"dayfirst": True, "yearfirst": False}

    def test_infer_year_first(self) -> None:
        assert infer_date_format(pd.Series(["2024-03-25"]))["yearfirst"] is True


class TestLoadTransactions:
    """Loading whole files."""

    def test_otp_workbook(self, tmp_path: Path) -> None:
        path = write_xlsx(
            tmp_path / "otp.xlsx",
            [
                TestDataFactory.otp_row(booking="2024.03.04.", amount=-1500, description="2024.03.01 card"),
                TestDataFactory.otp_row(booking="2024.03.08.", amount=20000),
            ],
        )

        loaded = load_transactions(path)

        assert len(loaded) == 2
        assert [tx.amount for tx in loaded.transactions] == [Decimal("-1500"), Decimal("20000")]
        assert (loaded.min_date, loaded.max_date) == (date(2024, 3, 1), date(2024, 3, 8))

    def test_range_by_booking_date(self, tmp_path: Path) -> None:
        path = write_xlsx(
            tmp_path / "otp.xlsx",
            [TestDataFactory.otp_row(booking="2024.03.04.", description="2024.03.01 card")],
        )
        loaded = load_transactions(path, matching=Matching.BY_BOOKING)
        assert loaded.min_date == date(2024, 3, 4)

    def test_granit_named_sheet(self, tmp_path: Path) -> None:
        path = write_xlsx(tmp_path / "granit.xlsx", [TestDataFactory.granit_row()], sheet_name="Tranzakciók")
        loaded = load_transactions(path, sheet_name="Tranzakciók", sheet_format=SheetFormat.GRANIT)
        assert [tx.amount for tx in loaded.transactions] == [Decimal("-2500")]

    def test_missing_sheet_gives_empty_list(self, tmp_path: Path) -> None:
        path = write_xlsx(tmp_path / "otp.xlsx", [TestDataFactory.otp_row()])
        loaded = load_transactions(path, sheet_name="Nope")
        assert len(loaded) == 0
        assert loaded.min_date is None

    def test_generic_csv(self, tmp_path: Path) -> None:
        path = tmp_path / "export.csv"
        path.write_text(
            "Date,Description,Amount,Fee,Category\n"
            "25/03/2024,Coffee,-3.50,,Food\n"
            "26/03/2024,Transfer PD. 2024.03.20,-100.00,0.25,Transfer\n"
            ",,,,\n"
        )

        loaded = load_transactions(path, sheet_format=SheetFormat.GENERIC)

        assert len(loaded) == 2
        coffee, transfer = loaded.transactions
        assert coffee.primary_date == date(2024, 3, 25)
        assert coffee.amount == Decimal("-3.50")
        assert coffee.fee is None
        assert coffee.category == "Food"
        assert transfer.secondary_date == date(2024, 3, 20)
        assert transfer.fee == Decimal("0.25")

    def test_generic_debit_credit(self, tmp_path: Path) -> None:
        path = tmp_path / "export.csv"
        path.write_text("Date,Details,Debit,Credit\n2024-03-01,Rent,500.00,\n2024-03-02,Salary,,2000.00\n")

        loaded = load_transactions(path, sheet_format=SheetFormat.GENERIC)

        assert [tx.amount for tx in loaded.transactions] == [Decimal("-500.00"), Decimal("2000.00")]

    def test_generic_without_amount_column(self, tmp_path: Path) -> None:
        path = tmp_path / "export.csv"
        path.write_text("Date,Details\n2024-03-01,Rent\n")
        with pytest.raises(ConfigurationError, match="date and amount"):
            load_transactions(path, sheet_format=SheetFormat.GENERIC)
