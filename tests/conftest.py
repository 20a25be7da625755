"""Pytest configuration and fixtures for Ledger Rec tests."""

import sys
from collections.abc import Iterator
from datetime import date
from pathlib import Path

import pytest

from ledgerrec import logging_setup
from ledgerrec.index import TransactionIndex
from ledgerrec.ledger import LedgerDatabase
from ledgerrec.models import Account
from tests.factories import LedgerFactory


@pytest.fixture(autouse=True)
def _detach_log_stream() -> Iterator[None]:
    """Point the package log handler back at stderr after CliRunner closes its stream."""
    yield
    if logging_setup._HANDLER is not None:
        logging_setup._HANDLER.stream = sys.stderr


@pytest.fixture
def book_path(tmp_path: Path) -> Path:
    """Return the path of an empty book with the schema created."""
    path = tmp_path / "book.gnucash"
    with LedgerDatabase(path) as ledger:
        ledger.create_schema()
    return path


@pytest.fixture
def ledger(book_path: Path) -> Iterator[LedgerDatabase]:
    """Provide an open book, closed after the test."""
    db = LedgerDatabase(book_path)
    yield db
    db.close()


@pytest.fixture
def factory(ledger: LedgerDatabase) -> LedgerFactory:
    return LedgerFactory(ledger)


@pytest.fixture
def bank_account(factory: LedgerFactory) -> Account:
    return factory.account("Checking", "BANK")


@pytest.fixture
def expense_account(factory: LedgerFactory) -> Account:
    return factory.account("Groceries", "EXPENSE")


@pytest.fixture
def fee_account(factory: LedgerFactory) -> Account:
    return factory.account("Bank Fees", "EXPENSE")


@pytest.fixture
def march_index(factory: LedgerFactory, bank_account: Account) -> TransactionIndex:
    """Index with three March 2024 entries: -10 on the 1st, -20 on the 5th, +100 on the 10th."""
    factory.transaction(bank_account, "-10.00", date(2024, 3, 1), "Bakery")
    factory.transaction(bank_account, "-20.00", date(2024, 3, 5), "Pharmacy")
    factory.transaction(bank_account, "100.00", date(2024, 3, 10), "Salary")
    return TransactionIndex.load(factory.ledger, bank_account.guid)
