"""Access to a GnuCash-compatible SQLite book.

Provides the queries the reconciliation needs (accounts, commodities, splits
joined to their transactions) and the statements that append new balanced
transactions.
"""

import os
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path

from ledgerrec.amounts import denominate, format_ledger_datetime
from ledgerrec.errors import ConfigurationError, DataIntegrityError
from ledgerrec.logging_setup import get_logger
from ledgerrec.models import Account, Commodity, Split, Transaction

logger = get_logger(__name__)

DEFAULT_INDEX_LIMIT = 10_000

# Both stored date layouts ("YYYYMMDDHHMMSS" and "YYYY-MM-DD HH:MM:SS")
# collapse to the compact one, so range filters work on either.
_POST_DATE_KEY = "replace(replace(replace(t.post_date, '-', ''), ' ', ''), ':', '')"

_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS commodities (
        guid text(32) PRIMARY KEY NOT NULL,
        namespace text(2048) NOT NULL,
        mnemonic text(2048) NOT NULL,
        fullname text(2048),
        cusip text(2048),
        fraction integer NOT NULL,
        quote_flag integer NOT NULL,
        quote_source text(2048),
        quote_tz text(2048)
    )""",
    """CREATE TABLE IF NOT EXISTS accounts (
        guid text(32) PRIMARY KEY NOT NULL,
        name text(2048) NOT NULL,
        account_type text(2048) NOT NULL,
        commodity_guid text(32),
        commodity_scu integer NOT NULL,
        non_std_scu integer NOT NULL,
        parent_guid text(32),
        code text(2048),
        description text(2048),
        hidden integer,
        placeholder integer
    )""",
    """CREATE TABLE IF NOT EXISTS transactions (
        guid text(32) PRIMARY KEY NOT NULL,
        currency_guid text(32) NOT NULL,
        num text(2048) NOT NULL,
        post_date text(19),
        enter_date text(19),
        description text(2048)
    )""",
    """CREATE TABLE IF NOT EXISTS splits (
        guid text(32) PRIMARY KEY NOT NULL,
        tx_guid text(32) NOT NULL,
        account_guid text(32) NOT NULL,
        memo text(2048) NOT NULL,
        action text(2048) NOT NULL,
        reconcile_state text(1) NOT NULL,
        reconcile_date text(19),
        value_num bigint NOT NULL,
        value_denom bigint NOT NULL,
        quantity_num bigint NOT NULL,
        quantity_denom bigint NOT NULL,
        lot_guid text(32)
    )""",
)

_SPLIT_COLUMNS = """
    s.guid AS s_guid, s.tx_guid AS s_tx_guid, s.account_guid AS s_account_guid,
    s.memo AS s_memo, s.action AS s_action, s.reconcile_state AS s_reconcile_state,
    s.value_num AS s_value_num, s.value_denom AS s_value_denom,
    s.quantity_num AS s_quantity_num, s.quantity_denom AS s_quantity_denom,
    t.guid AS t_guid, t.currency_guid AS t_currency_guid, t.num AS t_num,
    t.post_date AS t_post_date, t.enter_date AS t_enter_date,
    t.description AS t_description
"""


def new_guid() -> str:
    """Return a fresh 32-character lowercase hex guid."""
    return uuid.uuid4().hex


def resolve_database_path(override: str | Path | None = None) -> Path:
    """Find the book to open.

    Args:
        override: Explicit path or ``sqlite:///`` URL; falls back to ``DATABASE_URL``

    Returns:
        Path of the SQLite file

    Raises:
        ConfigurationError: If neither an override nor ``DATABASE_URL`` is set
    """
    url = str(override) if override else os.getenv("DATABASE_URL")
    if not url:
        raise ConfigurationError("DATABASE_URL is not set; pass --database or add it to .env")
    for prefix in ("sqlite:///", "sqlite://", "file:"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    return Path(url)


def _like(value: str) -> str:
    return f"%{value}%"


@dataclass
class AccountSelector:
    """Substring filters identifying an account.

    Attributes:
        name: Part of the account name
        parent_guid: Part of the parent account guid
        guid: Part of the account guid
        account_type: Part of the account type
    """

    name: str | None = None
    parent_guid: str | None = None
    guid: str | None = None
    account_type: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any((self.name, self.parent_guid, self.guid, self.account_type))

    def __str__(self) -> str:
        parts = [
            f"{label}={value!r}"
            for label, value in (
                ("name", self.name),
                ("parent", self.parent_guid),
                ("guid", self.guid),
                ("type", self.account_type),
            )
            if value
        ]
        return ", ".join(parts) or "<no filter>"


@dataclass
class CommodityQuery:
    """Filters for listing commodities."""

    limit: int = 10
    name: str | None = None
    commodity_type: str | None = None


@dataclass
class TransactionQuery:
    """Filters for listing splits joined with their transactions.

    Attributes:
        limit: Maximum number of rows
        txid: Part of the transaction guid
        account: Part of the account guid
        description: Part of the transaction description
        memo: Part of the split memo
        before: Only transactions posted on or before this day
        after: Only transactions posted on or after this day
    """

    limit: int = 10
    txid: str | None = None
    account: str | None = None
    description: str | None = None
    memo: str | None = None
    before: date | None = None
    after: date | None = None


@dataclass
class NewSplit:
    """Split to be written as part of a new transaction.

    Attributes:
        account: Account the split is posted to
        memo: Split memo
        amount: Amount in the transaction currency
    """

    account: Account
    memo: str
    amount: Decimal


def _day_key(day: date, end_of_day: bool = False) -> str:
    return day.strftime("%Y%m%d") + ("235959" if end_of_day else "000000")


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        guid=row["guid"],
        name=row["name"],
        account_type=row["account_type"],
        commodity_guid=row["commodity_guid"],
        commodity_scu=row["commodity_scu"],
        parent_guid=row["parent_guid"],
        description=row["description"],
    )


def _row_to_commodity(row: sqlite3.Row) -> Commodity:
    return Commodity(
        guid=row["guid"],
        namespace=row["namespace"],
        mnemonic=row["mnemonic"],
        fullname=row["fullname"],
        fraction=row["fraction"],
    )


def _row_to_pair(row: sqlite3.Row) -> tuple[Split, Transaction]:
    split = Split(
        guid=row["s_guid"],
        tx_guid=row["s_tx_guid"],
        account_guid=row["s_account_guid"],
        memo=row["s_memo"],
        action=row["s_action"],
        value_num=row["s_value_num"],
        value_denom=row["s_value_denom"],
        quantity_num=row["s_quantity_num"],
        quantity_denom=row["s_quantity_denom"],
        reconcile_state=row["s_reconcile_state"],
    )
    transaction = Transaction(
        guid=row["t_guid"],
        currency_guid=row["t_currency_guid"],
        num=row["t_num"],
        post_date=row["t_post_date"],
        enter_date=row["t_enter_date"],
        description=row["t_description"],
    )
    return split, transaction


class LedgerDatabase:
    """SQLite connection to a GnuCash book.

    Usable as a context manager; the connection is closed on exit.
    """

    def __init__(self, db_path: str | Path) -> None:
        """Open the book.

        Args:
            db_path: Path to the SQLite file (``":memory:"`` for a scratch book)
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self.conn: sqlite3.Connection = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row

    def create_schema(self) -> None:
        """Create the book tables this tool reads and writes, if missing."""
        with self.conn:
            for statement in _SCHEMA:
                self.conn.execute(statement)

    def _execute_query(self, query: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        cursor = self.conn.execute(query, tuple(params))
        return cursor.fetchall()

    # -- accounts -----------------------------------------------------------

    def list_accounts(self, selector: AccountSelector, limit: int | None = 10) -> list[Account]:
        """List accounts matching every given filter.

        Args:
            selector: Substring filters
            limit: Maximum number of accounts (None for all)

        Returns:
            Matching accounts ordered by name
        """
        clauses: list[str] = []
        params: list[object] = []
        for column, value in (
            ("name", selector.name),
            ("parent_guid", selector.parent_guid),
            ("guid", selector.guid),
            ("account_type", selector.account_type),
        ):
            if value:
                clauses.append(f"{column} LIKE ?")
                params.append(_like(value))

        query = "SELECT * FROM accounts"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY name, guid"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return [_row_to_account(row) for row in self._execute_query(query, params)]

    def get_account(self, selector: AccountSelector) -> Account:
        """Resolve a selector to exactly one account.

        Raises:
            ConfigurationError: If the selector is empty or matches zero or
                several accounts
        """
        if selector.is_empty:
            raise ConfigurationError("No account filter given")
        accounts = self.list_accounts(selector, limit=None)
        if len(accounts) != 1:
            raise ConfigurationError(
                f"Account filter ({selector}) matches {len(accounts)} accounts, expected exactly one"
            )
        return accounts[0]

    def find_account(self, selector: AccountSelector) -> Account | None:
        """Like ``get_account`` but an empty selector means "not configured"."""
        if selector.is_empty:
            return None
        return self.get_account(selector)

    def insert_account(
        self,
        name: str,
        account_type: str,
        commodity: Commodity | None,
        commodity_scu: int | None = None,
        parent_guid: str | None = None,
        guid: str | None = None,
    ) -> Account:
        """Add an account; the SCU defaults to the commodity fraction."""
        scu = commodity_scu if commodity_scu is not None else (commodity.fraction if commodity else 100)
        account = Account(
            guid=guid or new_guid(),
            name=name,
            account_type=account_type,
            commodity_guid=commodity.guid if commodity else None,
            commodity_scu=scu,
            parent_guid=parent_guid,
            description="",
        )
        with self.conn:
            self.conn.execute(
                """INSERT INTO accounts (guid, name, account_type, commodity_guid, commodity_scu,
                                         non_std_scu, parent_guid, code, description, hidden, placeholder)
                   VALUES (?, ?, ?, ?, ?, ?, ?, '', '', 0, 0)""",
                (
                    account.guid,
                    account.name,
                    account.account_type,
                    account.commodity_guid,
                    account.commodity_scu,
                    int(commodity is not None and scu != commodity.fraction),
                    account.parent_guid,
                ),
            )
        return account

    # -- commodities --------------------------------------------------------

    def list_commodities(self, query: CommodityQuery) -> list[Commodity]:
        clauses: list[str] = []
        params: list[object] = []
        if query.name:
            clauses.append("mnemonic LIKE ?")
            params.append(_like(query.name))
        if query.commodity_type:
            clauses.append("namespace LIKE ?")
            params.append(_like(query.commodity_type))

        sql = "SELECT * FROM commodities"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY namespace, mnemonic LIMIT ?"
        params.append(query.limit)
        return [_row_to_commodity(row) for row in self._execute_query(sql, params)]

    def get_commodity(self, guid: str | None) -> Commodity | None:
        if guid is None:
            return None
        rows = self._execute_query("SELECT * FROM commodities WHERE guid = ? LIMIT 1", (guid,))
        return _row_to_commodity(rows[0]) if rows else None

    def insert_commodity(
        self,
        mnemonic: str,
        fraction: int = 100,
        namespace: str = "CURRENCY",
        fullname: str | None = None,
        guid: str | None = None,
    ) -> Commodity:
        commodity = Commodity(
            guid=guid or new_guid(),
            namespace=namespace,
            mnemonic=mnemonic,
            fullname=fullname,
            fraction=fraction,
        )
        with self.conn:
            self.conn.execute(
                """INSERT INTO commodities (guid, namespace, mnemonic, fullname, cusip, fraction,
                                            quote_flag, quote_source, quote_tz)
                   VALUES (?, ?, ?, ?, '', ?, 0, NULL, NULL)""",
                (commodity.guid, namespace, mnemonic, fullname, fraction),
            )
        return commodity

    # -- splits and transactions --------------------------------------------

    def list_splits(self, query: TransactionQuery) -> list[tuple[Split, Transaction]]:
        """List splits joined with their transactions.

        Args:
            query: Substring and date filters

        Returns:
            (Split, Transaction) pairs ordered by post date, then split guid
        """
        clauses: list[str] = []
        params: list[object] = []
        for column, value in (
            ("s.tx_guid", query.txid),
            ("s.account_guid", query.account),
            ("s.memo", query.memo),
            ("t.description", query.description),
        ):
            if value:
                clauses.append(f"{column} LIKE ?")
                params.append(_like(value))
        if query.after is not None:
            clauses.append(f"{_POST_DATE_KEY} >= ?")
            params.append(_day_key(query.after))
        if query.before is not None:
            clauses.append(f"{_POST_DATE_KEY} <= ?")
            params.append(_day_key(query.before, end_of_day=True))

        sql = f"SELECT {_SPLIT_COLUMNS} FROM splits s JOIN transactions t ON s.tx_guid = t.guid"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {_POST_DATE_KEY}, s.guid LIMIT ?"
        params.append(query.limit)
        return [_row_to_pair(row) for row in self._execute_query(sql, params)]

    def load_splits_and_transactions(
        self,
        account_guid: str,
        limit: int = DEFAULT_INDEX_LIMIT,
        date_range: tuple[date, date] | None = None,
    ) -> list[tuple[Split, Transaction]]:
        """Bulk-load every split of one account with its transaction.

        Rows past ``limit`` are silently dropped. Transactions without a
        post date are always returned so the caller can report them.

        Args:
            account_guid: Exact guid of the account
            limit: Row cap
            date_range: Optional inclusive (first day, last day) window

        Returns:
            (Split, Transaction) pairs ordered by post date, then split guid
        """
        sql = f"SELECT {_SPLIT_COLUMNS} FROM splits s JOIN transactions t ON s.tx_guid = t.guid WHERE s.account_guid = ?"
        params: list[object] = [account_guid]
        if date_range is not None:
            first, last = date_range
            sql += f" AND (t.post_date IS NULL OR t.post_date = '' OR {_POST_DATE_KEY} BETWEEN ? AND ?)"
            params.extend([_day_key(first), _day_key(last, end_of_day=True)])
        sql += f" ORDER BY {_POST_DATE_KEY}, s.guid LIMIT ?"
        params.append(limit)
        rows = self._execute_query(sql, params)
        if len(rows) == limit:
            logger.info("Split query for %s hit the limit of %d rows", account_guid, limit)
        return [_row_to_pair(row) for row in rows]

    def move_splits(self, splits: list[Split], target: Account) -> int:
        """Re-point splits to another account.

        Returns:
            Number of splits moved

        Raises:
            DataIntegrityError: If a split no longer exists; nothing is moved then
        """
        with self.conn:
            for split in splits:
                cursor = self.conn.execute(
                    "UPDATE splits SET account_guid = ? WHERE guid = ?", (target.guid, split.guid)
                )
                if cursor.rowcount != 1:
                    raise DataIntegrityError(f"Split {split.guid} not found")
        return len(splits)

    def _insert_transaction(
        self,
        guid: str,
        currency_guid: str,
        post_date: datetime | None,
        enter_date: datetime,
        description: str,
    ) -> None:
        cursor = self.conn.execute(
            """INSERT INTO transactions (guid, currency_guid, num, post_date, enter_date, description)
               VALUES (?, ?, '', ?, ?, ?)""",
            (
                guid,
                currency_guid,
                format_ledger_datetime(post_date) if post_date else None,
                format_ledger_datetime(enter_date),
                description,
            ),
        )
        if cursor.rowcount != 1:
            raise DataIntegrityError(f"Transaction {guid} was not inserted")

    def _insert_split(
        self, tx_guid: str, account: Account, memo: str, commodity: Commodity, amount: Decimal
    ) -> str:
        split_guid = new_guid()
        value = denominate(amount, commodity.fraction)
        quantity = denominate(amount, account.commodity_scu)
        cursor = self.conn.execute(
            """INSERT INTO splits (guid, tx_guid, account_guid, memo, action, reconcile_state,
                                   reconcile_date, value_num, value_denom, quantity_num,
                                   quantity_denom, lot_guid)
               VALUES (?, ?, ?, ?, '', 'n', '', ?, ?, ?, ?, '')""",
            (
                split_guid,
                tx_guid,
                account.guid,
                memo,
                value.num,
                value.denom,
                quantity.num,
                quantity.denom,
            ),
        )
        if cursor.rowcount != 1:
            raise DataIntegrityError(f"Split for transaction {tx_guid} was not inserted")
        return split_guid

    def insert_transaction(
        self,
        guid: str,
        currency_guid: str,
        post_date: datetime | None,
        enter_date: datetime,
        description: str,
    ) -> None:
        with self.conn:
            self._insert_transaction(guid, currency_guid, post_date, enter_date, description)

    def insert_split(
        self, tx_guid: str, account: Account, memo: str, commodity: Commodity, amount: Decimal
    ) -> str:
        """Insert one split.

        ``value`` is ``round(amount * commodity.fraction)`` over the fraction,
        ``quantity`` is ``round(amount * account.commodity_scu)`` over the SCU.

        Returns:
            Guid of the new split
        """
        with self.conn:
            return self._insert_split(tx_guid, account, memo, commodity, amount)

    def append_transaction(
        self,
        currency: Commodity,
        post_date: datetime | None,
        enter_date: datetime,
        description: str,
        splits: list[NewSplit],
    ) -> str:
        """Write a transaction and all of its splits as one unit.

        Either every row is written or, if any insert fails, none is.

        Returns:
            Guid of the new transaction
        """
        tx_guid = new_guid()
        with self.conn:
            self._insert_transaction(tx_guid, currency.guid, post_date, enter_date, description)
            for split in splits:
                self._insert_split(tx_guid, split.account, split.memo, currency, split.amount)
        logger.debug("Appended transaction %s with %d splits", tx_guid, len(splits))
        return tx_guid

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = [
    "DEFAULT_INDEX_LIMIT",
    "AccountSelector",
    "CommodityQuery",
    "TransactionQuery",
    "NewSplit",
    "LedgerDatabase",
    "new_guid",
    "resolve_database_path",
]
