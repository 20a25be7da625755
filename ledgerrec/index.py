"""In-memory index of one account's ledger entries, grouped by posting date.

Entries live in a single list and are addressed by position. The correlator
flips their ``matched`` field through ``mark_matched``, which only ever sets
it once.
"""

import bisect
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date

from ledgerrec.amounts import parse_ledger_datetime
from ledgerrec.errors import DataIntegrityError
from ledgerrec.ledger import DEFAULT_INDEX_LIMIT, LedgerDatabase
from ledgerrec.logging_setup import get_logger
from ledgerrec.models import ExternalTransaction, LedgerEntry, Split, Transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class RejectedRow:
    """Ledger row that could not be indexed.

    Attributes:
        split: The offending split
        transaction: Its transaction
        reason: Message of the data-integrity error
    """

    split: Split
    transaction: Transaction
    reason: str


def build_entry(split: Split, transaction: Transaction) -> LedgerEntry:
    """Turn a (split, transaction) row into an unmatched ledger entry.

    Raises:
        DataIntegrityError: If the post date is missing or malformed, or the
            quantity has a zero denominator
    """
    if not transaction.post_date:
        raise DataIntegrityError(f"Transaction {transaction.guid} has no post date")
    posted = parse_ledger_datetime(transaction.post_date)
    return LedgerEntry(
        split=split,
        transaction=transaction,
        posting_date=posted.date(),
        amount=split.quantity,
    )


class TransactionIndex:
    """Ledger entries of one account, ordered by posting date.

    Within a single date entries are ordered by split guid, so first-fit
    matching does not depend on storage order.
    """

    def __init__(self) -> None:
        self.entries: list[LedgerEntry] = []
        self.rejected: list[RejectedRow] = []
        self._by_date: dict[date, list[int]] = {}
        self._dates: list[date] = []

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[Split, Transaction]]) -> "TransactionIndex":
        """Build an index from (split, transaction) rows.

        Rows that fail to convert are collected in ``rejected`` and logged.
        """
        index = cls()
        accepted: list[LedgerEntry] = []
        for split, transaction in rows:
            try:
                accepted.append(build_entry(split, transaction))
            except DataIntegrityError as exc:
                logger.warning("Skipping split %s: %s", split.guid, exc)
                index.rejected.append(RejectedRow(split, transaction, str(exc)))

        accepted.sort(key=lambda e: (e.posting_date, e.split.guid))
        for entry in accepted:
            index._add(entry)
        return index

    @classmethod
    def load(
        cls,
        ledger: LedgerDatabase,
        account_guid: str,
        date_range: tuple[date, date] | None = None,
        limit: int = DEFAULT_INDEX_LIMIT,
    ) -> "TransactionIndex":
        """Load all entries of an account with one joined query.

        Args:
            ledger: Open book
            account_guid: Account to reconcile
            date_range: Optional inclusive posting-date window
            limit: Row cap; extra rows are silently dropped

        Returns:
            Populated TransactionIndex
        """
        rows = ledger.load_splits_and_transactions(account_guid, limit=limit, date_range=date_range)
        index = cls.from_rows(rows)
        logger.info(
            "Indexed %d ledger entries over %d dates (%d rejected)",
            len(index.entries),
            len(index._dates),
            len(index.rejected),
        )
        return index

    def _add(self, entry: LedgerEntry) -> None:
        entry.position = len(self.entries)
        self.entries.append(entry)
        positions = self._by_date.get(entry.posting_date)
        if positions is None:
            positions = self._by_date[entry.posting_date] = []
            bisect.insort(self._dates, entry.posting_date)
        positions.append(entry.position)

    def candidates(self, day: date) -> list[LedgerEntry]:
        """Return every entry posted on ``day``, matched or not, in index order."""
        return [self.entries[p] for p in self._by_date.get(day, [])]

    def mark_matched(self, position: int, external: ExternalTransaction) -> bool:
        """Pair the entry at ``position`` with an external transaction.

        Returns:
            True if the entry was free and is now matched, False if it was
            already matched (the existing pairing is kept)
        """
        entry = self.entries[position]
        if entry.matched is not None:
            return False
        entry.matched = external
        return True

    def unmatched_within(self, min_date: date | None, max_date: date | None) -> list[LedgerEntry]:
        """List unmatched entries posted within ``[min_date, max_date]``.

        If either bound is missing, every unmatched entry is returned.
        """
        if min_date is None or max_date is None:
            dates = self._dates
        else:
            lo = bisect.bisect_left(self._dates, min_date)
            hi = bisect.bisect_right(self._dates, max_date)
            dates = self._dates[lo:hi]
        return [
            self.entries[p]
            for day in dates
            for p in self._by_date[day]
            if self.entries[p].matched is None
        ]

    @property
    def matched_count(self) -> int:
        return sum(1 for e in self.entries if e.matched is not None)

    @property
    def first_date(self) -> date | None:
        return self._dates[0] if self._dates else None

    @property
    def last_date(self) -> date | None:
        return self._dates[-1] if self._dates else None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries)


__all__ = ["RejectedRow", "TransactionIndex", "build_entry"]
