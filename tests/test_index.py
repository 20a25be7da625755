"""Tests for the ledger transaction index."""

from datetime import date
from decimal import Decimal

from ledgerrec.index import TransactionIndex
from ledgerrec.models import Account
from tests.factories import LedgerFactory, TestDataFactory


class TestIndexLoading:
    """Building the index from the book."""

    def test_entries_grouped_by_date(self, march_index: TransactionIndex) -> None:
        assert len(march_index) == 3
        assert [e.posting_date for e in march_index] == [date(2024, 3, 1), date(2024, 3, 5), date(2024, 3, 10)]
        assert [e.amount for e in march_index.candidates(date(2024, 3, 5))] == [Decimal("-20.00")]
        assert march_index.candidates(date(2024, 3, 2)) == []
        assert march_index.first_date == date(2024, 3, 1)
        assert march_index.last_date == date(2024, 3, 10)

    def test_positions_match_slots(self, march_index: TransactionIndex) -> None:
        assert [e.position for e in march_index] == [0, 1, 2]
        assert all(not e.is_matched for e in march_index)

    def test_same_day_entries_ordered_by_split_guid(self, factory: LedgerFactory, bank_account: Account) -> None:
        splits = [factory.transaction(bank_account, "-7", date(2024, 3, 1)) for _ in range(4)]
        index = TransactionIndex.load(factory.ledger, bank_account.guid)
        assert [e.split.guid for e in index] == sorted(s.guid for s in splits)

    def test_amount_uses_quantity(self, factory: LedgerFactory) -> None:
        fine = factory.account("Fine grained", commodity_scu=1000)
        factory.transaction(fine, "-1.234", date(2024, 3, 1))
        index = TransactionIndex.load(factory.ledger, fine.guid)
        assert index.entries[0].amount == Decimal("-1.234")

    def test_only_selected_account(self, factory: LedgerFactory, bank_account, expense_account) -> None:
        factory.transaction(bank_account, "-5", date(2024, 3, 1), counter_account=expense_account)
        index = TransactionIndex.load(factory.ledger, expense_account.guid)
        assert [e.amount for e in index] == [Decimal("5")]

    def test_malformed_rows_are_rejected_not_fatal(self, factory: LedgerFactory, bank_account) -> None:
        factory.transaction(bank_account, "-1", date(2024, 3, 1))
        factory.transaction(bank_account, "-2", "yesterday")
        factory.transaction(bank_account, "-3", None)
        factory.transaction(bank_account, "-4", date(2024, 3, 2))
        factory.ledger.conn.execute("UPDATE splits SET quantity_denom = 0 WHERE quantity_num = -400")
        factory.ledger.conn.commit()

        index = TransactionIndex.load(factory.ledger, bank_account.guid)

        assert [e.amount for e in index] == [Decimal("-1")]
        reasons = sorted(r.reason for r in index.rejected)
        assert len(reasons) == 3
        assert any("Malformed ledger date" in r for r in reasons)
        assert any("no post date" in r for r in reasons)
        assert any("Zero denominator" in r for r in reasons)

    def test_date_range_window(self, factory: LedgerFactory, bank_account) -> None:
        for day in (1, 10, 20):
            factory.transaction(bank_account, "-1", date(2024, 3, day))
        index = TransactionIndex.load(
            factory.ledger, bank_account.guid, date_range=(date(2024, 3, 5), date(2024, 3, 15))
        )
        assert [e.posting_date for e in index] == [date(2024, 3, 10)]


class TestMarking:
    """Matched flags are set at most once."""

    def test_mark_matched_sets_once(self, march_index: TransactionIndex) -> None:
        first = TestDataFactory.external(date(2024, 3, 1), "-10.00")
        second = TestDataFactory.external(date(2024, 3, 1), "-10.00", description="again")

        assert march_index.mark_matched(0, first)
        assert not march_index.mark_matched(0, second)
        assert march_index.entries[0].matched is first
        assert march_index.matched_count == 1

    def test_unmatched_within_range(self, march_index: TransactionIndex) -> None:
        march_index.mark_matched(1, TestDataFactory.external(date(2024, 3, 5), "-20.00"))

        within = march_index.unmatched_within(date(2024, 3, 1), date(2024, 3, 9))
        assert [e.posting_date for e in within] == [date(2024, 3, 1)]

        everything = march_index.unmatched_within(None, None)
        assert [e.posting_date for e in everything] == [date(2024, 3, 1), date(2024, 3, 10)]

    def test_unmatched_within_inclusive_bounds(self, march_index: TransactionIndex) -> None:
        within = march_index.unmatched_within(date(2024, 3, 5), date(2024, 3, 10))
        assert [e.posting_date for e in within] == [date(2024, 3, 5), date(2024, 3, 10)]
