"""Property-based tests for the correlator.

Uses hypothesis to generate ledgers and bank exports and verify invariants.
"""

from datetime import date, timedelta
from decimal import Decimal

from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from ledgerrec.correlator import correlate
from ledgerrec.fixup import build_splits
from ledgerrec.index import TransactionIndex
from ledgerrec.models import Account, Commodity, Matching
from tests.factories import TestDataFactory

START = date(2024, 1, 1)

amounts = st.sampled_from(["-1.00", "-2.50", "-10.00", "10.00", "42.00"])
days = st.integers(min_value=0, max_value=40)


@composite
def draw_books(draw):
    """Generate ledger entries and external transactions over a small date window.

    Returns:
        Tuple of (ledger entries, external transactions)
    """
    entries = draw(
        st.lists(st.tuples(days, amounts), max_size=15).map(
            lambda pairs: [(START + timedelta(days=d), a) for d, a in pairs]
        )
    )
    externals = draw(
        st.lists(
            st.tuples(st.one_of(st.none(), days), amounts).map(
                lambda pair: TestDataFactory.external(
                    START + timedelta(days=pair[0]) if pair[0] is not None else None, pair[1]
                )
            ),
            max_size=15,
        )
    )
    return entries, externals


class TestCorrelatorProperties:
    """Invariants that hold for every input."""

    @given(draw_books())
    @settings(max_examples=75)
    def test_each_side_paired_at_most_once(self, books) -> None:
        entries, externals = books
        index = TransactionIndex.from_rows(TestDataFactory.ledger_rows(entries))

        result = correlate(externals, index)

        paired_entries = [p.entry.position for p in result.pairings]
        paired_externals = [id(p.external) for p in result.pairings]
        assert len(set(paired_entries)) == len(paired_entries)
        assert len(set(paired_externals)) == len(paired_externals)
        assert result.matched_count + len(result.unmatched_external) == len(externals)
        assert index.matched_count == result.matched_count

    @given(draw_books())
    @settings(max_examples=75)
    def test_pairs_have_equal_amounts_within_offset(self, books) -> None:
        entries, externals = books
        index = TransactionIndex.from_rows(TestDataFactory.ledger_rows(entries))

        result = correlate(externals, index, max_offset=5)

        for pairing in result.pairings:
            assert pairing.entry.amount == pairing.external.amount
            assert abs(pairing.delta) <= 5
            matching_date = pairing.external.matching_date(Matching.BY_SPENDING)
            assert pairing.entry.posting_date == matching_date - timedelta(days=pairing.delta)

    @given(draw_books())
    @settings(max_examples=50)
    def test_second_pass_is_a_no_op(self, books) -> None:
        entries, externals = books
        index = TransactionIndex.from_rows(TestDataFactory.ledger_rows(entries))
        correlate(externals, index)
        matched_before = [e.matched for e in index]

        again = correlate(externals, index)

        assert again.matched_count == 0
        assert [e.matched for e in index] == matched_before

    @given(draw_books())
    @settings(max_examples=50)
    def test_dateless_transactions_stay_unmatched(self, books) -> None:
        entries, externals = books
        index = TransactionIndex.from_rows(TestDataFactory.ledger_rows(entries))

        result = correlate(externals, index)

        dateless = [t for t in externals if t.primary_date is None]
        assert all(any(t is u for u in result.unmatched_external) for t in dateless)


class TestBalancedSplitsProperties:
    @given(
        st.decimals(min_value=Decimal("-100000"), max_value=Decimal("100000"), places=3),
        st.one_of(st.none(), st.decimals(min_value=Decimal("-50"), max_value=Decimal("50"), places=3)),
        st.sampled_from([1, 100, 1000]),
    )
    def test_splits_sum_to_zero(self, amount, fee, fraction) -> None:
        commodity = Commodity("c", "CURRENCY", "XXX", None, fraction)
        main = Account("a", "Main", "BANK", "c", fraction)
        other = Account("b", "Other", "EXPENSE", "c", fraction)
        fees = Account("f", "Fees", "EXPENSE", "c", fraction)
        tx = TestDataFactory.external(START, amount, fee=fee)

        splits = build_splits(tx, main, other, commodity, fees)

        assert sum(s.amount for s in splits) == 0
        assert len(splits) in (2, 3)
