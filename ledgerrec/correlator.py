"""Correlation engine pairing external transactions with ledger entries.

Ring-expansion matching: every still-unpaired external transaction looks for
a ledger entry with exactly the same amount posted ``delta`` days before its
matching date, for ``delta = 0, +1, -1, +2, -2, ...`` up to the maximum
offset, so a bank booking three days after its ledger entry pairs at ``+3``.
The first unmatched entry of equal amount on that date wins (first-fit, no
backtracking), and each ledger entry is claimed at most once.
"""

from collections.abc import Iterator, Sequence
from datetime import date

from ledgerrec.amounts import shift_days
from ledgerrec.index import TransactionIndex
from ledgerrec.logging_setup import get_logger
from ledgerrec.models import CorrelationResult, ExternalTransaction, Matching, Pairing

logger = get_logger(__name__)

MAX_DATE_OFFSET = 10


def ring_offsets(max_offset: int = MAX_DATE_OFFSET) -> Iterator[int]:
    """Yield ``0, +1, -1, +2, -2, ...`` up to ``max_offset`` in absolute value."""
    yield 0
    for distance in range(1, max_offset + 1):
        yield distance
        yield -distance


def _find_candidate(index: TransactionIndex, external: ExternalTransaction, day: date) -> int | None:
    """Return the position of the first free entry on ``day`` with an equal amount."""
    for entry in index.candidates(day):
        if entry.matched is None and entry.amount == external.amount:
            return entry.position
    return None


def _match_ring(
    index: TransactionIndex,
    working: list[tuple[ExternalTransaction, date | None]],
    delta: int,
    pairings: list[Pairing],
) -> list[tuple[ExternalTransaction, date | None]]:
    """Try every working-set member at one ring; return who is still unpaired."""
    remaining = []
    for external, matching_date in working:
        if matching_date is None:
            # No date, nothing to look up
            remaining.append((external, matching_date))
            continue

        position = _find_candidate(index, external, shift_days(matching_date, -delta))
        if position is not None and index.mark_matched(position, external):
            entry = index.entries[position]
            pairings.append(Pairing(external=external, entry=entry, delta=delta))
            logger.debug(
                "Matched %s %s with split %s at delta %+d",
                matching_date,
                external.amount,
                entry.split.guid,
                delta,
            )
        else:
            remaining.append((external, matching_date))
    return remaining


def correlate(
    transactions: Sequence[ExternalTransaction],
    index: TransactionIndex,
    matching: Matching = Matching.BY_SPENDING,
    max_offset: int = MAX_DATE_OFFSET,
    date_range: tuple[date | None, date | None] | None = None,
) -> CorrelationResult:
    """Pair external transactions with ledger entries.

    Entries already matched before the call are never re-paired. The
    unmatched-ledger report only covers ``[min_date, max_date]`` of the
    external matching dates, while the ring search may reach up to
    ``max_offset`` days outside of it.

    Args:
        transactions: External transactions, in source order
        index: Ledger entries of the reconciled account (mutated in place)
        matching: Whether to match on the booking or the spending date
        max_offset: Largest absolute day offset to try
        date_range: Report window; derived from the transactions when None

    Returns:
        CorrelationResult with pairings and both unmatched lists
    """
    if date_range is None:
        dates = [d for d in (t.matching_date(matching) for t in transactions) if d is not None]
        date_range = (min(dates), max(dates)) if dates else (None, None)
    min_date, max_date = date_range

    working = [(t, t.matching_date(matching)) for t in transactions]
    pairings: list[Pairing] = []

    for delta in ring_offsets(max_offset):
        if not working:
            break
        before = len(working)
        working = _match_ring(index, working, delta, pairings)
        if len(working) != before:
            logger.debug("Ring %+d paired %d transactions", delta, before - len(working))

    result = CorrelationResult(
        pairings=pairings,
        unmatched_external=[external for external, _ in working],
        unmatched_ledger=index.unmatched_within(min_date, max_date),
        min_date=min_date,
        max_date=max_date,
    )
    logger.info(
        "Correlated %d external transactions: %d matched, %d unmatched external, %d unmatched ledger",
        len(transactions),
        result.matched_count,
        len(result.unmatched_external),
        len(result.unmatched_ledger),
    )
    return result


__all__ = ["MAX_DATE_OFFSET", "ring_offsets", "correlate"]
