"""Data structures for Ledger Rec."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from ledgerrec.amounts import to_decimal


class Matching(str, Enum):
    """Which external date the correlator looks up in the ledger."""

    BY_BOOKING = "booking"
    BY_SPENDING = "spending"


@dataclass(frozen=True)
class ExternalTransaction:
    """Normalized transaction taken from a bank spreadsheet.

    Attributes:
        primary_date: Settlement/booking date reported by the bank
        secondary_date: Alternate date, e.g. the spending date found in the description
        value_date: Value date the bank reports next to the booking date, if any
        amount: Signed amount (negative = money leaving the account)
        fee: Fee the bank reports separately, if any
        description: Free-text description
        category: Bank-side transaction category
        counterparty_account_id: Account number of the other party
        counterparty_name: Name of the other party
        row: Row number in the source sheet (diagnostics only)
    """

    primary_date: date | None
    amount: Decimal
    secondary_date: date | None = None
    value_date: date | None = None
    fee: Decimal | None = None
    description: str | None = None
    category: str | None = None
    counterparty_account_id: str | None = None
    counterparty_name: str | None = None
    row: int | None = None

    def matching_date(self, matching: Matching) -> date | None:
        if matching == Matching.BY_BOOKING:
            return self.primary_date
        return self.secondary_date or self.primary_date

    @property
    def has_fee(self) -> bool:
        return self.fee is not None and self.fee != 0

    def description_or_category(self) -> str | None:
        return self.description or self.category

    def counterparty_desc(self) -> str:
        """Return ``"<account> - <name>"``, whichever part exists, or ``""``."""
        parts = [p for p in (self.counterparty_account_id, self.counterparty_name) if p]
        return " - ".join(parts)


@dataclass
class ExternalTransactionList:
    """External transactions with the range their matching dates span.

    Attributes:
        transactions: Transactions in sheet order
        min_date: Earliest matching date (None if no transaction has one)
        max_date: Latest matching date (None if no transaction has one)
    """

    transactions: list[ExternalTransaction]
    min_date: date | None = None
    max_date: date | None = None

    @classmethod
    def from_transactions(
        cls, transactions: list[ExternalTransaction], matching: Matching
    ) -> "ExternalTransactionList":
        dates = [d for d in (t.matching_date(matching) for t in transactions) if d is not None]
        if not dates:
            return cls(transactions=transactions)
        return cls(transactions=transactions, min_date=min(dates), max_date=max(dates))

    def __len__(self) -> int:
        return len(self.transactions)


@dataclass(frozen=True)
class Commodity:
    """Row of the ``commodities`` table.

    Attributes:
        guid: Commodity guid
        namespace: Commodity namespace (CURRENCY, NASDAQ, ...)
        mnemonic: Short code, e.g. ``EUR``
        fullname: Human-readable name
        fraction: Smallest fraction the commodity is displayed in (100 for cents)
    """

    guid: str
    namespace: str
    mnemonic: str
    fullname: str | None
    fraction: int


@dataclass(frozen=True)
class Account:
    """Row of the ``accounts`` table.

    Attributes:
        guid: Account guid
        name: Account name
        account_type: GnuCash account type (BANK, EXPENSE, ...)
        commodity_guid: Guid of the account's commodity
        commodity_scu: Smallest currency unit used for split quantities
        parent_guid: Guid of the parent account
        description: Optional account description
    """

    guid: str
    name: str
    account_type: str
    commodity_guid: str | None
    commodity_scu: int
    parent_guid: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Transaction:
    """Row of the ``transactions`` table."""

    guid: str
    currency_guid: str
    post_date: str | None
    enter_date: str | None
    description: str | None
    num: str = ""


@dataclass(frozen=True)
class Split:
    """Row of the ``splits`` table.

    ``value`` is denominated in the transaction currency, ``quantity`` in the
    account's own commodity.
    """

    guid: str
    tx_guid: str
    account_guid: str
    memo: str
    action: str
    value_num: int
    value_denom: int
    quantity_num: int
    quantity_denom: int
    reconcile_state: str = "n"

    @property
    def value(self) -> Decimal:
        return to_decimal(self.value_num, self.value_denom)

    @property
    def quantity(self) -> Decimal:
        return to_decimal(self.quantity_num, self.quantity_denom)


@dataclass
class LedgerEntry:
    """A split of the reconciled account together with its transaction.

    Attributes:
        split: The split posted to the account
        transaction: Parent transaction
        posting_date: Date part of the transaction's post date
        amount: Split quantity in the account's commodity
        position: Slot of this entry in its TransactionIndex
        matched: External transaction paired with this entry (set at most once)
    """

    split: Split
    transaction: Transaction
    posting_date: date
    amount: Decimal
    position: int = -1
    matched: ExternalTransaction | None = None

    @property
    def is_matched(self) -> bool:
        return self.matched is not None


@dataclass(frozen=True)
class Pairing:
    """An external transaction paired with a ledger entry.

    Attributes:
        external: The external transaction
        entry: The ledger entry it was paired with
        delta: Day offset (ring) at which the pairing was found
    """

    external: ExternalTransaction
    entry: LedgerEntry
    delta: int


@dataclass
class CorrelationResult:
    """Result of a correlation run.

    Attributes:
        pairings: Matched pairs in the order they were found
        unmatched_external: External transactions without a ledger counterpart
        unmatched_ledger: Ledger entries within [min_date, max_date] nobody claimed
        min_date: Earliest external matching date
        max_date: Latest external matching date
    """

    pairings: list[Pairing] = field(default_factory=list)
    unmatched_external: list[ExternalTransaction] = field(default_factory=list)
    unmatched_ledger: list[LedgerEntry] = field(default_factory=list)
    min_date: date | None = None
    max_date: date | None = None

    @property
    def matched_count(self) -> int:
        return len(self.pairings)


class FixupDecision(Enum):
    """Operator answer for one unmatched external transaction."""

    ACCEPT = "accept"
    SKIP = "skip"
    ACCEPT_ALL = "accept_all"
    ABORT = "abort"


class FixupStatus(Enum):
    """What happened to one unmatched external transaction during fix-up."""

    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_REACHED = "not_reached"


@dataclass
class FixupOutcome:
    """Outcome of the fix-up step for a single external transaction.

    Attributes:
        external: The external transaction
        status: Created, skipped, failed or not reached (after an abort)
        tx_guid: Guid of the created ledger transaction
        error: Why the transaction could not be created
    """

    external: ExternalTransaction
    status: FixupStatus
    tx_guid: str | None = None
    error: str | None = None


@dataclass
class FixupReport:
    """All fix-up outcomes, in the order the transactions were offered."""

    outcomes: list[FixupOutcome] = field(default_factory=list)
    aborted: bool = False

    def _with_status(self, status: FixupStatus) -> list[FixupOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def created(self) -> list[FixupOutcome]:
        return self._with_status(FixupStatus.CREATED)

    @property
    def skipped(self) -> list[FixupOutcome]:
        return self._with_status(FixupStatus.SKIPPED)

    @property
    def failed(self) -> list[FixupOutcome]:
        return self._with_status(FixupStatus.FAILED)

    @property
    def not_reached(self) -> list[FixupOutcome]:
        return self._with_status(FixupStatus.NOT_REACHED)
