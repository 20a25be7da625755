"""Create ledger transactions for external transactions the ledger is missing.

The driver walks the unmatched external transactions in order and asks a
``Confirmer`` what to do with each one. Accepted transactions are written as
balanced transactions: a split on the reconciled account, one on the
counterparty account and, for a fee, one on the fee account.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, time
from decimal import Decimal

from ledgerrec.amounts import quantize_to_fraction
from ledgerrec.errors import ConfigurationError, DataIntegrityError
from ledgerrec.ledger import LedgerDatabase, NewSplit
from ledgerrec.logging_setup import get_logger
from ledgerrec.models import (
    Account,
    Commodity,
    ExternalTransaction,
    FixupDecision,
    FixupOutcome,
    FixupReport,
    FixupStatus,
    Matching,
)

logger = get_logger(__name__)

Confirmer = Callable[[ExternalTransaction], FixupDecision]

# GnuCash stores posted dates at this neutral time of day
POST_TIME = time(10, 59, 0)


def check_currencies(
    account: Account, counterparty: Account, fee_account: Account | None = None
) -> None:
    """Make sure every account involved shares one commodity.

    Raises:
        ConfigurationError: On any commodity mismatch
    """
    for other in (counterparty, fee_account):
        if other is not None and other.commodity_guid != account.commodity_guid:
            raise ConfigurationError(
                f"The accounts have different commodities, unable to transfer between: "
                f"{account.name} and {other.name}"
            )


def build_splits(
    external: ExternalTransaction,
    account: Account,
    counterparty: Account,
    commodity: Commodity,
    fee_account: Account | None = None,
) -> list[NewSplit]:
    """Build the splits of a balanced transaction for one external transaction.

    Amounts are rounded to the commodity fraction first, so the split values
    sum to exactly zero: ``main + counterparty + fee == 0``.

    Args:
        external: Transaction to record
        account: Reconciled account (receives ``amount``)
        counterparty: Other side (receives ``-amount - fee``)
        commodity: Transaction currency
        fee_account: Receives ``fee`` when the transaction has one

    Returns:
        Two or three NewSplit objects

    Raises:
        ConfigurationError: If the transaction has a fee but no fee account is given
    """
    amount = quantize_to_fraction(external.amount, commodity.fraction)
    fee = Decimal(0)
    if external.has_fee:
        if fee_account is None:
            raise ConfigurationError(f"Transaction has a fee of {external.fee} but no fee account is set")
        fee = quantize_to_fraction(external.fee, commodity.fraction)

    memo = external.counterparty_desc()
    splits = [
        NewSplit(account=account, memo="", amount=amount),
        NewSplit(account=counterparty, memo=memo, amount=-amount - fee),
    ]
    if fee:
        splits.append(NewSplit(account=fee_account, memo="fee", amount=fee))
    return splits


class FixupDriver:
    """Offers unmatched external transactions for creation in the ledger.

    Attributes:
        ledger: Open book to write into
        account: Reconciled account
        counterparty: Account the other side of each transaction goes to
        fee_account: Account for bank fees (optional)
        confirmer: Callback deciding per transaction
        matching: Which external date becomes the post date
    """

    def __init__(
        self,
        ledger: LedgerDatabase,
        account: Account,
        counterparty: Account,
        confirmer: Confirmer,
        fee_account: Account | None = None,
        matching: Matching = Matching.BY_SPENDING,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.ledger = ledger
        self.account = account
        self.counterparty = counterparty
        self.fee_account = fee_account
        self.confirmer = confirmer
        self.matching = matching
        self.clock = clock

    def _commodity(self) -> Commodity:
        commodity = self.ledger.get_commodity(self.account.commodity_guid)
        if commodity is None:
            raise ConfigurationError(f"Account {self.account.name} has no commodity")
        return commodity

    def _create(self, external: ExternalTransaction, commodity: Commodity) -> FixupOutcome:
        day = external.matching_date(self.matching)
        splits = build_splits(external, self.account, self.counterparty, commodity, self.fee_account)
        tx_guid = self.ledger.append_transaction(
            currency=commodity,
            post_date=datetime.combine(day, POST_TIME),
            enter_date=self.clock(),
            description=external.description_or_category() or "",
            splits=splits,
        )
        logger.info("Created transaction %s for %s %s", tx_guid, day, external.amount)
        return FixupOutcome(external=external, status=FixupStatus.CREATED, tx_guid=tx_guid)

    def _precheck(self, external: ExternalTransaction) -> str | None:
        """Return why a transaction cannot be created, or None if it can."""
        if external.has_fee and self.fee_account is None:
            return f"Transaction has a fee of {external.fee} but no fee account is set"
        if external.matching_date(self.matching) is None:
            return "Transaction has no date"
        return None

    def run(self, transactions: Sequence[ExternalTransaction]) -> FixupReport:
        """Walk the unmatched transactions and create the accepted ones.

        Raises:
            ConfigurationError: Before any prompt, if the accounts' commodities
                differ or the reconciled account has no commodity
        """
        check_currencies(self.account, self.counterparty, self.fee_account)
        commodity = self._commodity()

        report = FixupReport()
        accept_all = False
        for position, external in enumerate(transactions):
            problem = self._precheck(external)
            if problem is not None:
                logger.warning("Cannot create %s: %s", external, problem)
                report.outcomes.append(
                    FixupOutcome(external=external, status=FixupStatus.FAILED, error=problem)
                )
                continue

            decision = FixupDecision.ACCEPT if accept_all else self.confirmer(external)
            if decision == FixupDecision.ABORT:
                report.aborted = True
                report.outcomes.extend(
                    FixupOutcome(external=rest, status=FixupStatus.NOT_REACHED)
                    for rest in transactions[position:]
                )
                break
            if decision == FixupDecision.SKIP:
                report.outcomes.append(FixupOutcome(external=external, status=FixupStatus.SKIPPED))
                continue
            if decision == FixupDecision.ACCEPT_ALL:
                accept_all = True

            try:
                report.outcomes.append(self._create(external, commodity))
            except DataIntegrityError as exc:
                logger.error("Writing %s failed: %s", external, exc)
                report.outcomes.append(
                    FixupOutcome(external=external, status=FixupStatus.FAILED, error=str(exc))
                )

        return report


__all__ = [
    "Confirmer",
    "FixupDriver",
    "build_splits",
    "check_currencies",
]
