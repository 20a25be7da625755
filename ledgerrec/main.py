"""CLI entry point for Ledger Rec.

Lists accounts, splits and commodities of a GnuCash SQLite book and
correlates a bank export with one of its accounts, optionally creating the
missing transactions interactively.
"""

from pathlib import Path

import typer
from dotenv import load_dotenv

from ledgerrec.amounts import shift_days, to_date
from ledgerrec.correlator import MAX_DATE_OFFSET, correlate
from ledgerrec.display import (
    format_account,
    format_commodity,
    format_date_range,
    format_entry,
    format_external,
    format_split_row,
    truncate_string,
)
from ledgerrec.errors import ConfigurationError, LedgerRecError
from ledgerrec.fixup import FixupDriver, check_currencies
from ledgerrec.index import TransactionIndex
from ledgerrec.ledger import (
    DEFAULT_INDEX_LIMIT,
    AccountSelector,
    CommodityQuery,
    LedgerDatabase,
    TransactionQuery,
    resolve_database_path,
)
from ledgerrec.logging_setup import configure_logging
from ledgerrec.models import ExternalTransaction, FixupDecision, Matching
from ledgerrec.sheet_loader import SheetFormat, load_transactions

app = typer.Typer(help="Reconcile a GnuCash book against bank spreadsheet exports.")

_KEYS = {
    "y": FixupDecision.ACCEPT,
    "n": FixupDecision.SKIP,
    "a": FixupDecision.ACCEPT_ALL,
    "q": FixupDecision.ABORT,
}


class TerminalConfirmer:
    """Asks the operator about each transaction with a single keypress."""

    def __call__(self, external: ExternalTransaction) -> FixupDecision:
        typer.echo("\n" + format_external(external))
        typer.echo("Create transaction? [y]es / [n]o / [a]ll remaining / [q]uit: ", nl=False)
        while True:
            key = typer.getchar()
            if not key:
                # Input closed
                typer.echo("")
                return FixupDecision.ABORT
            decision = _KEYS.get(key.lower())
            if decision is not None:
                typer.echo(key)
                return decision


def _fail(message: str) -> None:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def _open_ledger(ctx: typer.Context) -> LedgerDatabase:
    path = resolve_database_path(ctx.obj.get("database") if ctx.obj else None)
    if not path.exists():
        raise ConfigurationError(f"Database file not found: {path}")
    return LedgerDatabase(path)


def _parse_day(value: str | None, option: str):
    try:
        return to_date(value)
    except ValueError:
        raise typer.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint=option) from None


@app.callback()
def main(
    ctx: typer.Context,
    database: str | None = typer.Option(
        None, "--database", help="GnuCash SQLite file (default: DATABASE_URL from the environment/.env)"
    ),
) -> None:
    """Reconcile a GnuCash book against bank spreadsheet exports."""
    load_dotenv()
    configure_logging()
    ctx.obj = {"database": database}


@app.command("list-accounts")
def list_accounts(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum number of accounts"),
    account_name: str | None = typer.Option(None, "--account-name", "-n"),
    account_parent: str | None = typer.Option(None, "--account-parent", "-p"),
    account_guid: str | None = typer.Option(None, "--account-guid", "-g"),
    account_type: str | None = typer.Option(None, "--account-type", "-t"),
) -> None:
    """List accounts matching the given filters."""
    selector = AccountSelector(account_name, account_parent, account_guid, account_type)
    try:
        with _open_ledger(ctx) as ledger:
            accounts = ledger.list_accounts(selector, limit=limit)
    except LedgerRecError as exc:
        _fail(str(exc))

    typer.echo(f"Displaying {len(accounts)} accounts")
    for account in accounts:
        typer.echo(format_account(account))


@app.command()
def transactions(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum number of splits"),
    transaction_id: str | None = typer.Option(None, "--transaction-id", "-x"),
    before: str | None = typer.Option(None, "--before", "-b", help="Posted on or before (YYYY-MM-DD)"),
    after: str | None = typer.Option(None, "--after", "-f", help="Posted on or after (YYYY-MM-DD)"),
    memo: str | None = typer.Option(None, "--memo", "-e"),
    description: str | None = typer.Option(None, "--description", "-d"),
    move_split: bool = typer.Option(
        False, "--move-split", "-m", help="Move the listed splits to the target account"
    ),
    account_name: str | None = typer.Option(None, "--account-name", "-n"),
    account_parent: str | None = typer.Option(None, "--account-parent", "-p"),
    account_guid: str | None = typer.Option(None, "--account-guid", "-g"),
    account_type: str | None = typer.Option(None, "--account-type", "-t"),
    target_name: str | None = typer.Option(None, "--target-account-name", "-r"),
    target_parent: str | None = typer.Option(None, "--target-account-parent", "-P"),
    target_guid: str | None = typer.Option(None, "--target-account-guid", "-G"),
    target_type: str | None = typer.Option(None, "--target-account-type", "-T"),
) -> None:
    """List splits with their transactions, optionally moving them to another account."""
    query = TransactionQuery(
        limit=limit,
        txid=transaction_id,
        description=description,
        memo=memo,
        before=_parse_day(before, "--before"),
        after=_parse_day(after, "--after"),
    )
    selector = AccountSelector(account_name, account_parent, account_guid, account_type)
    target_selector = AccountSelector(target_name, target_parent, target_guid, target_type)

    try:
        with _open_ledger(ctx) as ledger:
            target = None
            if move_split:
                if target_selector.is_empty:
                    raise ConfigurationError("Unable to determine the target account for --move-split")
                if selector.is_empty:
                    raise ConfigurationError("--move-split needs an account filter")
                target = ledger.get_account(target_selector)

            account = ledger.find_account(selector)
            if account is not None:
                if target is not None:
                    check_currencies(account, target)
                typer.echo(f"Listing transactions in {typer.style(account.name, fg=typer.colors.BLUE)}")
                query.account = account.guid
            else:
                typer.echo("Listing transactions")

            rows = ledger.list_splits(query)
            if target is None:
                typer.echo(f"Displaying {len(rows)} splits")
            else:
                typer.echo(
                    f"Moving {typer.style(str(len(rows)), fg=typer.colors.CYAN)} splits to "
                    f"{typer.style(format_account(target), fg=typer.colors.BLUE)}"
                )
            for split, transaction in rows:
                typer.echo(format_split_row(split, transaction))
            if target is not None:
                ledger.move_splits([split for split, _ in rows], target)
    except LedgerRecError as exc:
        _fail(str(exc))


@app.command()
def commodities(
    ctx: typer.Context,
    commodity_type: str | None = typer.Option(None, "--commodity-type", "-c", help="Namespace filter"),
    name: str | None = typer.Option(None, "--name", "-n", help="Mnemonic filter"),
    limit: int = typer.Option(10, "--limit", "-l", help="Maximum number of commodities"),
) -> None:
    """List commodities."""
    try:
        with _open_ledger(ctx) as ledger:
            results = ledger.list_commodities(
                CommodityQuery(limit=limit, name=name, commodity_type=commodity_type)
            )
    except LedgerRecError as exc:
        _fail(str(exc))

    typer.echo(f"Displaying {len(results)} commodities")
    for commodity in results:
        typer.echo(format_commodity(commodity))


@app.command("correlate")
def correlate_command(
    ctx: typer.Context,
    input_file: Path = typer.Option(..., "--input", "-i", help="Bank export to correlate"),
    sheet_name: str | None = typer.Option(None, "--sheet-name", "-s", help="Sheet to read (default: first)"),
    sheet_format: SheetFormat = typer.Option(
        SheetFormat.OTP, "--format", "-f", case_sensitive=False, help="Bank export layout"
    ),
    by_booking_date: bool = typer.Option(
        False, "--by-booking-date", "-d", help="Match on the booking date instead of the spending date"
    ),
    list_extra: bool = typer.Option(
        False, "--list-extra-transactions", "-X", help="List ledger entries missing from the export"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging and matched pairs"),
    limit: int = typer.Option(
        DEFAULT_INDEX_LIMIT, "--limit", help="Maximum number of ledger splits to load"
    ),
    account_name: str | None = typer.Option(None, "--account-name", "-n"),
    account_parent: str | None = typer.Option(None, "--account-parent", "-p"),
    account_guid: str | None = typer.Option(None, "--account-guid", "-g"),
    account_type: str | None = typer.Option(None, "--account-type", "-t"),
    from_name: str | None = typer.Option(None, "--from-account-name", "-N"),
    from_parent: str | None = typer.Option(None, "--from-account-parent", "-P"),
    from_guid: str | None = typer.Option(None, "--from-account-guid", "-G"),
    from_type: str | None = typer.Option(None, "--from-account-type", "-T"),
    fee_name: str | None = typer.Option(None, "--fee-account-name", "-E"),
    fee_parent: str | None = typer.Option(None, "--fee-account-parent", "-R"),
    fee_guid: str | None = typer.Option(None, "--fee-account-guid", "-U"),
    fee_type: str | None = typer.Option(None, "--fee-account-type", "-Y"),
) -> None:
    """Correlate a bank export with the transactions of one account.

    Reports matched and unmatched transactions in both directions. When a
    counterparty (--from-account-*) is given, offers to create the
    transactions missing from the ledger.
    """
    if verbose:
        configure_logging("DEBUG")

    if not input_file.exists():
        _fail(f"Input file not found: {input_file}")

    matching = Matching.BY_BOOKING if by_booking_date else Matching.BY_SPENDING

    try:
        with _open_ledger(ctx) as ledger:
            account = ledger.get_account(
                AccountSelector(account_name, account_parent, account_guid, account_type)
            )
            counterparty = ledger.find_account(AccountSelector(from_name, from_parent, from_guid, from_type))
            fee_account = ledger.find_account(AccountSelector(fee_name, fee_parent, fee_guid, fee_type))
            if counterparty is not None:
                check_currencies(account, counterparty, fee_account)

            externals = load_transactions(input_file, sheet_name, sheet_format, matching)
            typer.echo(
                f"Loaded {len(externals)} transactions from {input_file.name}, "
                f"matching by {matching.value} date: {format_date_range(externals.min_date, externals.max_date)}"
            )

            load_range = None
            if externals.min_date is not None and externals.max_date is not None:
                load_range = (
                    shift_days(externals.min_date, -MAX_DATE_OFFSET),
                    shift_days(externals.max_date, MAX_DATE_OFFSET),
                )
            index = TransactionIndex.load(ledger, account.guid, date_range=load_range, limit=limit)
            typer.echo(
                f"Loaded {len(index)} ledger entries of {typer.style(account.name, fg=typer.colors.BLUE)}: "
                f"{format_date_range(index.first_date, index.last_date)}"
            )
            if index.rejected:
                typer.secho(
                    f"Skipped {len(index.rejected)} ledger entries with unreadable data", fg=typer.colors.YELLOW
                )
                for rejected in index.rejected:
                    typer.echo(f"  {rejected.split.guid}: {rejected.reason}")

            result = correlate(
                externals.transactions,
                index,
                matching,
                date_range=(externals.min_date, externals.max_date),
            )

            typer.echo("\n" + "=" * 50)
            typer.echo("CORRELATION RESULTS")
            typer.echo("=" * 50)
            typer.echo(f"  Matched: {result.matched_count}")
            typer.echo(f"  - Missing from ledger: {len(result.unmatched_external)}")
            typer.echo(f"  + Not in {input_file.name}: {len(result.unmatched_ledger)}")

            if verbose and result.pairings:
                typer.echo("\n" + "-" * 50)
                typer.echo("MATCHED")
                typer.echo("-" * 50)
                for pairing in result.pairings:
                    typer.echo(f"  [{pairing.delta:+d}] {format_external(pairing.external)}")
                    typer.echo(f"       {truncate_string(format_entry(pairing.entry), 100)}")

            if result.unmatched_external:
                typer.echo("\n" + "-" * 50)
                typer.echo(f"MISSING FROM LEDGER ({len(result.unmatched_external)} transactions)")
                typer.echo("-" * 50)
                for external in result.unmatched_external:
                    typer.echo(f"  {format_external(external)}")

            if list_extra and result.unmatched_ledger:
                typer.echo("\n" + "-" * 50)
                typer.echo(f"NOT IN {input_file.name} ({len(result.unmatched_ledger)} entries)")
                typer.echo("-" * 50)
                for entry in result.unmatched_ledger:
                    typer.echo(f"  {format_entry(entry)}")

            if counterparty is None or not result.unmatched_external:
                return

            typer.echo(f"\nCreating missing transactions against {format_account(counterparty)}")
            driver = FixupDriver(
                ledger,
                account=account,
                counterparty=counterparty,
                confirmer=TerminalConfirmer(),
                fee_account=fee_account,
                matching=matching,
            )
            report = driver.run(result.unmatched_external)
    except LedgerRecError as exc:
        _fail(str(exc))

    for outcome in report.failed:
        typer.secho(f"  Failed: {format_external(outcome.external)}: {outcome.error}", fg=typer.colors.RED)
    typer.echo(
        f"\nCreated {len(report.created)}, skipped {len(report.skipped)}, failed {len(report.failed)}"
    )
    if report.aborted:
        typer.echo(f"Aborted, {len(report.not_reached)} transactions left untouched")


if __name__ == "__main__":
    app()
