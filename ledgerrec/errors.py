"""Exception types for Ledger Rec."""


class LedgerRecError(Exception):
    """Base class for errors raised by Ledger Rec."""


class ConfigurationError(LedgerRecError, ValueError):
    """The requested operation cannot run with the given settings.

    Raised for account selectors that do not resolve to exactly one account,
    accounts with different commodities, a fee without a fee account, an
    unknown sheet format or a missing database location.
    """


class DataIntegrityError(LedgerRecError, ValueError):
    """A ledger row carries data that cannot be interpreted.

    Malformed date strings and zero denominators end up here.
    """


__all__ = ["LedgerRecError", "ConfigurationError", "DataIntegrityError"]
