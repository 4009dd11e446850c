"""Custom exceptions for the infusion ledger."""


class InfusionLedgerError(Exception):
    """Base exception for all infusion ledger errors."""

    pass


class ConfigurationError(InfusionLedgerError):
    """Raised when there is a configuration error."""

    pass


class StorageError(InfusionLedgerError):
    """Raised when a key-value store cannot be read or written."""

    pass


class TransferError(InfusionLedgerError):
    """Raised when exporting or importing user data fails."""

    pass
