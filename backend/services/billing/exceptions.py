"""Custom exceptions for wallet and overtime billing."""


class InvalidWalletAmountError(Exception):
    """Raised when a wallet entry is requested with a zero or negative amount."""
    pass


class GracePeriodEndedError(Exception):
    """Raised when a driver tries to go online after the overtime grace window closed."""
    pass
