"""Custom exceptions for ride management."""


class RideNotFoundError(Exception):
    """Raised when a ride cannot be found."""
    pass


class RideNotAvailableError(Exception):
    """Raised when a ride is not in an available state for the operation."""
    pass


class DriverNotAvailableError(Exception):
    """Raised when driver is not available to accept rides."""
    pass


class DriverLocationUnavailableError(Exception):
    """Raised when a cancellation has no current driver position to judge movement from."""
    pass
