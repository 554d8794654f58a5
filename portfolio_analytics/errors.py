"""Exceptions raised by the analytics engine."""


class AnalyticsError(Exception):
    """Base class for every error the engine reports to its caller."""


class InvalidInputError(AnalyticsError, ValueError):
    """Raised for malformed transactions, impossible sells or bad parameters."""


class InsufficientDataError(AnalyticsError, ValueError):
    """Raised when a calculation gets fewer data points than it structurally needs."""

    def __init__(self, message: str, required: int | None = None, actual: int | None = None):
        super().__init__(message)
        self.required = required
        self.actual = actual
