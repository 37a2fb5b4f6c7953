"""Custom exceptions for tokensyphon."""


class TokenSyphonError(Exception):
    """Base class for tokensyphon errors."""


class PersistenceError(TokenSyphonError):
    """Raised when a batch of log entries or watermarks cannot be stored."""

    def __init__(self, operation: str, count: int = 0):
        self.operation = operation
        self.count = count
        message = f"Failed to {operation}"
        if count:
            message += f" ({count} rows)"
        super().__init__(message)


class ConfigurationError(TokenSyphonError):
    """Raised when the service cannot be set up from its configuration."""
