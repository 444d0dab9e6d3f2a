"""Custom exceptions for the Sift application."""


class SiftAppError(Exception):
    """Base exception for Sift application."""

    pass


class CollaboratorError(SiftAppError):
    """Exception raised when the scoring service returns an error."""

    def __init__(self, status_code: int, message: str, response_text: str = ""):
        self.status_code = status_code
        self.message = message
        self.response_text = response_text
        super().__init__(f"Scoring API error {status_code}: {message}")


class ConfigurationError(SiftAppError):
    """Exception raised for configuration errors."""

    pass


class NetworkError(SiftAppError):
    """Exception raised for network/connection errors."""

    pass


class StorageError(SiftAppError):
    """Exception raised when the key-value store cannot be read or written."""

    pass


class MessageValidationError(SiftAppError):
    """A request was rejected; the message is safe to show to the user."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class HostContextInvalidated(SiftAppError):
    """The host runtime was torn down; the page must be reloaded."""

    pass
