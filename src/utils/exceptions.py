"""Custom exceptions for the OE matcher."""

from typing import Optional


class OeMatcherError(Exception):
    """Base exception for OE matcher operations."""

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class FileProcessingError(OeMatcherError):
    """Exception raised for file processing errors."""

    pass


class ExcelProcessingError(FileProcessingError):
    """Exception raised when a spreadsheet cannot be read or written."""

    pass


class ConfigurationError(OeMatcherError):
    """Exception raised for configuration-related errors.

    Also raised when the reference sheet has no identifier column, since
    nothing downstream can run without one.
    """

    pass


class ValidationError(OeMatcherError):
    """Exception raised for validation errors."""

    pass


class AuthenticationError(OeMatcherError):
    """Exception raised for authentication errors."""

    pass
