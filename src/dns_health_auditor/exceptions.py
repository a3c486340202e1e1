"""
Exception classes for the DNS health auditor.

All exceptions inherit from AuditorError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional

from .enums import FailureReason


class AuditorError(Exception):
    """Base exception for all auditor errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(AuditorError):
    """Raised when the settings file cannot be read or parsed."""

    pass


class DiscoveryError(AuditorError):
    """Raised when the directory service cannot enumerate domain controllers."""

    pass


class RemoteCallError(AuditorError):
    """
    Raised by collaborators when a remote call fails.

    The failure is classified into a FailureReason so callers never have to
    inspect the error text.
    """

    def __init__(
        self,
        reason: FailureReason,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.reason = reason
        super().__init__(reason.value, message, details)


class PersistenceError(AuditorError):
    """Raised when history persistence fails (file I/O, parse errors)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation of the history file fails."""

    pass


class NotificationError(AuditorError):
    """Raised when alert delivery fails."""

    pass


class ReportError(AuditorError):
    """Raised when the report documents cannot be written."""

    pass
