"""
Custom Exceptions for Willcraft

Hierarchical exception classes for proper error handling across layers.
Each class carries the HTTP status the API layer answers with.
"""

from typing import Optional, Dict, Any, List


class WillcraftError(Exception):
    """Base exception for all Willcraft errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the error envelope used by API responses."""
        return {
            "success": False,
            "error": self.message,
            "code": self.__class__.__name__,
            "details": self.details,
        }


class ValidationError(WillcraftError):
    """Raised when input validation fails."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        fields: Optional[Dict[str, List[str]]] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if fields:
            details["fields"] = fields
        super().__init__(message, details, original_error)
        self.fields = fields or {}


class AuthenticationError(WillcraftError):
    """Raised when the session credential is missing or invalid."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class EntitlementError(WillcraftError):
    """Raised when the caller's plan does not allow the operation."""

    status_code = 403

    def __init__(self, message: str, feature: Optional[str] = None):
        details = {"feature": feature} if feature else {}
        super().__init__(message, details)


class DatabaseError(WillcraftError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """
    Raised when a requested resource is not found.

    Also raised when the resource exists but belongs to another user, so
    callers cannot probe for the existence of foreign records.
    """

    status_code = 404


class ConflictError(DatabaseError):
    """Raised when an optimistic update keeps losing to concurrent writers."""

    status_code = 409


class UpstreamServiceError(WillcraftError):
    """Raised when the payment provider fails or cannot be reached."""

    status_code = 502

    def __init__(
        self,
        message: str,
        service: str = "stripe",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {"service": service}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)

    def to_dict(self) -> Dict[str, Any]:
        # Internals of the upstream failure stay in the logs
        return {
            "success": False,
            "error": self.message,
            "code": self.__class__.__name__,
            "details": {"service": self.details.get("service")},
        }


class SignatureVerificationError(WillcraftError):
    """Raised when a webhook payload fails signature verification."""

    status_code = 400


class ServiceUnavailableError(WillcraftError):
    """Raised when a required integration is not configured."""

    status_code = 503

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details)
