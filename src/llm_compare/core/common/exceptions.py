"""
Common exception classes for the LLM comparison service.

This module defines custom exception classes used throughout the application
for better error handling and categorization.
"""

from __future__ import annotations


class LLMCompareError(Exception):
    """Base exception class for all LLM comparison errors."""

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        *,
        status_code: int | None = None,
        **kwargs,
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
            status_code: Optional HTTP status code hint for transport adapters
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code or 500
        for key, value in (kwargs or {}).items():
            setattr(self, key, value)

    def to_dict(self) -> dict:
        error_dict = {
            "message": self.message,
            "type": self.__class__.__name__,
            "details": self.details,
        }

        # Include any additional attributes that were set via kwargs
        for attr_name in dir(self):
            if (
                not attr_name.startswith("_")
                and attr_name not in ["message", "details", "status_code", "args"]
                and not callable(getattr(self, attr_name))
            ):
                error_dict[attr_name] = getattr(self, attr_name)

        return {"error": error_dict}


class AuthenticationError(LLMCompareError):
    """Raised when a backend rejects the supplied credential."""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, status_code=401, **kwargs)


class BackendError(LLMCompareError):
    """Raised when a backend operation fails."""

    def __init__(
        self,
        message: str = "Backend operation failed",
        backend_name: str | None = None,
        details: dict | None = None,
        **kwargs,
    ):
        # let adapters map to 502 by default unless overridden
        status_code = kwargs.pop("status_code", 502)
        super().__init__(message, details, status_code=status_code, **kwargs)
        self.backend_name = backend_name


class ServiceUnavailableError(LLMCompareError):
    """Raised when a backend cannot be reached."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, status_code=503, **kwargs)


class ConfigurationError(LLMCompareError):
    """Raised when there's a configuration issue."""

    def __init__(
        self,
        message: str = "Configuration error",
        details: dict | None = None,
        **kwargs,
    ):
        super().__init__(message, details, status_code=400, **kwargs)


class InvalidRequestError(LLMCompareError):
    """Raised when a request is invalid."""

    def __init__(
        self, message: str = "Invalid request", details: dict | None = None, **kwargs
    ):
        super().__init__(message, details, status_code=400, **kwargs)


class ParsingError(LLMCompareError):
    """Raised when a backend stream cannot be decoded."""

    def __init__(
        self, message: str = "Parsing failed", details: dict | None = None, **kwargs
    ):
        super().__init__(message, details, status_code=422, **kwargs)
