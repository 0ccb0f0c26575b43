"""Custom exceptions for application-specific error handling."""

from __future__ import annotations

from typing import Optional, Dict, Any


class SLAEngineException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.headers = headers
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class NotFoundError(SLAEngineException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str = "not_found", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="NOT_FOUND", details=details, status_code=404)


# ===== AI EXCEPTIONS =====


class AIException(SLAEngineException):
    """Base exception for classification backend errors."""


class AIResponseParsingError(AIException):
    """Raised when the backend reply is not a JSON object."""

    def __init__(self, message: str = "Failed to parse AI response"):
        super().__init__(message, error_code="AI_PARSING_ERROR", status_code=502)


class AIProviderNotImplementedError(AIException):
    """Raised when the configured provider has no client."""

    def __init__(self, provider: str):
        super().__init__(
            f"AI provider '{provider}' is not implemented",
            error_code="AI_PROVIDER_NOT_IMPLEMENTED",
            details={"provider": provider},
            status_code=501,
        )


class AITransientError(AIException):
    """Raised for timeouts, connection failures and 5xx replies."""

    def __init__(self, message: str = "AI backend unavailable", status_code: Optional[int] = None):
        details = {"status_code": status_code} if status_code else {}
        super().__init__(message, error_code="AI_TRANSIENT", details=details, status_code=503)


# ===== DATABASE EXCEPTIONS =====


class DatabaseException(SLAEngineException):
    """Base exception for database errors."""


class TenantConnectionError(DatabaseException):
    """Raised when a tenant database handle cannot be acquired."""

    def __init__(self, tenant_code: str, message: str = "Failed to connect to tenant database"):
        super().__init__(
            message,
            error_code="TENANT_DB_CONNECTION_ERROR",
            details={"tenant_code": tenant_code},
            status_code=503,
        )


# ===== WORKER EXCEPTIONS =====


class TenantTimeoutError(SLAEngineException):
    """Raised when processing a tenant exceeds its time budget."""

    def __init__(self, tenant_code: str, timeout_seconds: float):
        super().__init__(
            f"Processing {tenant_code} timed out after {timeout_seconds:g}s",
            error_code="TENANT_TIMEOUT",
            details={"tenant_code": tenant_code, "timeout_seconds": timeout_seconds},
            status_code=504,
        )


# ===== AUTHENTICATION EXCEPTIONS =====


class AuthenticationException(SLAEngineException):
    """Base exception for authentication errors."""


class InvalidAPIKeyError(AuthenticationException):
    """Raised when the internal API token is missing or wrong."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message, error_code="INVALID_API_KEY", status_code=401)
