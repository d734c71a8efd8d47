"""Custom exception classes for the session service"""

from typing import Optional, Dict, Any


class ConfigurationError(RuntimeError):
    """Required configuration is missing or unsafe. Aborts startup."""


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        expose_details: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.expose_details = expose_details
        super().__init__(self.message)


# Validation Errors
class ValidationError(BaseAPIException):
    """Missing or malformed request field"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details, expose_details=True)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Missing, invalid, expired or revoked session"""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401)


class DecryptionError(AuthenticationError):
    """Stored ciphertext was tampered with, corrupted, or sealed with another key"""
    def __init__(self, message: str = "Session is no longer valid"):
        super().__init__(message)


class UpstreamError(AuthenticationError):
    """Identity provider rejected the refresh token or could not be reached"""
    def __init__(self, message: str = "Session is no longer valid", detail: Optional[str] = None):
        super().__init__(message)
        if detail:
            self.details = {"detail": detail}


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Forbidden", status_code: int = 403):
        super().__init__(message, status_code=status_code)


# System Errors
class StoreUnavailableError(BaseAPIException):
    """Session persistence backend failed"""
    def __init__(self, message: str = "Session store unavailable", detail: Optional[str] = None):
        super().__init__(message, status_code=500, details={"detail": detail} if detail else None)


class SessionCreationError(StoreUnavailableError):
    """Could not allocate a unique session id"""
    def __init__(self, attempts: int):
        super().__init__(
            "Failed to create session",
            detail=f"session id collided on all {attempts} attempts",
        )


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
