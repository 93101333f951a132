"""Closed error taxonomy for the identity core.

Every failure the core reports is one of the classes below. Each class carries
a stable ``ErrorCode`` and the HTTP status it maps to at the request boundary,
so callers can match on the class (or on ``exc.code``) instead of comparing
message strings.
"""
from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EMAIL_ALREADY_VERIFIED = "EMAIL_ALREADY_VERIFIED"
    EMAIL_EXISTS = "EMAIL_EXISTS"
    USERNAME_EXISTS = "USERNAME_EXISTS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_ALREADY_USED = "TOKEN_ALREADY_USED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN_TYPE = "INVALID_TOKEN_TYPE"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_SESSION = "INVALID_SESSION"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    CSRF_MISMATCH = "CSRF_MISMATCH"
    REGISTRATION_DISABLED = "REGISTRATION_DISABLED"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    USER_NOT_FOUND = "USER_NOT_FOUND"


class IdentityError(Exception):
    """Base class for all domain errors raised by the identity core."""

    status_code: int = 400
    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None, *, code: ErrorCode | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class ValidationError(IdentityError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Validation failed"


class ConflictError(IdentityError):
    """Duplicate username or email."""

    status_code = 409
    code = ErrorCode.EMAIL_EXISTS
    default_message = "Resource already exists"


class InvalidCredentials(IdentityError):
    """Unknown email or wrong password; the two cases are indistinguishable."""

    status_code = 401
    code = ErrorCode.INVALID_CREDENTIALS
    default_message = "Invalid email or password"


class EmailNotVerified(IdentityError):
    status_code = 401
    code = ErrorCode.EMAIL_NOT_VERIFIED
    default_message = "Please verify your email before signing in"


class TokenError(IdentityError):
    """Base for single-use token claim failures."""

    status_code = 400


class TokenNotFound(TokenError):
    code = ErrorCode.INVALID_TOKEN
    default_message = "Invalid or unknown token"


class TokenAlreadyUsed(TokenError):
    code = ErrorCode.TOKEN_ALREADY_USED
    default_message = "Token already used"


class TokenExpired(TokenError):
    code = ErrorCode.TOKEN_EXPIRED
    default_message = "Token expired"


class TokenTypeMismatch(TokenError):
    code = ErrorCode.INVALID_TOKEN_TYPE
    default_message = "Invalid token type"


class AuthRequired(IdentityError):
    status_code = 401
    code = ErrorCode.AUTH_REQUIRED
    default_message = "Authentication required"


class InvalidSession(IdentityError):
    status_code = 401
    code = ErrorCode.INVALID_SESSION
    default_message = "Invalid or expired session"


class InsufficientPermissions(IdentityError):
    status_code = 403
    code = ErrorCode.INSUFFICIENT_PERMISSIONS
    default_message = "Insufficient permissions"


class CsrfMismatch(IdentityError):
    status_code = 403
    code = ErrorCode.CSRF_MISMATCH
    default_message = "Missing or invalid CSRF token"


class RegistrationDisabled(IdentityError):
    status_code = 403
    code = ErrorCode.REGISTRATION_DISABLED
    default_message = "Registration is currently closed"


class InvalidPassword(IdentityError):
    """Current-password check failed on change or delete."""

    status_code = 400
    code = ErrorCode.INVALID_PASSWORD
    default_message = "Current password is incorrect"


class NotFound(IdentityError):
    status_code = 404
    code = ErrorCode.USER_NOT_FOUND
    default_message = "User not found"


__all__ = [
    "ErrorCode",
    "IdentityError",
    "ValidationError",
    "ConflictError",
    "InvalidCredentials",
    "EmailNotVerified",
    "TokenError",
    "TokenNotFound",
    "TokenAlreadyUsed",
    "TokenExpired",
    "TokenTypeMismatch",
    "AuthRequired",
    "InvalidSession",
    "InsufficientPermissions",
    "CsrfMismatch",
    "RegistrationDisabled",
    "InvalidPassword",
    "NotFound",
]
