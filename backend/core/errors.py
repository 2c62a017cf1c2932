# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Application error taxonomy.

Business-rule failures are raised as ``AppError`` subclasses from the auth
service and translated to an HTTP response by the handler registered in
``main.py``.  The client only ever sees ``message``; anything that is not an
``AppError`` becomes a generic 500.
"""

from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid username or password"


class InvalidCodeError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid verification code"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InvalidRefreshTokenError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Unable to refresh access token"

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message)
        self.reason = reason


class LockedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Account is temporarily locked. Try again later."

    def __init__(self, message: str | None = None, locked_until=None):
        super().__init__(message)
        self.locked_until = locked_until


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


# Duplicate registrations answer 400, matching the register endpoint contract.
class ConflictError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Resource already exists"


class DuplicateUsernameError(ConflictError):
    message = "Username already exists"


class DuplicateEmailError(ConflictError):
    message = "Email already exists"


class RateLimitedError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests. Please try again later."


class ConfigurationError(AppError):
    message = "Server is misconfigured"


class InternalError(AppError):
    pass
