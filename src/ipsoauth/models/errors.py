"""Exception hierarchy for the IPS OAuth client.

One class per failure mode so callers can handle each case precisely.
Every error carries the fields needed to act on it.
"""

from __future__ import annotations

from typing import Any


class IPSOAuthError(Exception):
    """Base exception for all IPS OAuth client errors."""

    pass


class ConfigurationError(IPSOAuthError):
    """Raised when a required construction parameter is missing."""

    pass


class InvalidArgumentError(IPSOAuthError, ValueError):
    """Raised when a call is made with malformed parameters."""

    pass


class MissingRefreshTokenError(IPSOAuthError):
    """Raised when a refresh or revocation needs a refresh token we don't hold."""

    def __init__(
        self,
        message: str = "A refresh token is required to generate a new access token",
    ):
        super().__init__(message)


class BadRedirectParameterError(IPSOAuthError):
    """Raised when the authorization callback has a missing or wrong parameter.

    Attributes:
        param: Name of the offending callback parameter ("state" or "code")
        value: Value received for it, None if absent
    """

    def __init__(self, param: str, value: str | None = None):
        self.param = param
        self.value = value
        super().__init__(f"Bad redirect parameter {param!r}: {value!r}")


class AuthorizationDeniedError(IPSOAuthError):
    """Raised when the user denied the authorization request."""

    def __init__(self, message: str = "The user denied the authorization request"):
        super().__init__(message)


class AuthorizationFailedError(IPSOAuthError):
    """Raised when authorization fails for reasons outside the user's control.

    Attributes:
        reason: The ``error`` callback parameter
        description: The ``error_description`` callback parameter
        url: The ``error_uri`` callback parameter
    """

    def __init__(
        self,
        reason: str | None = None,
        description: str | None = None,
        url: str | None = None,
    ):
        self.reason = reason
        self.description = description
        self.url = url
        message = f"Authorization failed: {reason}"
        if description:
            message += f" - {description}"
        super().__init__(message)


class BadResponseError(IPSOAuthError):
    """Raised when the server responded but the payload is unusable."""

    def __init__(self, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body or None
        super().__init__(f"Bad response from server (status {status_code})")


class ApiResponseError(IPSOAuthError):
    """Raised when the API returns a well-formed error object.

    Attributes:
        status_code: HTTP status of the response
        error: The ``error`` code from the response body
        message: The human-readable ``message`` from the response body
    """

    def __init__(self, status_code: int, error: Any, message: str | None = None):
        self.status_code = status_code
        self.error = error
        self.message = message
        super().__init__(f"API error {status_code}: {error} - {message}")


class UnsupportedTokenTypeError(IPSOAuthError):
    """Raised when a token's type is neither ``query`` nor ``bearer``."""

    def __init__(self, token_type: str | None):
        self.token_type = token_type
        super().__init__(f"Unsupported token type: {token_type!r}")
