"""Token endpoint models for the IPS OAuth client.

Contains the token payload parser plus immutable request parameters for the
token and revocation endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=millis)


def to_epoch_millis(instant: datetime) -> int:
    """Convert an aware datetime to whole epoch milliseconds."""
    return (instant - EPOCH) // _MILLISECOND


def utcnow() -> datetime:
    """Current instant, truncated to millisecond precision."""
    return from_epoch_millis(to_epoch_millis(datetime.now(timezone.utc)))


class TokenType(str, Enum):
    """How an access token is presented to the API."""

    QUERY = "query"
    BEARER = "bearer"

    @classmethod
    def parse(cls, value: str | None) -> TokenType | None:
        """Match a server-supplied token type case-insensitively.

        Returns None for unknown values.
        """
        if value is None:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None


class TokenPayload(BaseModel):
    """Token fields as found in a token endpoint response or a serialized token.

    ``expires`` is an absolute instant in epoch milliseconds (serialized form),
    ``expires_in`` a lifetime in seconds (token endpoint form).
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str | None = None
    refresh_token: str | None = None
    expires: int | None = None
    expires_in: float | None = None
    token_type: str | None = None

    def expires_at(self, now: datetime | None = None) -> datetime | None:
        """Absolute expiry instant, or None when the payload records none."""
        if self.expires is not None:
            return from_epoch_millis(self.expires)
        if self.expires_in is not None:
            expires = (now or utcnow()) + timedelta(seconds=self.expires_in)
            return from_epoch_millis(to_epoch_millis(expires))
        return None


@dataclass(frozen=True)
class AuthorizationCodeRequest:
    """Parameters for exchanging an authorization code for tokens."""

    client_id: str
    client_secret: str
    code: str
    redirect_uri: str
    include_refresh_token: bool = False

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for an application/x-www-form-urlencoded POST."""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": self.code,
            "redirect_uri": self.redirect_uri,
        }

        # IPS only issues a refresh token on request
        if self.include_refresh_token:
            data["include_refresh_token"] = "1"

        return data


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Parameters for refreshing an access token."""

    client_id: str
    client_secret: str
    refresh_token: str

    def to_form_data(self) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
        }


@dataclass(frozen=True)
class RevokeTokenRequest:
    """Parameters for revoking a token."""

    client_id: str
    client_secret: str
    token: str

    def to_form_data(self) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "token": self.token,
        }
