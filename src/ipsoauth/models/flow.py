"""Authorization flow models for the IPS OAuth client.

Contains models for authorization requests and callback handling.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import parse_qs, parse_qsl, urlencode, urlsplit, urlunsplit


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the authorization code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    scopes: Sequence[str] | None = None
    state: str | None = None

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL.

        Query parameters already present on the endpoint (IPS routes through
        ``?app=oauth&module=auth&controller=auth``) are kept; only the OAuth
        parameters are added or overwritten.
        """
        oauth_params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        }
        if self.scopes:
            oauth_params["scope"] = " ".join(self.scopes)
        if self.state:
            oauth_params["state"] = self.state

        parts = urlsplit(self.authorization_endpoint)
        params = [
            (key, value)
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key not in oauth_params
        ]
        params.extend(oauth_params.items())

        return urlunsplit(parts._replace(query=urlencode(params)))


@dataclass(frozen=True)
class AuthorizationResponse:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_mapping(cls, params: Mapping[str, str]) -> AuthorizationResponse:
        """Build from already-parsed callback query parameters."""
        return cls(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
            error_description=params.get("error_description"),
            error_uri=params.get("error_uri"),
        )

    @classmethod
    def from_url(cls, callback_url: str) -> AuthorizationResponse:
        """Parse the query string of a redirect URL."""
        query_params = parse_qs(urlsplit(callback_url).query)

        # Extract single values from query parameter lists
        return cls.from_mapping(
            {key: values[0] for key, values in query_params.items() if values}
        )

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
