"""IPS site endpoints, token exchange and revocation.

A ``Site`` describes one Invision Community installation: its client
credentials and the fixed paths of the OAuth application under its base URL.
It talks to the token and revocation endpoints using
application/x-www-form-urlencoded POSTs.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from ipsoauth.models.errors import (
    BadResponseError,
    ConfigurationError,
    InvalidArgumentError,
)
from ipsoauth.models.flow import AuthorizationRequest
from ipsoauth.models.tokens import (
    AuthorizationCodeRequest,
    RefreshTokenRequest,
    RevokeTokenRequest,
    TokenPayload,
)

if TYPE_CHECKING:
    from ipsoauth.config import SiteConfig

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "FloatplaneClub (+floatplaneclub.com)"

AUTHORIZE_SUFFIX = "?app=oauth&module=auth&controller=auth"
TOKEN_SUFFIX = "applications/oauth/interface/token.php"
REVOKE_SUFFIX = "applications/oauth/interface/revoke.php"
API_ROOT_SUFFIX = "applications/oauth/interface/api.php?endpoint="


class Site:
    """Endpoint registry and token endpoint client for an IPS site.

    The four endpoint paths are derived from ``base_url`` once, at
    construction. Changing ``base_url`` afterwards does not move them.
    """

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        base_url: str | None,
        *,
        authorize_path: str | None = None,
        token_path: str | None = None,
        revoke_path: str | None = None,
        api_root: str | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the site.

        Args:
            client_id: OAuth client ID registered on the site
            client_secret: OAuth client secret
            base_url: The site's base URL, including the trailing slash
            authorize_path: Override for the authorization page URL
            token_path: Override for the token endpoint URL
            revoke_path: Override for the revocation endpoint URL
            api_root: Override for the API root, endpoints are appended to it
            user_agent: User-Agent sent with every request
            timeout: HTTP request timeout in seconds
            http_client: Optional preconfigured client, left open by ``close()``

        Raises:
            ConfigurationError: If client_id, client_secret or base_url is missing
        """
        if not client_id or not client_secret or not base_url:
            raise ConfigurationError(
                "Missing required option - client_id, client_secret and base_url "
                "are required"
            )

        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url

        self.authorize_path = authorize_path or base_url + AUTHORIZE_SUFFIX
        self.token_path = token_path or base_url + TOKEN_SUFFIX
        self.revoke_path = revoke_path or base_url + REVOKE_SUFFIX
        self.api_root = api_root or base_url + API_ROOT_SUFFIX

        self.user_agent = user_agent
        self.timeout = timeout
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_config(
        cls, config: SiteConfig, http_client: httpx.AsyncClient | None = None
    ) -> Site:
        """Create a site from a ``SiteConfig``."""
        return cls(
            config.client_id,
            config.client_secret,
            config.base_url,
            authorize_path=config.authorize_path,
            token_path=config.token_path,
            revoke_path=config.revoke_path,
            api_root=config.api_root,
            user_agent=config.user_agent,
            timeout=config.timeout,
            http_client=http_client,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """HTTP client shared by token exchange and API calls."""
        return self._http_client

    def authorization_url(
        self,
        redirect_uri: str,
        scopes: Sequence[str] | None = None,
        state: str | None = None,
    ) -> str:
        """Get the authorization URL for this site.

        Args:
            redirect_uri: The URI to redirect to after authorization
            scopes: The scopes to request, joined with spaces
            state: Opaque value echoed back on the redirect

        Returns:
            URL the user should visit to grant access
        """
        return AuthorizationRequest(
            authorization_endpoint=self.authorize_path,
            client_id=self.client_id,
            redirect_uri=redirect_uri,
            scopes=scopes,
            state=state,
        ).build_authorization_url()

    async def request_token(
        self,
        *,
        refresh_token: str | None = None,
        auth_code: str | None = None,
        redirect_uri: str | None = None,
        include_refresh_token: bool = False,
    ) -> dict[str, Any]:
        """Exchange a refresh token or an authorization code for tokens.

        Args:
            refresh_token: Refresh token to exchange (refresh_token grant)
            auth_code: Authorization code to exchange (authorization_code grant)
            redirect_uri: Redirect URI used for the authorization request,
                required with auth_code
            include_refresh_token: Ask the site to issue a refresh token along
                with the access token (authorization_code grant only)

        Returns:
            The token endpoint's JSON body, unchanged

        Raises:
            InvalidArgumentError: If the grant parameters are incomplete
            BadResponseError: If the response is not a successful token response
        """
        if refresh_token and auth_code:
            raise InvalidArgumentError(
                "Only one of refresh_token or auth_code may be provided"
            )

        if refresh_token:
            form_data = RefreshTokenRequest(
                client_id=self.client_id,
                client_secret=self.client_secret,
                refresh_token=refresh_token,
            ).to_form_data()
        elif auth_code:
            if not redirect_uri:
                raise InvalidArgumentError(
                    "redirect_uri must be provided with auth_code"
                )
            form_data = AuthorizationCodeRequest(
                client_id=self.client_id,
                client_secret=self.client_secret,
                code=auth_code,
                redirect_uri=redirect_uri,
                include_refresh_token=include_refresh_token,
            ).to_form_data()
        else:
            raise InvalidArgumentError("refresh_token or auth_code must be provided")

        logger.debug(
            f"Token request to {self.token_path}: "
            f"grant_type={form_data['grant_type']}, client_id={self.client_id}"
        )

        response = await self._http_client.post(
            self.token_path,
            data=form_data,
            headers=self._form_headers(),
        )

        return self._parse_token_response(response)

    async def revoke_token(self, token: str) -> None:
        """Revoke an access or refresh token.

        Raises:
            BadResponseError: If the site does not confirm the revocation
        """
        form_data = RevokeTokenRequest(
            client_id=self.client_id,
            client_secret=self.client_secret,
            token=token,
        ).to_form_data()

        logger.debug(f"Revocation request to {self.revoke_path}")

        response = await self._http_client.post(
            self.revoke_path,
            data=form_data,
            headers=self._form_headers(),
        )

        if response.status_code >= 300:
            logger.warning(f"Token revocation failed with {response.status_code}")
            raise BadResponseError(response.status_code, response.text)

        logger.info("Token revoked")

    def _form_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def _parse_token_response(self, response: httpx.Response) -> dict[str, Any]:
        """Validate a token endpoint response.

        Raises:
            BadResponseError: On a non-2xx status, a non-JSON body, a body
                without an access_token, or token fields of the wrong type
        """
        if not 200 <= response.status_code < 300:
            logger.warning(f"Token request failed with {response.status_code}")
            raise BadResponseError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise BadResponseError(response.status_code, response.text) from e

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.warning("Token response missing required access_token")
            raise BadResponseError(response.status_code, response.text)

        try:
            TokenPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Token response has malformed fields: {e}")
            raise BadResponseError(response.status_code, response.text) from e

        logger.info("Token exchange successful")
        return data

    async def close(self) -> None:
        """Close the HTTP client if this site created it.

        A client passed in by the caller is left open for the caller to close.
        """
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> Site:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
