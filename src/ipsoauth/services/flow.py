"""Authorization code flow for IPS sites.

Builds the URL the user visits to grant access, then turns the redirect that
comes back into a ``Token`` and a ready-to-use ``Api``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from ipsoauth.models.errors import (
    AuthorizationDeniedError,
    AuthorizationFailedError,
    BadRedirectParameterError,
)
from ipsoauth.models.flow import AuthorizationResponse
from ipsoauth.services.api import Api
from ipsoauth.services.security import generate_state, validate_state
from ipsoauth.services.site import Site
from ipsoauth.services.token import Token

logger = logging.getLogger(__name__)


class AuthorizationFlow:
    """Runs the authorization code flow against one site.

    Holds no per-flow state: the caller keeps the state value between
    ``start()`` and the callback.
    """

    def __init__(self, site: Site):
        self.site = site

    def authorization_url(
        self,
        redirect_uri: str,
        scopes: Sequence[str] | None = None,
        state: str | None = None,
    ) -> str:
        """Get the authorization URL for the site."""
        return self.site.authorization_url(redirect_uri, scopes, state)

    def start(
        self, redirect_uri: str, scopes: Sequence[str] | None = None
    ) -> tuple[str, str]:
        """Build an authorization URL with a freshly generated state.

        Returns:
            Tuple of (authorization_url, state); store the state for the callback
        """
        state = generate_state()
        return self.authorization_url(redirect_uri, scopes, state), state

    async def process_authorization_response(
        self,
        params: Mapping[str, str] | AuthorizationResponse,
        redirect_uri: str,
        state: str | None = None,
        include_refresh_token: bool = False,
    ) -> tuple[Token, Api]:
        """Process the parameters of an authorization redirect.

        Checks run in a fixed order: state, then error, then code.

        Args:
            params: Query parameters of the redirect
            redirect_uri: The redirect URI passed to authorization_url
            state: Expected state, if one was sent
            include_refresh_token: Ask the site to issue a refresh token

        Returns:
            Tuple of (token, api) for the authorized member

        Raises:
            BadRedirectParameterError: If the state does not match or no code
                was returned
            AuthorizationDeniedError: If the user declined
            AuthorizationFailedError: If the site reported another error
            BadResponseError: If the code exchange fails
        """
        if not isinstance(params, AuthorizationResponse):
            params = AuthorizationResponse.from_mapping(params)

        if state and not validate_state(state, params.state):
            raise BadRedirectParameterError("state", params.state)

        if params.is_error():
            if params.error == "access_denied":
                raise AuthorizationDeniedError()
            logger.warning(
                f"Authorization callback contained error: {params.error} - "
                f"{params.error_description}"
            )
            raise AuthorizationFailedError(
                params.error, params.error_description, params.error_uri
            )

        if not params.code:
            raise BadRedirectParameterError("code", None)

        tokens = await self.site.request_token(
            auth_code=params.code,
            redirect_uri=redirect_uri,
            include_refresh_token=include_refresh_token,
        )

        token = Token(tokens, self.site)
        logger.info("Authorization code exchanged for tokens")
        return token, Api(token, self.site)

    async def process_callback_url(
        self,
        callback_url: str,
        redirect_uri: str,
        state: str | None = None,
        include_refresh_token: bool = False,
    ) -> tuple[Token, Api]:
        """Process a full redirect URL, as received by the redirect handler."""
        return await self.process_authorization_response(
            AuthorizationResponse.from_url(callback_url),
            redirect_uri,
            state,
            include_refresh_token,
        )
