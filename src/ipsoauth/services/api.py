"""Authenticated calls to the IPS REST API.

``Api`` attaches the current access token to each call and, when the site
reports the token as invalid, refreshes it and retries the call once.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

import httpx

from ipsoauth.models.errors import (
    ApiResponseError,
    BadResponseError,
    UnsupportedTokenTypeError,
)
from ipsoauth.models.tokens import TokenType
from ipsoauth.services.site import Site
from ipsoauth.services.token import Token

logger = logging.getLogger(__name__)


class AttemptState(Enum):
    """Position of a call in the invalid-token retry protocol."""

    FIRST_ATTEMPT = "first-attempt"
    RETRIED = "retried"


class CoreApi:
    """Endpoints of the ``core`` application."""

    def __init__(self, api: Api):
        self._api = api

    async def member(self) -> Any:
        """Profile of the authorized member."""
        return await self._api.request("/core/member", "GET")

    async def basic_info(self) -> Any:
        """Basic information about the authorized member."""
        return await self._api.request("/core/basic_info", "GET")


class Api:
    """API connection for one authorized member."""

    def __init__(self, token: Token | str | Mapping[str, Any], site: Site):
        """Initialize the API connection.

        Args:
            token: A Token, or anything the Token constructor accepts (a
                serialized token, a bare refresh token, a token response)
            site: The site to call
        """
        if not isinstance(token, Token):
            token = Token(token, site)
        self.token = token
        self.site = site

        self.core = CoreApi(self)

    async def request(self, endpoint: str, method: str = "GET", **options: Any) -> Any:
        """Make an API request.

        Args:
            endpoint: Path appended to the site's API root, e.g. "/core/member"
            method: HTTP method
            **options: Passed through to ``httpx.AsyncClient.request``
                (``data``, ``json``, ``headers`` ...); ``params`` are merged
                into the endpoint's query string

        Returns:
            The parsed JSON body, or None when the response has no body

        Raises:
            ApiResponseError: If the API returned an error object
            BadResponseError: If the response body is unusable
            UnsupportedTokenTypeError: If the token type is unknown
        """
        access_token = await self.token.get_access_token()
        state = AttemptState.FIRST_ATTEMPT

        while True:
            response = await self._send(endpoint, method, access_token, options)
            data = self._parse_body(response)

            if response.status_code < 300:
                return data

            if state is AttemptState.FIRST_ATTEMPT and self._is_invalid_token(
                response, data
            ):
                logger.warning(
                    f"Access token rejected by {endpoint}, refreshing and retrying"
                )
                state = AttemptState.RETRIED
                access_token = await self.token.refresh()
                continue

            if isinstance(data, dict) and "error" in data:
                raise ApiResponseError(
                    response.status_code, data["error"], data.get("message")
                )
            raise BadResponseError(response.status_code, response.text)

    async def _send(
        self,
        endpoint: str,
        method: str,
        access_token: str,
        options: Mapping[str, Any],
    ) -> httpx.Response:
        options = dict(options)
        url = httpx.URL(self.site.api_root + endpoint)
        headers = {"User-Agent": self.site.user_agent}
        headers.update(options.pop("headers", None) or {})

        # httpx replaces the URL's query when params= is passed alongside it
        params = options.pop("params", None)
        if params:
            url = url.copy_merge_params(params)

        token_type = TokenType.parse(self.token.token_type)
        if token_type is TokenType.QUERY:
            url = url.copy_merge_params({"token": access_token})
        elif token_type is TokenType.BEARER:
            headers["Authorization"] = f"Bearer {access_token}"
        else:
            raise UnsupportedTokenTypeError(self.token.token_type)

        logger.debug(f"{method.upper()} {endpoint} ({token_type.value} token)")

        return await self.site.http_client.request(
            method.upper(), url, headers=headers, **options
        )

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        """Decode a JSON body, None if empty.

        Raises:
            BadResponseError: If a non-empty body is not JSON, whatever the status
        """
        body = response.text
        if not body.strip():
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            raise BadResponseError(response.status_code, body) from e

    @staticmethod
    def _is_invalid_token(response: httpx.Response, data: Any) -> bool:
        return (
            response.status_code == 401
            and isinstance(data, dict)
            and data.get("error") == "invalid_token"
        )
