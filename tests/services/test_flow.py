"""Tests for the authorization code flow.

Covers:
- Authorization URL generation and state generation
- Callback validation order: state, error, code
- Code exchange into a Token and Api pair
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from ipsoauth.models.errors import (
    AuthorizationDeniedError,
    AuthorizationFailedError,
    BadRedirectParameterError,
    BadResponseError,
)
from ipsoauth.models.flow import AuthorizationResponse
from ipsoauth.services.api import Api
from ipsoauth.services.flow import AuthorizationFlow
from ipsoauth.services.site import Site
from ipsoauth.services.token import Token

REDIRECT_URI = "http://localhost/cb/url?q=1"


class TestAuthorizationURL:
    def setup_method(self):
        self.site = Site(
            "TestClientID", "TestClientSecret", "https://example.com/test/"
        )
        self.flow = AuthorizationFlow(self.site)

    def test_delegates_to_site(self):
        # Act
        auth_url = self.flow.authorization_url("http://cb", ["read"], "S1")

        # Assert
        assert auth_url == self.site.authorization_url("http://cb", ["read"], "S1")
        parsed = urlparse(auth_url)
        query = parse_qs(parsed.query)
        assert parsed.path == "/test/"
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["TestClientID"]
        assert query["redirect_uri"] == ["http://cb"]
        assert query["scope"] == ["read"]
        assert query["state"] == ["S1"]

    def test_start_generates_state(self):
        # Act
        auth_url, state = self.flow.start("http://cb", ["read"])
        _, other_state = self.flow.start("http://cb")

        # Assert
        assert len(state) == 32
        assert state != other_state
        assert parse_qs(urlparse(auth_url).query)["state"] == [state]


class TestCallbackValidation:
    """Errors raised before any request is made."""

    def setup_method(self):
        # Arrange
        self.site = Site(
            "TestClientID", "TestClientSecret", "https://example.com/test/"
        )
        self.site.request_token = AsyncMock()
        self.flow = AuthorizationFlow(self.site)

    def teardown_method(self):
        self.site.request_token.assert_not_called()

    async def test_missing_state_fails(self):
        with pytest.raises(BadRedirectParameterError) as exc_info:
            await self.flow.process_authorization_response(
                {"code": "TestCode"}, REDIRECT_URI, "TestState"
            )

        assert exc_info.value.param == "state"
        assert exc_info.value.value is None

    async def test_wrong_state_fails(self):
        with pytest.raises(BadRedirectParameterError) as exc_info:
            await self.flow.process_authorization_response(
                {"code": "TestCode", "state": "TestState"}, REDIRECT_URI, "WrongState"
            )

        assert exc_info.value.param == "state"
        assert exc_info.value.value == "TestState"

    async def test_state_checked_before_error(self):
        with pytest.raises(BadRedirectParameterError) as exc_info:
            await self.flow.process_authorization_response(
                {"state": "wrong", "error": "access_denied"}, REDIRECT_URI, "right"
            )

        assert exc_info.value.param == "state"

    async def test_error_checked_before_code(self):
        with pytest.raises(AuthorizationFailedError):
            await self.flow.process_authorization_response(
                {"error": "server_error"}, REDIRECT_URI
            )

    async def test_missing_code_fails(self):
        with pytest.raises(BadRedirectParameterError) as exc_info:
            await self.flow.process_authorization_response({}, REDIRECT_URI)

        assert exc_info.value.param == "code"
        assert exc_info.value.value is None

    async def test_access_denied(self):
        with pytest.raises(AuthorizationDeniedError):
            await self.flow.process_authorization_response(
                {"error": "access_denied", "state": "TestState"},
                REDIRECT_URI,
                "TestState",
            )

    async def test_other_error_carries_details(self):
        with pytest.raises(AuthorizationFailedError) as exc_info:
            await self.flow.process_authorization_response(
                {
                    "error": "server_error",
                    "error_description": "Something broke",
                    "error_uri": "https://example.com/help",
                },
                REDIRECT_URI,
            )

        assert exc_info.value.reason == "server_error"
        assert exc_info.value.description == "Something broke"
        assert exc_info.value.url == "https://example.com/help"


class TestCodeExchange:
    """Successful callbacks exchange the code for tokens."""

    def setup_method(self):
        # Arrange
        self.site = Site(
            "TestClientID", "TestClientSecret", "https://example.com/test/"
        )
        self.site.request_token = AsyncMock(
            return_value={
                "access_token": "TestAccessToken",
                "expires_in": 3600,
                "refresh_token": "TestRefreshToken",
                "token_type": "query",
            }
        )
        self.flow = AuthorizationFlow(self.site)

    async def test_without_expected_state(self):
        # Act
        token, api = await self.flow.process_authorization_response(
            {"code": "TestCode"}, REDIRECT_URI
        )

        # Assert
        assert isinstance(token, Token)
        assert token.access_token == "TestAccessToken"
        assert token.refresh_token == "TestRefreshToken"
        assert isinstance(api, Api)
        assert api.token is token
        assert api.site is self.site
        self.site.request_token.assert_awaited_once_with(
            auth_code="TestCode",
            redirect_uri=REDIRECT_URI,
            include_refresh_token=False,
        )

    async def test_with_matching_state(self):
        # Act
        token, api = await self.flow.process_authorization_response(
            {"code": "TestCode", "state": "TestState"},
            REDIRECT_URI,
            state="TestState",
            include_refresh_token=True,
        )

        # Assert
        assert token.access_token == "TestAccessToken"
        assert self.site.request_token.call_args[1]["include_refresh_token"] is True

    async def test_accepts_authorization_response(self):
        # Act
        token, _ = await self.flow.process_authorization_response(
            AuthorizationResponse(code="TestCode"), REDIRECT_URI
        )

        # Assert
        assert token.access_token == "TestAccessToken"

    async def test_callback_url_is_parsed(self):
        # Act
        token, _ = await self.flow.process_callback_url(
            "http://localhost/cb/url?q=1&code=TestCode&state=TestState",
            REDIRECT_URI,
            "TestState",
        )

        # Assert
        assert token.access_token == "TestAccessToken"
        assert self.site.request_token.call_args[1]["auth_code"] == "TestCode"

    async def test_exchange_failure_propagates(self):
        # Arrange
        self.site.request_token.side_effect = BadResponseError(503, "offline")

        # Act & Assert
        with pytest.raises(BadResponseError):
            await self.flow.process_authorization_response(
                {"code": "TestCode"}, REDIRECT_URI
            )
