"""End-to-end: authorize, call the API, persist and restore the token."""

import httpx

from ipsoauth.services.api import Api
from ipsoauth.services.flow import AuthorizationFlow
from ipsoauth.services.site import Site
from ipsoauth.services.token import Token

MEMBER = {"basic_info": {"name": "TestUser", "id": 1001}}


class TestAuthorizationToApiCall:
    def setup_method(self):
        self.requests = []

        def handle(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if request.url.path.endswith("token.php"):
                return httpx.Response(
                    200, json={"access_token": "TestAccessToken", "token_type": "query"}
                )
            if request.url.params.get("token") == "TestAccessToken":
                return httpx.Response(200, json=MEMBER)
            return httpx.Response(401, json={"error": "invalid_token"})

        self.site = Site(
            "TestClientID",
            "TestClientSecret",
            "https://example.com/test/",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handle)),
        )

    async def test_api_from_successful_authorization(self):
        # Arrange
        flow = AuthorizationFlow(self.site)

        # Act
        token, api = await flow.process_authorization_response(
            {"code": "TestCode"}, "http://localhost/redirect"
        )
        info = await api.core.member()

        # Assert
        assert info == MEMBER
        assert [r.method for r in self.requests] == ["POST", "GET"]

    async def test_restored_refresh_token_refreshes_before_first_call(self):
        # Arrange
        api = Api("TestRefreshToken", self.site)

        # Act
        info = await api.core.member()
        restored = Api(Token(api.token.serialize(), self.site), self.site)
        info_again = await restored.core.member()

        # Assert
        assert info == info_again == MEMBER
        assert [r.url.path.rsplit("/", 1)[-1] for r in self.requests] == [
            "token.php",
            "api.php",
            "api.php",
        ]
