"""
Fetch the profile of a member of an IPS community.

You'll need to set IPS_CLIENT_ID, IPS_CLIENT_SECRET and IPS_BASE_URL
(a .env file works too). Set IPS_TOKEN to a token saved by a previous run to
skip the browser step.
"""

import asyncio
import json
import logging
import os

from ipsoauth.config import SiteConfig
from ipsoauth.services.api import Api
from ipsoauth.services.flow import AuthorizationFlow
from ipsoauth.services.site import Site
from ipsoauth.services.token import Token

REDIRECT_URI = "http://localhost:8080/callback"


def save_token(token: Token) -> None:
    logging.info("Token refreshed")
    print(f"Save this token to reuse it: {token}")


async def main():
    async with Site.from_config(SiteConfig.from_env()) as site:
        saved = os.getenv("IPS_TOKEN")
        if saved:
            api = Api(Token(saved, site, on_change=save_token), site)
        else:
            flow = AuthorizationFlow(site)
            auth_url, state = flow.start(REDIRECT_URI, ["profile"])
            print(f"Visit {auth_url}")
            callback_url = input("Paste the URL you were redirected to: ")
            token, api = await flow.process_callback_url(
                callback_url, REDIRECT_URI, state, include_refresh_token=True
            )
            token.set_change_listener(save_token)
            print(f"Save this token to reuse it: {token}")

        member = await api.core.member()
        print(json.dumps(member, indent=2))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
