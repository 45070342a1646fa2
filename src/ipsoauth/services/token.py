"""Access/refresh token state and lifecycle.

A ``Token`` holds the token material for one authorized user and knows how to
renew itself through its ``Site``. Callers persist it by registering a change
listener and storing ``serialize()`` whenever the listener fires.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Mapping
from datetime import datetime
from typing import Any, Callable, Union

from ipsoauth.models.errors import ConfigurationError, MissingRefreshTokenError
from ipsoauth.models.tokens import (
    EPOCH,
    TokenPayload,
    TokenType,
    to_epoch_millis,
    utcnow,
)
from ipsoauth.services.site import Site

logger = logging.getLogger(__name__)

ChangeListener = Callable[["Token"], Union[None, Awaitable[None]]]


class Token:
    """Mutable OAuth token state bound to a site.

    Mutated in place only by ``refresh()``, so every holder of the object
    sees the renewed access token.
    """

    def __init__(
        self,
        source: str | Mapping[str, Any],
        site: Site | None,
        on_change: ChangeListener | None = None,
    ):
        """Build a token from a serialized token, a bare refresh token, or a
        token endpoint response.

        Args:
            source: A JSON string produced by ``serialize()``, any other string
                (taken as a refresh token), or a mapping with ``access_token``,
                ``refresh_token``, ``expires``/``expires_in`` and ``token_type``
            site: The site the token was issued by
            on_change: Called with this token after every successful refresh

        Raises:
            ConfigurationError: If site is missing, or the source holds neither
                an access token nor a refresh token
        """
        if site is None:
            raise ConfigurationError("A site is required to construct a token")

        self.site = site
        self._on_change = on_change
        self._refresh_task: asyncio.Task[str] | None = None

        payload = self._load(source)
        if payload is None:
            # Not JSON: the whole string is a refresh token, expired at once
            self.access_token: str | None = None
            self.refresh_token: str | None = source
            self.expires: datetime | None = EPOCH
            self.token_type = TokenType.QUERY.value
        else:
            self.access_token = payload.access_token
            self.refresh_token = payload.refresh_token
            self.expires = payload.expires_at()
            self.token_type = payload.token_type or TokenType.QUERY.value

        if not self.access_token and not self.refresh_token:
            raise ConfigurationError(
                "A token needs an access token or a refresh token"
            )

    @staticmethod
    def _load(source: str | Mapping[str, Any]) -> TokenPayload | None:
        if isinstance(source, str):
            try:
                data = json.loads(source)
            except ValueError:
                return None
            if not isinstance(data, dict):
                return None
            return TokenPayload.model_validate(data)
        return TokenPayload.model_validate(dict(source))

    def is_valid(self) -> bool:
        """Check whether the access token can be used without refreshing.

        A token without a recorded expiry is trusted until the server rejects it.
        """
        if not self.access_token:
            return False
        return self.expires is None or self.expires > utcnow()

    def can_refresh(self) -> bool:
        """Check if token can be refreshed."""
        return bool(self.refresh_token)

    async def get_access_token(self) -> str:
        """Get an access token, refreshing first if the current one is stale.

        The token is not guaranteed to work: it may have been revoked, or may
        expire before it is used.
        """
        if self.is_valid():
            return self.access_token
        return await self.refresh()

    async def refresh(self) -> str:
        """Obtain a new access token from the site.

        Concurrent callers share a single in-flight request. Cancelling one
        caller does not cancel the request the others are waiting on.

        Returns:
            The new access token

        Raises:
            MissingRefreshTokenError: If no refresh token is held
            BadResponseError: If the token endpoint rejects the refresh
        """
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh())
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task
        return await asyncio.shield(task)

    def _refresh_done(self, task: asyncio.Task[str]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self) -> str:
        if not self.refresh_token:
            raise MissingRefreshTokenError()

        tokens = await self.site.request_token(refresh_token=self.refresh_token)
        payload = TokenPayload.model_validate(tokens)

        self.access_token = payload.access_token
        # Rotation is optional, keep the old refresh token if none was issued
        self.refresh_token = payload.refresh_token or self.refresh_token
        self.token_type = payload.token_type or self.token_type
        if payload.expires_in is not None:
            self.expires = payload.expires_at()
        else:
            self.expires = None

        logger.info("Successfully refreshed access token")
        await self._notify_change()

        return self.access_token

    async def revoke(self) -> None:
        """Revoke the refresh token with the site.

        Raises:
            MissingRefreshTokenError: If no refresh token is held
            BadResponseError: If the site does not confirm the revocation
        """
        if not self.refresh_token:
            raise MissingRefreshTokenError("A refresh token is required to revoke")
        await self.site.revoke_token(self.refresh_token)

    def set_change_listener(self, callback: ChangeListener | None) -> None:
        """Replace the listener called after each refresh."""
        self._on_change = callback

    async def _notify_change(self) -> None:
        if self._on_change is None:
            return
        result = self._on_change(self)
        if inspect.isawaitable(result):
            await result

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires": (
                to_epoch_millis(self.expires) if self.expires is not None else None
            ),
            "token_type": self.token_type,
        }

    def serialize(self) -> str:
        """Serialize to the JSON form accepted back by the constructor."""
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        return self.serialize()

    def __repr__(self) -> str:
        return (
            f"Token(token_type={self.token_type!r}, expires={self.expires!r}, "
            f"has_refresh_token={self.can_refresh()})"
        )
