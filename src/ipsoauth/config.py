"""Site configuration loaded from the environment or a .env file."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from ipsoauth.services.site import DEFAULT_USER_AGENT


class SiteConfig(BaseModel):
    """Options for constructing a ``Site``.

    Required values are left optional here so that ``Site`` reports what is
    missing with a ``ConfigurationError``.
    """

    client_id: str | None = None
    client_secret: str | None = None
    base_url: str | None = None
    authorize_path: str | None = None
    token_path: str | None = None
    revoke_path: str | None = None
    api_root: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be greater than 0")
        return value

    @classmethod
    def from_env(cls, prefix: str = "IPS_", dotenv: bool = True) -> SiteConfig:
        """Read ``<prefix>CLIENT_ID``, ``<prefix>BASE_URL`` etc.

        Args:
            prefix: Prefix of the environment variable names
            dotenv: Load a .env file first (existing variables win)
        """
        if dotenv:
            load_dotenv()

        values = {}
        for name in cls.model_fields:
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                values[name] = value

        return cls(**values)
