"""State parameter helpers for the authorization code flow.

The state parameter ties the redirect back to the authorization request that
started it (CSRF protection).
"""

from __future__ import annotations

import secrets
import string


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    Returns:
        Random URL-safe state string (32 characters)
    """
    alphabet = string.ascii_letters + string.digits + "-._~"
    return "".join(secrets.choice(alphabet) for _ in range(32))


def validate_state(expected: str, actual: str | None) -> bool:
    """Compare a callback's state with the expected one in constant time.

    A missing state never matches.
    """
    if actual is None:
        return False
    return secrets.compare_digest(expected.encode(), actual.encode())
