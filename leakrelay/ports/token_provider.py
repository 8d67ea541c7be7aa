from __future__ import annotations

from typing import Protocol

from leakrelay.core.models import IdentityAssertion


class IdentityTokenProvider(Protocol):
    """Source of short-lived CI identity tokens."""
    def acquire(self, audience: str) -> IdentityAssertion:
        """Request a signed identity assertion for an audience.

        Args:
            audience (str): Intended recipient, used for the token's aud claim.

        Returns:
            IdentityAssertion: Opaque bearer token scoped to the audience.

        Raises:
            TokenUnavailable: When the runtime cannot issue a token.
        """
        ...
