from __future__ import annotations

from typing import Protocol

from leakrelay.core.models import IdentityAssertion, UploadCredential


class CredentialExchange(Protocol):
    """Trades an identity assertion for a presigned upload credential."""
    def exchange(self, assertion: IdentityAssertion, endpoint: str) -> UploadCredential:
        """Exchange the assertion with the backend.

        Args:
            assertion (IdentityAssertion): Token proving the CI job identity.
            endpoint (str): Backend exchange URL.

        Returns:
            UploadCredential: Single-use presigned upload location.

        Raises:
            ExchangeFailed: When the backend rejects the request or answers
                with an unusable payload.
        """
        ...
