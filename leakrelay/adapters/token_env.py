from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from leakrelay.core.errors import TokenUnavailable
from leakrelay.core.models import IdentityAssertion


@dataclass
class EnvTokenProvider:
    """Read a pre-minted identity token from an environment variable.

    For CI systems that inject OIDC tokens as job variables instead of
    offering a request endpoint. The audience is fixed when the token is
    minted, so it is only recorded here.
    """
    variable: str
    env: Mapping[str, str] | None = None

    def acquire(self, audience: str) -> IdentityAssertion:
        source = os.environ if self.env is None else self.env
        value = source.get(self.variable, "").strip()
        if not value:
            raise TokenUnavailable(
                f"Identity token variable {self.variable} is not set",
                reason="missing_token",
            )
        return IdentityAssertion(value=value, audience=audience)
