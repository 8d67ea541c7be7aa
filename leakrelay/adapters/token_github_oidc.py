from __future__ import annotations

import json
import logging
import os
from typing import Mapping
from urllib import request as url_request
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from leakrelay.adapters.http_client import Opener, TransportError, send
from leakrelay.core.errors import TokenUnavailable
from leakrelay.core.models import IdentityAssertion


logger = logging.getLogger(__name__)

REQUEST_URL_ENV = "ACTIONS_ID_TOKEN_REQUEST_URL"
REQUEST_TOKEN_ENV = "ACTIONS_ID_TOKEN_REQUEST_TOKEN"


class GitHubOidcTokenProvider:
    """Fetch an OIDC identity token from the GitHub Actions runtime.

    The runtime exposes a request URL and a request bearer only when the
    workflow grants ``id-token: write``. Missing variables are reported as
    TokenUnavailable without any network call; there is no retry because a
    missing permission does not appear by waiting.
    """
    def __init__(
        self,
        timeout_s: float = 10.0,
        env: Mapping[str, str] | None = None,
        opener: Opener = url_request.urlopen,
    ) -> None:
        self.timeout_s = timeout_s
        self.env = env
        self.opener = opener

    def acquire(self, audience: str) -> IdentityAssertion:
        source = os.environ if self.env is None else self.env
        request_url = source.get(REQUEST_URL_ENV, "").strip()
        request_token = source.get(REQUEST_TOKEN_ENV, "").strip()
        if not request_url or not request_token:
            raise TokenUnavailable(
                f"{REQUEST_URL_ENV}/{REQUEST_TOKEN_ENV} are not set; "
                "grant `permissions: id-token: write` to the workflow job",
                reason="missing_permission",
            )

        try:
            response = send(
                "GET",
                _with_audience(request_url, audience),
                timeout=self.timeout_s,
                headers={
                    "Authorization": f"Bearer {request_token}",
                    "Accept": "application/json; api-version=2.0",
                },
                opener=self.opener,
            )
        except TransportError as exc:
            raise TokenUnavailable(f"Token request failed: {exc}", reason="issuer_unreachable") from exc

        if response.status != 200:
            raise TokenUnavailable(
                f"Token issuer answered HTTP {response.status}",
                reason="issuer_error",
            )
        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TokenUnavailable("Token issuer returned invalid JSON", reason="issuer_error") from exc

        value = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(value, str) or not value:
            raise TokenUnavailable("Token issuer response has no token value", reason="issuer_error")

        logger.info("Acquired identity token for audience %s", audience)
        return IdentityAssertion(value=value, audience=audience)


def _with_audience(request_url: str, audience: str) -> str:
    parts = urlsplit(request_url)
    query = [(key, val) for key, val in parse_qsl(parts.query, keep_blank_values=True) if key != "audience"]
    query.append(("audience", audience))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
