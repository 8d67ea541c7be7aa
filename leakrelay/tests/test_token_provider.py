from urllib import error as url_error
from urllib.parse import parse_qs, urlsplit

import pytest

from leakrelay.adapters.token_env import EnvTokenProvider
from leakrelay.adapters.token_github_oidc import GitHubOidcTokenProvider
from leakrelay.core.errors import TokenUnavailable


REQUEST_ENV = {
    "ACTIONS_ID_TOKEN_REQUEST_URL": "https://pipelines.actions.githubusercontent.com/abc/idtoken?api-version=2.0",
    "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "runtime-request-token",
}


def test_acquire_requests_token_for_audience(fake_opener) -> None:
    opener = fake_opener([(200, {"count": 1, "value": "eyJ.header.sig"})])
    provider = GitHubOidcTokenProvider(timeout_s=4.0, env=REQUEST_ENV, opener=opener)

    assertion = provider.acquire("leakrelay-backend")

    assert assertion.value == "eyJ.header.sig"
    assert assertion.audience == "leakrelay-backend"
    assert "eyJ.header.sig" not in repr(assertion)
    request = opener.requests[0]
    query = parse_qs(urlsplit(request.full_url).query)
    assert query["audience"] == ["leakrelay-backend"]
    assert query["api-version"] == ["2.0"]
    assert request.get_header("Authorization") == "Bearer runtime-request-token"
    assert opener.timeouts == [4.0]


def test_missing_permission_fails_without_network(fake_opener) -> None:
    opener = fake_opener([])
    provider = GitHubOidcTokenProvider(env={}, opener=opener)

    with pytest.raises(TokenUnavailable) as exc:
        provider.acquire("leakrelay")

    assert exc.value.reason == "missing_permission"
    assert "id-token: write" in str(exc.value)
    assert opener.requests == []


@pytest.mark.parametrize(
    "answer",
    [
        (500, "unavailable"),
        (403, "forbidden"),
        (200, {"count": 0}),
        (200, "garbage"),
        url_error.URLError("dns failure"),
    ],
)
def test_issuer_failures_are_token_unavailable_without_retry(fake_opener, answer) -> None:
    opener = fake_opener([answer])
    provider = GitHubOidcTokenProvider(env=REQUEST_ENV, opener=opener)

    with pytest.raises(TokenUnavailable) as exc:
        provider.acquire("leakrelay")

    assert exc.value.retryable is False
    assert len(opener.requests) == 1


def test_env_token_provider() -> None:
    provider = EnvTokenProvider("CI_JOB_ID_TOKEN", env={"CI_JOB_ID_TOKEN": "eyJ.gitlab.sig"})
    assertion = provider.acquire("leakrelay")
    assert assertion.value == "eyJ.gitlab.sig"

    with pytest.raises(TokenUnavailable):
        EnvTokenProvider("CI_JOB_ID_TOKEN", env={}).acquire("leakrelay")
