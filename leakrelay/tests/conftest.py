import io
import json
import logging

from urllib import error as url_error

import pytest

from leakrelay.core.models import RunMetadata


class FakeResponse:
    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> bool:
        return False


class FakeOpener:
    """Stand-in for urlopen that replays scripted answers in order.

    Each answer is either ``(status, body)`` or an exception instance to raise.
    Error statuses are raised as HTTPError, like urlopen does.
    """
    def __init__(self, answers) -> None:
        self.answers = list(answers)
        self.requests = []
        self.timeouts = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        if not self.answers:
            raise AssertionError(f"unexpected request to {request.full_url}")
        answer = self.answers.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        status, body = answer
        payload = _encode(body)
        if status >= 400:
            raise url_error.HTTPError(request.full_url, status, "error", {}, io.BytesIO(payload))
        return FakeResponse(status, payload)


def _encode(body) -> bytes:
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


@pytest.fixture
def fake_opener():
    return FakeOpener


@pytest.fixture
def sleeps():
    recorded = []
    return recorded


@pytest.fixture
def record_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def metadata() -> RunMetadata:
    return RunMetadata(
        tenant_id="tenant-a",
        repository="acme/widgets",
        commit_sha="4f1c2a9be0d7c3e5a8b6f1d2c3e4a5b6c7d8e9f0",
        run_id="9001",
        run_attempt="1",
        ref="refs/heads/main",
        ref_name="main",
        actor="octocat",
        run_url="https://github.com/acme/widgets/actions/runs/9001",
        generated_at="2026-01-27T00:00:00Z",
    )


@pytest.fixture
def github_env(monkeypatch):
    values = {
        "GITHUB_REPOSITORY": "acme/widgets",
        "GITHUB_SHA": "4f1c2a9be0d7c3e5a8b6f1d2c3e4a5b6c7d8e9f0",
        "GITHUB_RUN_ID": "9001",
        "GITHUB_RUN_ATTEMPT": "1",
        "GITHUB_REF": "refs/heads/main",
        "GITHUB_REF_NAME": "main",
        "GITHUB_ACTOR": "octocat",
        "GITHUB_SERVER_URL": "https://github.com",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return values


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    package_logger = logging.getLogger("leakrelay")
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
