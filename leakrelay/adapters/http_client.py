from __future__ import annotations

import http.client
import json
import socket
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib import error as url_error
from urllib import request as url_request
from urllib.parse import urlsplit


Opener = Callable[..., Any]


class TransportError(RuntimeError):
    """Network-level failure: DNS, connection reset, TLS or timeout."""


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes = field(repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def text_excerpt(self, limit: int = 200) -> str:
        return self.body[:limit].decode("utf-8", errors="replace")


def send(
    method: str,
    url: str,
    *,
    timeout: float,
    body: bytes | None = None,
    headers: dict[str, str] | None = None,
    opener: Opener = url_request.urlopen,
) -> HttpResponse:
    """Issue one HTTP request with a hard per-attempt timeout.

    Returns:
        HttpResponse: Status and body for any HTTP answer, including 4xx/5xx.

    Raises:
        TransportError: When no HTTP answer was received at all.

    Notes:
        Error statuses are returned rather than raised so callers can decide
        between retrying and failing fast.
    """
    req = url_request.Request(url, data=body, headers=headers or {}, method=method)
    try:
        with opener(req, timeout=timeout) as response:
            return HttpResponse(status=int(response.status), body=response.read())
    except url_error.HTTPError as exc:
        try:
            payload = exc.read() or b""
        except OSError:
            payload = b""
        finally:
            exc.close()
        return HttpResponse(status=int(exc.code), body=payload)
    except url_error.URLError as exc:
        raise TransportError(f"{method} {_host(url)} failed: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise TransportError(f"{method} {_host(url)} timed out after {timeout:.1f}s") from exc
    except http.client.HTTPException as exc:
        # Truncated bodies and malformed status lines are network failures too.
        raise TransportError(f"{method} {_host(url)} failed: {type(exc).__name__}") from exc
    except OSError as exc:
        raise TransportError(f"{method} {_host(url)} failed: {exc}") from exc


def _host(url: str) -> str:
    # Only the host is safe to log; paths and queries may carry signatures.
    return urlsplit(url).netloc or "<unknown>"
