"""HTTP client abstraction for the package registry and the GitHub API.

This module provides:
- HttpClient: protocol for HTTP operations (injectable for tests)
- RealHttpClient: urllib implementation
- MockHttpClient: scripted responses for tests

Any response that arrives, whatever its status, is ``Ok(HttpResponse)``;
callers interpret 404 and 422 themselves. ``Err(HttpError)`` is reserved for
transport failures, with timeouts kept distinct from other network errors.
"""

from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.request
from collections import deque
from dataclasses import dataclass, field
from typing import Literal, Protocol, runtime_checkable

from pforge.core.result import Err, Ok, Result

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "HttpCall",
    "HttpClient",
    "HttpError",
    "HttpResponse",
    "MockHttpClient",
    "RealHttpClient",
]

DEFAULT_TIMEOUT_SECONDS = 100.0

HttpErrorKind = Literal["timeout", "network"]


@dataclass(frozen=True, slots=True)
class HttpError:
    url: str
    kind: HttpErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.message} ({self.url})"


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    reason: str
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> object:
        """Decode the body as JSON, or None when it is not JSON."""
        try:
            return json.loads(self.text)
        except json.JSONDecodeError:
            return None


@runtime_checkable
class HttpClient(Protocol):
    def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> Result[HttpResponse, HttpError]:
        """Send one request and return whatever response the server gave."""
        ...


class RealHttpClient:
    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = "pforge",
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._ssl_context = ssl.create_default_context()

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> Result[HttpResponse, HttpError]:
        merged = {"User-Agent": self.user_agent}
        merged.update(headers or {})
        req = urllib.request.Request(url, data=data, headers=merged, method=method)

        try:
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                return Ok(
                    HttpResponse(
                        status=response.status,
                        reason=response.reason or "",
                        body=response.read(),
                    )
                )
        except urllib.error.HTTPError as e:
            return Ok(HttpResponse(status=e.code, reason=str(e.reason), body=e.read()))
        except urllib.error.URLError as e:
            if isinstance(e.reason, TimeoutError):
                return Err(HttpError(url=url, kind="timeout", message="Request timed out"))
            return Err(HttpError(url=url, kind="network", message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, kind="timeout", message="Request timed out"))
        except (ValueError, OSError) as e:
            return Err(HttpError(url=url, kind="network", message=str(e)))


@dataclass(frozen=True, slots=True)
class HttpCall:
    method: str
    url: str
    headers: dict[str, str]
    data: bytes | None


def _empty_calls() -> list[HttpCall]:
    return []


@dataclass
class MockHttpClient:
    """Scripted HTTP client.

    Responses are queued per ``(method, url)``; the last queued response is
    reused once the queue drains. Unknown URLs answer 404.

    Usage:
        client = MockHttpClient()
        client.add_json("GET", "https://example/index.json", {"versions": ["1.0.0"]})
    """

    calls: list[HttpCall] = field(default_factory=_empty_calls)
    _responses: dict[tuple[str, str], deque[HttpResponse | HttpError]] = field(
        default_factory=dict
    )

    def add(self, method: str, url: str, response: HttpResponse | HttpError) -> None:
        self._responses.setdefault((method.upper(), url), deque()).append(response)

    def add_json(self, method: str, url: str, payload: object, *, status: int = 200) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.add(method, url, HttpResponse(status=status, reason="mock", body=body))

    def calls_to(self, method: str, url: str | None = None) -> list[HttpCall]:
        return [
            c for c in self.calls if c.method == method.upper() and (url is None or c.url == url)
        ]

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
    ) -> Result[HttpResponse, HttpError]:
        key = (method.upper(), url)
        self.calls.append(HttpCall(key[0], url, dict(headers or {}), data))

        queue = self._responses.get(key)
        if not queue:
            return Ok(HttpResponse(status=404, reason="Not Found (mock)"))

        response = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)
