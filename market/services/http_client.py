from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False

    elapsed_ms: int | None = None


class PushHttpClient:
    """
    Shared HTTP client for notification push.

    - One AsyncClient instance (connection pooling).
    - No retries here; the delivery layer schedules them.
    - Returns a structured result with retryable classification.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._default_headers = dict(default_headers or {})
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_json(
        self,
        *,
        url: str,
        json_body: dict[str, Any],
        headers: Mapping[str, str] | None = None,
        request_id: str | None = None,
    ) -> HttpResult:
        h = dict(self._default_headers)
        if headers:
            h.update(dict(headers))
        if request_id and "X-Request-Id" not in h:
            h["X-Request-Id"] = request_id

        try:
            resp = await self._client.post(url, headers=h, json=json_body)
        except httpx.TimeoutException as e:
            return HttpResult(ok=False, status_code=None, error_code="TIMEOUT", error_message=str(e), retryable=True)
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(ok=False, status_code=None, error_code="REQUEST_ERROR", error_message=str(e), retryable=True)

        try:
            elapsed_ms = int(resp.elapsed.total_seconds() * 1000)
        except RuntimeError:
            # elapsed is only set once the response was read by a real transport
            elapsed_ms = None

        if 200 <= resp.status_code < 300:
            return HttpResult(ok=True, status_code=resp.status_code, elapsed_ms=elapsed_ms)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=resp.status_code in (408, 429, 500, 502, 503, 504),
            elapsed_ms=elapsed_ms,
        )
