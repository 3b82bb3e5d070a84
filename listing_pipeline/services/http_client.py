from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping, Sequence

import httpx


HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

# (field name, (filename, bytes, content type))
MultipartFile = tuple[str, tuple[str, bytes, str]]


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def server_message(self) -> str | None:
        # {"message": "..."} or {"error": "..."} or {"data": {"message": "..."}}
        for key in ("message", "error"):
            v = self.detail.get(key)
            if isinstance(v, str) and v:
                return v
        data = self.detail.get("data")
        if isinstance(data, dict):
            v = data.get("message")
            if isinstance(v, str) and v:
                return v
        return None


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class ServiceHttpClient:
    """
    Shared HTTP client wrapper for the job, upload and health endpoints.

    - Uses one AsyncClient instance (connection pooling).
    - Does NOT retry; retry policy belongs to the status poller alone.
    - Never raises on transport or HTTP errors: returns a structured result
      with retryable classification.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 20.0,
        max_response_body_chars: int = 20_000,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = httpx.Timeout(timeout_seconds)
        self._max_body = max_response_body_chars
        self._default_headers = dict(default_headers or {})
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ServiceHttpClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def request(
        self,
        *,
        method: HttpMethod,
        url: str,
        headers: Mapping[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        files: Sequence[MultipartFile] | None = None,
        timeout_seconds: float | None = None,
    ) -> HttpResult:
        # Merge headers (caller wins)
        h = dict(self._default_headers)
        if headers:
            h.update(dict(headers))

        timeout = httpx.Timeout(timeout_seconds) if timeout_seconds is not None else self._timeout

        try:
            resp = await self._client.request(
                method=method,
                url=url,
                headers=h,
                json=json_body,
                files=list(files) if files else None,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "timeout"},
                error_code="TIMEOUT",
                error_message=str(e) or "request timed out",
                retryable=True,
            )
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(
                ok=False,
                status_code=None,
                detail={"error": "request_error"},
                error_code="REQUEST_ERROR",
                error_message=str(e) or type(e).__name__,
                retryable=True,
            )

        # Parse response
        detail: dict[str, Any]
        if _is_json_response(resp):
            try:
                parsed = resp.json()
                detail = parsed if isinstance(parsed, dict) else {"data": parsed}
            except ValueError:
                detail = {"raw": _cap_text(resp.text, max_chars=self._max_body), "malformed_json": True}
        else:
            # Non-JSON response (HTML, text, etc.)
            detail = {
                "raw": _cap_text(resp.text, max_chars=self._max_body),
                "content_type": resp.headers.get("content-type"),
            }

        if 200 <= resp.status_code < 300:
            return HttpResult(
                ok=True,
                status_code=resp.status_code,
                detail=detail,
                retryable=False,
            )

        # Retryability
        retryable = resp.status_code in (408, 429, 500, 502, 503, 504)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=retryable,
        )

    # helpers
    async def get_json(self, *, url: str, headers: Mapping[str, str] | None = None, timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="GET", url=url, headers=headers, timeout_seconds=timeout_seconds)

    async def post_json(self, *, url: str, headers: Mapping[str, str] | None = None, json_body: dict[str, Any] | None = None, timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, json_body=json_body, timeout_seconds=timeout_seconds)

    async def put_json(self, *, url: str, headers: Mapping[str, str] | None = None, json_body: dict[str, Any] | None = None, timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="PUT", url=url, headers=headers, json_body=json_body, timeout_seconds=timeout_seconds)

    async def delete(self, *, url: str, headers: Mapping[str, str] | None = None, timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="DELETE", url=url, headers=headers, timeout_seconds=timeout_seconds)

    async def post_multipart(self, *, url: str, files: Sequence[MultipartFile], headers: Mapping[str, str] | None = None, timeout_seconds: float | None = None) -> HttpResult:
        return await self.request(method="POST", url=url, headers=headers, files=files, timeout_seconds=timeout_seconds)
