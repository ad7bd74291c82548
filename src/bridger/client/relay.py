"""Executes tunnel request envelopes against the local HTTP server."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog
from httpx._decoders import SUPPORTED_DECODERS

from bridger.observability.metrics import RELAY_DURATION, RELAY_ERRORS, RELAY_REQUESTS
from bridger.protocol.messages import (
    CANNOT_CREATE_REQUEST,
    CANNOT_READ_RESPONSE_BODY,
    CANNOT_SEND_REQUEST,
    RequestEnvelope,
    ResponseEnvelope,
    error_response,
)

logger = structlog.get_logger()

# Derived from the target URL and the body, never taken from the envelope.
SKIP_REQUEST_HEADERS = frozenset({"host", "content-length", "transfer-encoding", "trailer"})


class HttpRelay:
    """Turns a RequestEnvelope into one call to the local server.

    Local failures never propagate: they come back as a 500 envelope with a
    JSON ``{"error": ...}`` body so the tunnel itself stays up.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            base_url: Local server base URL, request paths are appended verbatim
            timeout: Timeout for each local call in seconds, None for no timeout
            client: HTTP client to use; the relay creates and owns one if omitted
        """
        self.base_url = base_url
        self._owns_client = client is None
        # Redirects go back to the broker untouched so the remote caller sees them.
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
        )

    def build_url(self, request: RequestEnvelope) -> str:
        url = self.base_url + request.path
        if request.query:
            url += "?" + request.query
        return url

    async def execute(self, request: RequestEnvelope) -> ResponseEnvelope:
        """Perform the request and return the response envelope.

        Exactly one call is made to the local server; there are no retries.
        """
        log = logger.bind(request_id=request.request_id)
        # An empty method means GET. httpx upper-cases any other method.
        method = request.method or "GET"
        headers = {
            name: value
            for name, value in request.header.items()
            if name.lower() not in SKIP_REQUEST_HEADERS
        }

        try:
            http_request = self._client.build_request(
                method,
                self.build_url(request),
                headers=headers,
                content=request.body.encode("utf-8") if request.body else None,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as e:
            return self._failed(log, request, CANNOT_CREATE_REQUEST, e)

        log.info(
            "Requesting local server",
            method=method,
            path=request.path,
        )

        start = time.monotonic()
        try:
            resp = await self._client.send(http_request, stream=True)
        except httpx.RequestError as e:
            return self._failed(log, request, CANNOT_SEND_REQUEST, e)

        try:
            body = await resp.aread()
        except (httpx.HTTPError, httpx.StreamError) as e:
            return self._failed(log, request, CANNOT_READ_RESPONSE_BODY, e)
        finally:
            await resp.aclose()

        duration = time.monotonic() - start
        RELAY_DURATION.observe(duration)
        RELAY_REQUESTS.labels(method=method, status=str(resp.status_code)).inc()

        log.info(
            "Received local response",
            status=resp.status_code,
            body_len=len(body),
            duration_ms=int(duration * 1000),
        )

        return ResponseEnvelope(
            request_id=request.request_id,
            status_code=resp.status_code,
            header=flatten_headers(resp.headers),
            body=body.decode("utf-8", errors="replace"),
        )

    def _failed(
        self,
        log: Any,
        request: RequestEnvelope,
        reason: str,
        error: Exception,
    ) -> ResponseEnvelope:
        RELAY_ERRORS.labels(reason=reason).inc()
        log.error(
            "Local request failed",
            reason=reason,
            method=request.method,
            path=request.path,
            error=str(error) or type(error).__name__,
        )
        return error_response(request.request_id, reason)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpRelay:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()


def flatten_headers(headers: httpx.Headers) -> dict[str, str]:
    """Collapse response headers to the first value per name.

    The origin's header name casing is kept. When httpx could undo every
    listed content coding the body is already decoded, so Content-Encoding and
    Content-Length no longer describe it and are dropped. Codings httpx has no
    decoder for pass through untouched, headers included.
    """
    codings = [c.strip().lower() for c in headers.get("content-encoding", "").split(",") if c.strip()]
    decoded = bool(codings) and all(c in SUPPORTED_DECODERS for c in codings)
    result: dict[str, str] = {}
    seen: set[str] = set()
    for raw_name, raw_value in headers.raw:
        name = raw_name.decode("latin-1")
        lower = name.lower()
        if lower in seen:
            continue
        seen.add(lower)
        if decoded and lower in ("content-encoding", "content-length"):
            continue
        result[name] = raw_value.decode("latin-1")
    return result
