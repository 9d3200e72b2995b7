"""
catalog_backend.security — HTTP middleware for the catalog API.

Provides:
    - RequestIdMiddleware: X-Request-ID on every request/response, one
      structured access-log line per request
    - SecurityHeadersMiddleware: OWASP response headers and Cache-Control
    - RequestSizeLimitMiddleware: rejects oversized bodies (413) or
      headers (431)
    - ETagMiddleware: weak ETag on 200 GET responses, 304 on If-None-Match

The catalog file is re-read on every request, so data responses are never
served from a shared cache without revalidation. ETags make that
revalidation cheap for clients.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("catalog.security")

# Probes: never cached, never tagged.
PROBE_PATHS = frozenset(("/health", "/ready"))


# ---------------------------------------------------------------------------
# Request-ID middleware
# ---------------------------------------------------------------------------

class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to request.state and echo it in the response."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        t0 = time.monotonic()
        response = await call_next(request)
        latency_ms = round((time.monotonic() - t0) * 1000, 1)
        response.headers["X-Request-ID"] = request_id
        _log_request(request, response.status_code, latency_ms, request_id)
        return response


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    OWASP response headers on every response. HSTS only when enabled
    (production, TLS terminated upstream).

    Cache-Control:
      - /health, /ready → no-store
      - everything else → no-cache (clients revalidate with the ETag)
    """

    def __init__(self, app: Any, *, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Permissions-Policy"] = (
            "camera=(), geolocation=(), microphone=(), payment=(), usb=()"
        )
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cross-Origin-Resource-Policy"] = "same-site"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        if request.url.path in PROBE_PATHS:
            response.headers["Cache-Control"] = "no-store"
        else:
            response.headers["Cache-Control"] = "no-cache"

        return response


# ---------------------------------------------------------------------------
# Request size limit middleware
# ---------------------------------------------------------------------------

MAX_BODY_BYTES = 1024       # read-only API: GET requests carry no body
MAX_HEADER_BYTES = 16_384


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests with oversized bodies (413) or headers (431)."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        header_size = sum(len(k) + len(v) for k, v in request.headers.raw)
        if header_size > MAX_HEADER_BYTES:
            return Response(
                content='{"detail":"Request headers too large"}',
                status_code=431,
                media_type="application/json",
            )

        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                too_large = int(content_length) > MAX_BODY_BYTES
            except ValueError:
                too_large = False
            if too_large:
                return Response(
                    content='{"detail":"Request body too large"}',
                    status_code=413,
                    media_type="application/json",
                )

        return await call_next(request)


# ---------------------------------------------------------------------------
# ETag / conditional-GET middleware
# ---------------------------------------------------------------------------

class ETagMiddleware(BaseHTTPMiddleware):
    """Weak ETag over the body of 200 GET responses; 304 on a match.

    The tag is derived from the response bytes, so it changes as soon as
    the catalog file on disk changes.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        if request.method != "GET" or request.url.path in PROBE_PATHS:
            return await call_next(request)

        response = await call_next(request)
        if response.status_code != 200:
            return response

        body_chunks: list[bytes] = []
        async for chunk in response.body_iterator:  # type: ignore[union-attr]
            body_chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode())
        body = b"".join(body_chunks)

        if not body:
            return Response(status_code=200, headers=dict(response.headers))

        digest = hashlib.md5(body, usedforsecurity=False).hexdigest()  # noqa: S324
        etag = f'W/"{digest}"'

        if_none_match = request.headers.get("if-none-match", "")
        if etag in {t.strip() for t in if_none_match.split(",")}:
            return Response(status_code=304, headers={"ETag": etag})

        headers = {k: v for k, v in response.headers.items() if k.lower() != "content-length"}
        headers["ETag"] = etag
        return Response(
            content=body,
            status_code=200,
            headers=headers,
            media_type=response.media_type,
        )


# ---------------------------------------------------------------------------
# Structured request logging
# ---------------------------------------------------------------------------

def _mask_ip(ip: str | None) -> str:
    """Keep the first two IPv4 octets or the first four IPv6 groups."""
    if not ip:
        return "unknown"
    if ":" in ip:
        return ":".join(ip.split(":")[:4]) + "::*"
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.*.*"
    return "unknown"


def _log_request(
    request: Request,
    status_code: int,
    latency_ms: float,
    request_id: str,
) -> None:
    log_data = {
        "event": "http_request",
        "method": request.method,
        "path": request.url.path,
        "status": status_code,
        "latency_ms": latency_ms,
        "client_ip": _mask_ip(request.client.host if request.client else None),
        "request_id": request_id,
    }
    if status_code >= 500:
        logger.error(json.dumps(log_data))
    elif status_code >= 400:
        logger.warning(json.dumps(log_data))
    else:
        logger.info(json.dumps(log_data))
