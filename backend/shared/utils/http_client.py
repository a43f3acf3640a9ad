"""
Async HTTP client wrapper for provider and push-gateway requests.
Includes client-identity rotation, timeout management, bounded retries and metrics.
"""
from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any, Optional

import httpx

from shared.config import get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_REQUESTS

logger = get_logger(__name__)

# Browser identities rotated per request so polling does not look like one bot
USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Linux; Android 14; SM-S918B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
)


class UserAgentRotator:
    """Round-robin over a fixed pool of client identities."""

    def __init__(self, agents: tuple[str, ...] = USER_AGENTS) -> None:
        self._cycle = itertools.cycle(agents)

    def next(self) -> str:
        return next(self._cycle)


class ProviderHTTPClient:
    """
    Async HTTP client tailored for unofficial sports feeds and push APIs.

    Every request carries the next identity from the rotator. Server errors and
    timeouts are retried up to ``max_retries`` attempts in total; 4xx responses
    other than 429 raise immediately.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        max_retries: int = 1,
        rotate_user_agent: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.provider_request_timeout_s
        self._max_retries = max(1, max_retries)
        self._default_headers = headers or {}
        self._rotator = UserAgentRotator() if rotate_user_agent else None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def provider(self) -> str:
        return self._provider

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """GET ``path`` and return the successful response."""
        return await self._request("GET", path, params=params, extra_headers=extra_headers)

    async def post(
        self,
        path: str,
        json_body: Any = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST a JSON body to ``path`` and return the successful response."""
        return await self._request("POST", path, json_body=json_body, extra_headers=extra_headers)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        extra_headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform a request with retry, metrics and structured logging.

        Raises:
            httpx.HTTPStatusError: On non-retryable HTTP errors or after the last attempt.
            httpx.TransportError: If the last attempt failed at the transport level.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        last_exc: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            headers = dict(extra_headers or {})
            if self._rotator is not None:
                headers["User-Agent"] = self._rotator.next()

            start_time = time.perf_counter()
            status = "unknown"
            try:
                resp = await self._client.request(
                    method, path, params=params, json=json_body, headers=headers
                )
                status = str(resp.status_code)

                if resp.status_code == 429 or resp.status_code >= 500:
                    logger.warning(
                        "provider_retryable_status",
                        provider=self._provider,
                        path=path,
                        status=resp.status_code,
                        attempt=attempt,
                    )
                    if attempt < self._max_retries:
                        retry_after = resp.headers.get("Retry-After", "")
                        delay = float(retry_after) if retry_after.isdigit() else 1.0 * attempt
                        await asyncio.sleep(min(delay, 10.0))
                        continue

                resp.raise_for_status()
                logger.debug(
                    "provider_request_success",
                    provider=self._provider,
                    path=path,
                    status=resp.status_code,
                    latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                return resp

            except httpx.HTTPStatusError as exc:
                last_exc = exc
                status = str(exc.response.status_code)
                raise

            except httpx.TransportError as exc:
                status = "timeout" if isinstance(exc, httpx.TimeoutException) else "error"
                last_exc = exc
                logger.warning(
                    "provider_transport_error",
                    provider=self._provider,
                    path=path,
                    error=str(exc),
                    attempt=attempt,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(1.0 * attempt)
                    continue

            finally:
                PROVIDER_REQUESTS.labels(provider=self._provider, status=status).inc()
                PROVIDER_LATENCY.labels(provider=self._provider).observe(
                    time.perf_counter() - start_time
                )

        if last_exc:
            raise last_exc
        raise RuntimeError(f"{method} {path} failed after {self._max_retries} attempts")
