"""Rate-limited HTTP client shared by the Raindrop and Notion adapters."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from typing import Self

    from dropsync.config import RetryConfig

logger = logging.getLogger(__name__)

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class ApiError(Exception):
    """A vendor API call failed for good (non-retryable, or retries exhausted)."""

    def __init__(self, message: str, status: int | None = None, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.retryable = retryable

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.backoff_base_seconds,
            multiplier=config.backoff_multiplier,
            max_delay=config.backoff_max_seconds,
        )

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait after failed attempt ``attempt`` (0-indexed)."""
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_delay)
        return min(self.base_delay * (self.multiplier**attempt), self.max_delay)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a numeric Retry-After header; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:300] if text else f"Status {response.status_code}"
    if isinstance(data, dict):
        for key in ("message", "errorMessage", "error"):
            if data.get(key):
                return str(data[key])
    return f"Status {response.status_code}"


class RateLimitedClient:
    """Async HTTP client with per-call pacing and retry on 429/5xx/network errors.

    Every attempt, including the first, is preceded by ``pacing_seconds`` of
    sleep. Rate-limit responses, 5xx gateway errors and transport failures
    share one retry budget; any other 4xx fails immediately.
    """

    def __init__(
        self,
        base_url: str,
        *,
        name: str,
        headers: dict[str, str] | None = None,
        pacing_seconds: float = 0.0,
        retry: RetryPolicy | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.name = name
        self.headers = dict(headers or {})
        self.pacing_seconds = pacing_seconds
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = f"{self.name} client not initialized. Use async context manager."
            raise RuntimeError(msg)
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Raises:
            ApiError: On a non-retryable status or once the retry budget is spent.
        """
        last_status: int | None = None
        last_error = ""

        for attempt in range(self.retry.max_retries + 1):
            await asyncio.sleep(self.pacing_seconds)
            logger.debug(
                "api_request_attempt",
                extra={
                    "api": self.name,
                    "operation": operation,
                    "attempt": attempt + 1,
                    "wait_seconds": self.pacing_seconds,
                },
            )
            retry_after: float | None = None
            try:
                response = await self.client.request(method, path, **kwargs)
            except httpx.TransportError as exc:
                last_status = None
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if response.status_code < 400:
                    if attempt:
                        logger.info(
                            "api_request_recovered",
                            extra={
                                "api": self.name,
                                "operation": operation,
                                "attempt": attempt + 1,
                            },
                        )
                    return response

                last_status = response.status_code
                last_error = _error_message(response)
                if last_status not in RETRYABLE_STATUS_CODES:
                    logger.warning(
                        "api_request_rejected",
                        extra={
                            "api": self.name,
                            "operation": operation,
                            "status": last_status,
                            "error": last_error,
                        },
                    )
                    raise ApiError(
                        f"{self.name} {operation} failed: {last_error}",
                        last_status,
                        retryable=False,
                    )
                if last_status == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))

            if attempt == self.retry.max_retries:
                break

            wait = self.retry.delay_for(attempt, retry_after)
            logger.warning(
                "api_retry_attempt",
                extra={
                    "api": self.name,
                    "operation": operation,
                    "attempt": attempt + 1,
                    "max_retries": self.retry.max_retries,
                    "status": last_status,
                    "wait_seconds": round(wait, 2),
                    "error": last_error,
                },
            )
            await asyncio.sleep(wait)

        logger.error(
            "api_retry_exhausted",
            extra={
                "api": self.name,
                "operation": operation,
                "attempts": self.retry.max_retries + 1,
                "status": last_status,
                "error": last_error,
            },
        )
        raise ApiError(
            f"{self.name} {operation} failed after {self.retry.max_retries + 1} attempts: "
            f"{last_error}",
            last_status,
            retryable=False,
        )

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        response = await self.request(method, path, operation=operation, **kwargs)
        try:
            data = response.json()
        except ValueError as exc:
            msg = f"{self.name} {operation} returned invalid JSON"
            raise ApiError(msg, response.status_code) from exc
        if not isinstance(data, dict):
            msg = f"{self.name} {operation} returned unexpected payload"
            raise ApiError(msg, response.status_code)
        return data
