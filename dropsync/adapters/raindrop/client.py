"""Raindrop.io client: the source collection adapter."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from dropsync.adapters.http_client import ApiError, RateLimitedClient, RetryPolicy
from dropsync.adapters.raindrop.models import RaindropList

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Self

    import httpx

    from dropsync.config import RaindropConfig
    from dropsync.sync.models import BookmarkItem

logger = logging.getLogger(__name__)

# Collection 0 is "all raindrops except trash"
ALL_COLLECTION = 0


class RaindropClient:
    """Async client for the Raindrop.io bookmark collection."""

    def __init__(
        self,
        config: RaindropConfig,
        *,
        retry: RetryPolicy | None = None,
        max_pages: int = 50,
        recent_fallback_limit: int = 500,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.page_size = config.page_size
        self.max_pages = max_pages
        self.recent_fallback_limit = recent_fallback_limit
        self._clock = clock or (lambda: datetime.now(UTC))
        self._http = RateLimitedClient(
            config.api_url,
            name="raindrop",
            headers={"Authorization": f"Bearer {config.token}"},
            pacing_seconds=config.pacing_seconds,
            retry=retry,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def open(self) -> None:
        await self._http.open()

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self._http.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_page(
        self, page: int, per_page: int, *, search: str | None = None
    ) -> RaindropList:
        params: dict[str, Any] = {"page": page, "perpage": per_page, "sort": "-created"}
        if search:
            params["search"] = search
        data = await self._http.request_json(
            "GET",
            f"/raindrops/{ALL_COLLECTION}",
            operation="get_raindrops",
            params=params,
        )
        try:
            return RaindropList.model_validate(data)
        except ValidationError as exc:
            msg = f"raindrop get_raindrops returned an unexpected payload: {exc}"
            raise ApiError(msg) from exc

    async def _paginate(
        self, *, limit: int | None, search: str | None, operation: str
    ) -> list[BookmarkItem]:
        items: list[BookmarkItem] = []
        pages = 0
        stop_reason = "short_page"

        while True:
            if pages >= self.max_pages:
                stop_reason = "page_cap"
                logger.warning(
                    "raindrop_page_cap_reached",
                    extra={"operation": operation, "max_pages": self.max_pages},
                )
                break
            try:
                result = await self._get_page(pages, self.page_size, search=search)
            except ApiError as exc:
                if not items:
                    raise
                stop_reason = "partial_failure"
                logger.warning(
                    "raindrop_fetch_partial",
                    extra={
                        "operation": operation,
                        "page": pages,
                        "fetched": len(items),
                        "error": str(exc),
                    },
                )
                break

            pages += 1
            items.extend(raindrop.to_bookmark() for raindrop in result.items)
            logger.debug(
                "raindrop_page_fetched",
                extra={"operation": operation, "page": pages, "total_so_far": len(items)},
            )

            if limit is not None and len(items) >= limit:
                stop_reason = "limit"
                items = items[:limit]
                break
            if len(result.items) < self.page_size:
                break

        logger.info(
            "raindrop_fetch_complete",
            extra={
                "operation": operation,
                "count": len(items),
                "pages": pages,
                "stop_reason": stop_reason,
            },
        )
        return items

    async def fetch_all(self, limit: int | None = None) -> list[BookmarkItem]:
        """Fetch bookmarks newest first.

        Stops on a short page, once ``limit`` items are collected, or at the
        page cap. A failure after the first page returns what was collected.
        """
        if limit is not None and limit <= 0:
            limit = None
        return await self._paginate(limit=limit, search=None, operation="fetch_all")

    async def fetch_recent(self, hours_back: float) -> list[BookmarkItem]:
        """Fetch bookmarks created within the last ``hours_back`` hours.

        The server-side ``created:>`` search has day granularity, so results
        are filtered again against the exact cutoff. If the filtered query
        fails, falls back to a capped ``fetch_all`` filtered locally.
        """
        cutoff = self._clock() - timedelta(hours=hours_back)
        # Raindrop's created:> is exclusive and date-only; step back one day
        search = f"created:>{(cutoff - timedelta(days=1)).date().isoformat()}"

        try:
            items = await self._paginate(limit=None, search=search, operation="fetch_recent")
        except ApiError as exc:
            logger.warning(
                "raindrop_recent_fallback",
                extra={"error": str(exc), "fallback_limit": self.recent_fallback_limit},
            )
            items = await self.fetch_all(limit=self.recent_fallback_limit)

        recent = filter_created_since(items, cutoff)
        logger.info(
            "raindrop_recent_fetched",
            extra={
                "hours_back": hours_back,
                "fetched": len(items),
                "recent": len(recent),
            },
        )
        return recent

    async def count(self) -> int:
        """Total number of bookmarks, from a single one-item page."""
        result = await self._get_page(0, 1)
        return result.count


def filter_created_since(items: list[BookmarkItem], cutoff: datetime) -> list[BookmarkItem]:
    """Keep items created at or after ``cutoff``; undated items are dropped."""
    return [item for item in items if item.created_at is not None and item.created_at >= cutoff]
