"""Notion client: the mirror store adapter."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from dropsync.adapters.http_client import ApiError, RateLimitedClient, RetryPolicy
from dropsync.adapters.notion.images import is_attachable_image_url
from dropsync.adapters.notion.properties import PropertyMapper
from dropsync.sync.models import OperationResult

if TYPE_CHECKING:
    from typing import Self

    import httpx

    from dropsync.config import NotionConfig
    from dropsync.sync.models import BookmarkItem, MirrorPage

logger = logging.getLogger(__name__)


def _is_already_archived(exc: ApiError) -> bool:
    return exc.status == 400 and "archived" in exc.message.lower()


class NotionClient:
    """Async client for one Notion database used as the bookmark mirror.

    Mutations never raise: ``create``, ``update`` and ``archive`` return an
    ``OperationResult`` so a batch can continue past a failed item. Cover
    images are attached by detached background tasks that are allowed to
    fail silently.
    """

    def __init__(
        self,
        config: NotionConfig,
        *,
        retry: RetryPolicy | None = None,
        max_pages: int = 50,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.database_id = config.database_id
        self.max_pages = max_pages
        self.image_delay = config.image_delay_seconds
        self.mapper = PropertyMapper(config)
        self._background: set[asyncio.Task[None]] = set()
        self._http = RateLimitedClient(
            config.api_url,
            name="notion",
            headers={
                "Authorization": f"Bearer {config.token}",
                "Notion-Version": config.api_version,
                "Content-Type": "application/json",
            },
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
        await self.aclose()

    async def aclose(self) -> None:
        await self.drain_background_tasks()
        await self._http.aclose()

    async def fetch_all(self) -> list[MirrorPage]:
        """Fetch every live page of the database, bounded by the page cap."""
        pages: list[MirrorPage] = []
        cursor: str | None = None
        requests = 0

        while True:
            if requests >= self.max_pages:
                logger.warning(
                    "notion_page_cap_reached",
                    extra={"max_pages": self.max_pages, "fetched": len(pages)},
                )
                break

            body: dict[str, Any] = {"page_size": self.config.page_size}
            if cursor:
                body["start_cursor"] = cursor
            data = await self._http.request_json(
                "POST",
                f"/databases/{self.database_id}/query",
                operation="query_database",
                json=body,
            )
            requests += 1

            for raw_page in data.get("results") or []:
                page = self.mapper.to_mirror_page(raw_page)
                if not page.archived:
                    pages.append(page)

            cursor = data.get("next_cursor")
            if not data.get("has_more") or not cursor:
                break

        logger.info("notion_fetched_all_pages", extra={"count": len(pages), "requests": requests})
        return pages

    async def count(self) -> int:
        """Number of live pages. Notion has no count endpoint, so this pages through."""
        return len(await self.fetch_all())

    async def create(self, item: BookmarkItem) -> OperationResult:
        payload = {
            "parent": {"database_id": self.database_id},
            "properties": self.mapper.to_properties(item),
        }
        try:
            data = await self._http.request_json(
                "POST", "/pages", operation="create_page", json=payload
            )
        except ApiError as exc:
            logger.warning(
                "notion_page_create_failed",
                extra={"title": item.title, "url": item.url, "error": str(exc)},
            )
            return OperationResult.failure(str(exc), exc.status)
        except Exception as exc:
            logger.exception("notion_page_create_unexpected_error", extra={"url": item.url})
            return OperationResult.failure(str(exc))

        page = self.mapper.to_mirror_page(data)
        logger.debug("notion_page_created", extra={"page_id": page.id, "url": item.url})
        self._schedule_image(page.id, item.image_url)
        return OperationResult.success(page)

    async def update(self, page_id: str, item: BookmarkItem) -> OperationResult:
        payload = {"properties": self.mapper.to_properties(item)}
        try:
            data = await self._http.request_json(
                "PATCH", f"/pages/{page_id}", operation="update_page", json=payload
            )
        except ApiError as exc:
            logger.warning(
                "notion_page_update_failed",
                extra={"page_id": page_id, "url": item.url, "error": str(exc)},
            )
            return OperationResult.failure(str(exc), exc.status)
        except Exception as exc:
            logger.exception("notion_page_update_unexpected_error", extra={"page_id": page_id})
            return OperationResult.failure(str(exc))

        self._schedule_image(page_id, item.image_url)
        return OperationResult.success(self.mapper.to_mirror_page(data))

    async def archive(self, page_id: str) -> OperationResult:
        """Soft-delete a page. Archiving an archived page succeeds."""
        try:
            await self._http.request(
                "PATCH",
                f"/pages/{page_id}",
                operation="archive_page",
                json={"archived": True},
            )
        except ApiError as exc:
            if _is_already_archived(exc):
                logger.debug("notion_page_already_archived", extra={"page_id": page_id})
                return OperationResult.success()
            logger.warning(
                "notion_page_archive_failed", extra={"page_id": page_id, "error": str(exc)}
            )
            return OperationResult.failure(str(exc), exc.status)
        except Exception as exc:
            logger.exception("notion_page_archive_unexpected_error", extra={"page_id": page_id})
            return OperationResult.failure(str(exc))
        return OperationResult.success()

    # -- cover images -------------------------------------------------------

    def _schedule_image(self, page_id: str, image_url: str | None) -> None:
        if not image_url:
            return
        if not is_attachable_image_url(image_url):
            logger.debug(
                "notion_image_skipped", extra={"page_id": page_id, "image_url": image_url}
            )
            return
        task = asyncio.create_task(
            self._attach_image_later(page_id, image_url), name=f"notion-image-{page_id}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _attach_image_later(self, page_id: str, image_url: str) -> None:
        # Allowed to fail silently: the parent create/update already reported success
        try:
            await asyncio.sleep(self.image_delay)
            await self.set_page_image(page_id, image_url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "notion_image_attach_failed",
                extra={"page_id": page_id, "image_url": image_url, "error": str(exc)},
            )

    async def set_page_image(self, page_id: str, image_url: str) -> None:
        """Point the page's first image block at ``image_url``, appending one if missing."""
        image = {"type": "external", "external": {"url": image_url}}
        children = await self._http.request_json(
            "GET", f"/blocks/{page_id}/children", operation="list_blocks"
        )
        image_block_id = next(
            (
                block.get("id")
                for block in children.get("results") or []
                if block.get("type") == "image" and block.get("id")
            ),
            None,
        )
        if image_block_id:
            await self._http.request(
                "PATCH",
                f"/blocks/{image_block_id}",
                operation="update_image_block",
                json={"image": image},
            )
        else:
            await self._http.request(
                "PATCH",
                f"/blocks/{page_id}/children",
                operation="append_image_block",
                json={"children": [{"object": "block", "type": "image", "image": image}]},
            )
        logger.debug("notion_image_attached", extra={"page_id": page_id})

    @property
    def pending_background_tasks(self) -> int:
        return len(self._background)

    async def drain_background_tasks(self) -> None:
        """Wait for outstanding image tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
