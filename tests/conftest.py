"""Pytest configuration and shared fixtures.

Provides in-memory fakes for the Raindrop and Notion clients plus helpers for
building bookmarks and pages.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from dropsync.adapters.http_client import ApiError
from dropsync.config import SyncConfig
from dropsync.sync.models import BookmarkItem, MirrorPage, OperationResult, mirror_title

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=UTC)


def make_item(
    item_id: str,
    url: str = "",
    title: str = "",
    tags: tuple[str, ...] | list[str] = (),
    *,
    created_at: datetime | None = None,
    image_url: str | None = None,
) -> BookmarkItem:
    return BookmarkItem(
        id=item_id,
        url=url,
        title=title,
        tags=tags,
        created_at=created_at or NOW - timedelta(days=1),
        image_url=image_url,
    )


def make_page(
    page_id: str,
    url: str = "",
    title: str = "",
    tags: tuple[str, ...] | list[str] = (),
    *,
    archived: bool = False,
) -> MirrorPage:
    return MirrorPage(id=page_id, url=url, title=title, tags=tags, archived=archived)


class FakeSource:
    """In-memory stand-in for RaindropClient."""

    def __init__(self, items: list[BookmarkItem] | None = None, *, fail: bool = False) -> None:
        self.items = list(items or [])
        self.fail = fail
        self.calls: list[tuple[str, Any]] = []

    async def fetch_all(self, limit: int | None = None) -> list[BookmarkItem]:
        self.calls.append(("fetch_all", limit))
        if self.fail:
            raise ApiError("raindrop fetch_all failed", 503)
        return self.items[:limit] if limit else list(self.items)

    async def fetch_recent(self, hours_back: float) -> list[BookmarkItem]:
        self.calls.append(("fetch_recent", hours_back))
        if self.fail:
            raise ApiError("raindrop fetch_recent failed", 503)
        cutoff = NOW - timedelta(hours=hours_back)
        return [item for item in self.items if item.created_at and item.created_at >= cutoff]

    async def count(self) -> int:
        return len(self.items)


class FakeMirror:
    """In-memory stand-in for NotionClient.

    ``fail_titles`` makes create/update return a failure for matching items;
    ``raise_titles`` makes them raise instead.
    """

    def __init__(
        self,
        pages: list[MirrorPage] | None = None,
        *,
        fail_titles: set[str] | None = None,
        raise_titles: set[str] | None = None,
        fail_archive_ids: set[str] | None = None,
        fail_fetch: bool = False,
    ) -> None:
        self.pages = {page.id: page for page in pages or []}
        self.fail_titles = fail_titles or set()
        self.raise_titles = raise_titles or set()
        self.fail_archive_ids = fail_archive_ids or set()
        self.fail_fetch = fail_fetch
        self.created: list[BookmarkItem] = []
        self.updated: list[tuple[str, BookmarkItem]] = []
        self.archived: list[str] = []
        self.attempted: list[str] = []
        self._next_id = 0

    async def fetch_all(self) -> list[MirrorPage]:
        if self.fail_fetch:
            raise ApiError("notion query_database failed", 500)
        return [page for page in self.pages.values() if not page.archived]

    async def count(self) -> int:
        return len(await self.fetch_all())

    async def create(self, item: BookmarkItem) -> OperationResult:
        self.attempted.append(item.title)
        if item.title in self.raise_titles:
            raise RuntimeError(f"boom: {item.title}")
        if item.title in self.fail_titles:
            return OperationResult.failure("validation_error", 400)
        self._next_id += 1
        page = make_page(f"new-{self._next_id}", item.url, mirror_title(item), item.tags)
        self.pages[page.id] = page
        self.created.append(item)
        return OperationResult.success(page)

    async def update(self, page_id: str, item: BookmarkItem) -> OperationResult:
        self.attempted.append(item.title)
        if item.title in self.fail_titles:
            return OperationResult.failure("conflict", 409)
        page = make_page(page_id, item.url, mirror_title(item), item.tags)
        self.pages[page_id] = page
        self.updated.append((page_id, item))
        return OperationResult.success(page)

    async def archive(self, page_id: str) -> OperationResult:
        if page_id in self.fail_archive_ids:
            return OperationResult.failure("rate_limited", 429)
        page = self.pages[page_id]
        self.pages[page_id] = page.model_copy(update={"archived": True})
        self.archived.append(page_id)
        return OperationResult.success()


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[Any] = []

    def publish(self, event: Any) -> None:
        self.events.append(event)

    def kinds(self) -> list[str]:
        return [event.kind for event in self.events]


class MutableClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def sync_config() -> SyncConfig:
    """Sync policy with all pacing delays disabled."""
    return SyncConfig(
        batch_size=3,
        item_delay_seconds=0,
        error_delay_seconds=0,
        batch_delay_seconds=0,
        progress_every=20,
    )
