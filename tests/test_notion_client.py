"""Tests for the Notion adapter."""

from __future__ import annotations

import json

import httpx
import pytest

from dropsync.adapters.http_client import RetryPolicy
from dropsync.adapters.notion import NotionClient, PropertyMapper, is_attachable_image_url
from dropsync.config import NotionConfig
from dropsync.sync.diff import reconcile
from tests.conftest import make_item

CONFIG = NotionConfig(
    token="secret_abc",
    database_id="db-1",
    page_size=2,
    pacing_seconds=0,
    image_delay_seconds=0,
)


def _page(page_id: str, title: str, url: str, tags=(), *, archived: bool = False) -> dict:
    return {
        "id": page_id,
        "archived": archived,
        "properties": {
            "Name": {"title": [{"plain_text": title, "text": {"content": title}}]},
            "URL": {"url": url},
            "Tags": {"multi_select": [{"name": tag} for tag in tags]},
        },
    }


class _NotionApi:
    def __init__(self, pages: list[dict] | None = None) -> None:
        self.pages = pages or []
        self.requests: list[tuple[str, str, dict]] = []
        self.responses: dict[tuple[str, str], httpx.Response] = {}
        self.children: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path.removeprefix("/v1")
        self.requests.append((request.method, path, body))

        override = self.responses.get((request.method, path))
        if override is not None:
            return override

        if path.endswith("/query"):
            start = int(body.get("start_cursor") or 0)
            size = body["page_size"]
            chunk = self.pages[start : start + size]
            more = start + size < len(self.pages)
            return httpx.Response(
                200,
                json={
                    "results": chunk,
                    "has_more": more,
                    "next_cursor": str(start + size) if more else None,
                },
            )
        if request.method == "POST" and path == "/pages":
            props = body["properties"]
            return httpx.Response(
                200,
                json={"id": "page-new", "properties": props, "archived": False},
            )
        if request.method == "GET" and path.endswith("/children"):
            return httpx.Response(200, json={"results": self.children})
        if request.method == "PATCH":
            return httpx.Response(
                200, json=_page(path.rsplit("/", 1)[-1], "patched", "https://x")
            )
        return httpx.Response(404, json={"message": "not found"})

    def paths(self, method: str) -> list[str]:
        return [path for m, path, _ in self.requests if m == method]


def _client(api: _NotionApi, *, max_pages: int = 50) -> NotionClient:
    return NotionClient(
        CONFIG,
        retry=RetryPolicy(max_retries=0),
        max_pages=max_pages,
        transport=httpx.MockTransport(api),
    )


class TestPropertyMapper:
    def test_round_trip_uses_configured_columns(self):
        mapper = PropertyMapper(CONFIG)
        item = make_item("1", "https://a.com", "Title", ["x", "y", "x"])
        props = mapper.to_properties(item)

        assert props["Name"]["title"][0]["text"]["content"] == "Title"
        assert props["URL"] == {"url": "https://a.com"}
        assert props["Tags"]["multi_select"] == [{"name": "x"}, {"name": "y"}]

        page = mapper.to_mirror_page({"id": "p1", "properties": props})
        assert (page.url, page.title, page.tags) == ("https://a.com", "Title", ("x", "y"))

    def test_empty_title_and_url(self):
        props = PropertyMapper(CONFIG).to_properties(make_item("1"))
        assert props["Name"]["title"][0]["text"]["content"] == "Untitled"
        assert props["URL"] == {"url": None}

    @pytest.mark.parametrize("title", ["", "x" * 2500])
    def test_written_page_reconciles_as_skip(self, title):
        mapper = PropertyMapper(CONFIG)
        item = make_item("1", "https://a.com", title, ["x"])
        page = mapper.to_mirror_page({"id": "p1", "properties": mapper.to_properties(item)})

        plan = reconcile([item], [page])

        assert plan.to_skip == [item]
        assert plan.to_update == []

    def test_trashed_page_is_archived(self):
        page = PropertyMapper(CONFIG).to_mirror_page({"id": "p", "in_trash": True})
        assert page.archived is True


class TestImagePolicy:
    @pytest.mark.parametrize(
        "url",
        [
            "https://cdn.example.com/a.png",
            "https://cdn.example.com/a.JPG",
            "https://cdn.example.com/a.webp?w=300",
            "https://example.com/thumbnail/123",
        ],
    )
    def test_accepted(self, url):
        assert is_attachable_image_url(url)

    @pytest.mark.parametrize(
        "url",
        [None, "", "ftp://example.com/a.png", "/relative/a.png", "https://example.com/article"],
    )
    def test_rejected(self, url):
        assert not is_attachable_image_url(url)


@pytest.mark.asyncio
async def test_fetch_all_follows_cursor_and_drops_archived():
    api = _NotionApi(
        [
            _page("p1", "One", "https://1"),
            _page("p2", "Two", "https://2", archived=True),
            _page("p3", "Three", "https://3", ["a"]),
        ]
    )
    async with _client(api) as client:
        pages = await client.fetch_all()

    assert [page.id for page in pages] == ["p1", "p3"]
    assert pages[1].tags == ("a",)
    assert api.paths("POST") == ["/databases/db-1/query", "/databases/db-1/query"]
    assert api.requests[1][2]["start_cursor"] == "2"


@pytest.mark.asyncio
async def test_fetch_all_stops_at_page_cap():
    api = _NotionApi([_page(f"p{n}", str(n), f"https://{n}") for n in range(10)])
    async with _client(api, max_pages=2) as client:
        pages = await client.fetch_all()

    assert len(pages) == 4


@pytest.mark.asyncio
async def test_archive_treats_already_archived_as_success():
    api = _NotionApi()
    api.responses[("PATCH", "/pages/p1")] = httpx.Response(
        400, json={"message": "Can't edit block that is archived."}
    )
    async with _client(api) as client:
        result = await client.archive("p1")

    assert result.ok


@pytest.mark.asyncio
async def test_archive_failure_is_reported_not_raised():
    api = _NotionApi()
    api.responses[("PATCH", "/pages/p1")] = httpx.Response(404, json={"message": "missing"})
    async with _client(api) as client:
        result = await client.archive("p1")

    assert not result.ok
    assert result.status_code == 404


@pytest.mark.asyncio
async def test_create_failure_returns_result():
    api = _NotionApi()
    api.responses[("POST", "/pages")] = httpx.Response(400, json={"message": "bad url"})
    async with _client(api) as client:
        result = await client.create(make_item("1", "https://a.com", "A"))

    assert not result.ok
    assert "bad url" in result.error


@pytest.mark.asyncio
async def test_create_attaches_image_in_background():
    api = _NotionApi()
    item = make_item("1", "https://a.com", "A", image_url="https://cdn.example.com/a.png")
    async with _client(api) as client:
        result = await client.create(item)
        assert result.ok
        assert result.page.id == "page-new"
        await client.drain_background_tasks()
        assert client.pending_background_tasks == 0

    patch_body = next(
        body
        for method, path, body in api.requests
        if method == "PATCH" and path == "/blocks/page-new/children"
    )
    assert patch_body["children"][0]["image"]["external"]["url"] == "https://cdn.example.com/a.png"


@pytest.mark.asyncio
async def test_existing_image_block_is_updated():
    api = _NotionApi()
    api.children = [{"id": "blk-1", "type": "image"}]
    async with _client(api) as client:
        await client.update("p1", make_item("1", "https://a.com", "A", image_url="https://x/img/1"))
        await client.drain_background_tasks()

    assert "/blocks/blk-1" in api.paths("PATCH")


@pytest.mark.asyncio
async def test_image_failure_does_not_affect_create():
    api = _NotionApi()
    api.responses[("GET", "/blocks/page-new/children")] = httpx.Response(500)
    async with _client(api) as client:
        result = await client.create(
            make_item("1", "https://a.com", "A", image_url="https://cdn.example.com/a.png")
        )
        await client.drain_background_tasks()

    assert result.ok


@pytest.mark.asyncio
async def test_non_image_url_is_not_attached():
    api = _NotionApi()
    async with _client(api) as client:
        await client.create(make_item("1", "https://a.com", "A", image_url="https://a.com/page"))
        assert client.pending_background_tasks == 0

    assert api.paths("GET") == []
