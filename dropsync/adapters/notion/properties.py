"""Mapping between bookmarks and Notion database page properties."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dropsync.sync.models import MirrorPage, mirror_title

if TYPE_CHECKING:
    from dropsync.config import NotionConfig
    from dropsync.sync.models import BookmarkItem


class PropertyMapper:
    """Builds property payloads and parses pages using the configured column names."""

    def __init__(self, config: NotionConfig) -> None:
        self.title_property = config.title_property
        self.url_property = config.url_property
        self.tags_property = config.tags_property

    def to_properties(self, item: BookmarkItem) -> dict[str, Any]:
        title = mirror_title(item)
        return {
            self.title_property: {"title": [{"text": {"content": title}}]},
            self.url_property: {"url": item.url or None},
            self.tags_property: {
                "multi_select": [{"name": tag} for tag in dict.fromkeys(item.tags)]
            },
        }

    def to_mirror_page(self, page: dict[str, Any]) -> MirrorPage:
        properties = page.get("properties") or {}

        title_parts = (properties.get(self.title_property) or {}).get("title") or []
        title = "".join(
            (part.get("text") or {}).get("content") or part.get("plain_text") or ""
            for part in title_parts
        )
        url = (properties.get(self.url_property) or {}).get("url") or ""
        tags = [
            option.get("name", "")
            for option in (properties.get(self.tags_property) or {}).get("multi_select") or []
        ]

        return MirrorPage(
            id=str(page["id"]),
            url=url,
            title=title,
            tags=tags,
            archived=bool(page.get("archived") or page.get("in_trash")),
        )
