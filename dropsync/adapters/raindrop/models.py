"""Pydantic models for the Raindrop.io REST API."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime

from pydantic import BaseModel, Field

from dropsync.sync.models import BookmarkItem


class RaindropMedia(BaseModel):
    link: str | None = None
    type: str | None = None

    model_config = {"extra": "ignore"}


class RaindropItem(BaseModel):
    """Raindrop bookmark ("raindrop") as returned by /raindrops/{collection}."""

    id: int | str = Field(alias="_id")
    link: str | None = None
    title: str | None = None
    excerpt: str | None = None
    tags: list[str] = Field(default_factory=list)
    created: datetime | None = None
    last_update: datetime | None = Field(default=None, alias="lastUpdate")
    cover: str | None = None
    media: list[RaindropMedia] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def image_url(self) -> str | None:
        if self.cover:
            return self.cover
        for media in self.media:
            if media.link:
                return media.link
        return None

    def to_bookmark(self) -> BookmarkItem:
        return BookmarkItem(
            id=str(self.id),
            url=self.link or "",
            title=self.title or "",
            tags=self.tags,
            created_at=self.created,
            image_url=self.image_url,
        )


class RaindropList(BaseModel):
    """One page of raindrops."""

    result: bool = True
    items: list[RaindropItem] = Field(default_factory=list)
    count: int = 0

    model_config = {"populate_by_name": True, "extra": "ignore"}
