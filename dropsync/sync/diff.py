"""Reconciliation of source bookmarks against mirror pages.

Everything here is pure computation over already-fetched data and never
raises: malformed items simply fail to match and are classified as creates.
"""

from __future__ import annotations

import string
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

from dropsync.sync.models import mirror_title

if TYPE_CHECKING:
    from dropsync.sync.models import BookmarkItem, MirrorPage

_TRAILING = "/" + string.whitespace


def normalize_url(url: str | None) -> str:
    """Canonical form used for URL matching.

    Drops query and fragment from absolute URLs, strips trailing slashes and
    lowercases. Values that don't parse as absolute URLs are only trimmed,
    slash-stripped and lowercased. Idempotent.
    """
    value = (url or "").strip()
    if not value:
        return ""
    try:
        parts = urlsplit(value)
    except ValueError:
        return value.rstrip(_TRAILING).lower()
    if parts.scheme and parts.netloc:
        value = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return value.rstrip(_TRAILING).lower()


def normalize_title(title: str | None) -> str:
    return (title or "").strip().lower()


def tags_match(left: Iterable[str], right: Iterable[str]) -> bool:
    """Order-insensitive tag comparison."""
    return set(left) == set(right)


@dataclass(slots=True)
class MirrorIndex:
    by_url: dict[str, MirrorPage] = field(default_factory=dict)
    by_title: dict[str, MirrorPage] = field(default_factory=dict)

    def lookup(self, item: BookmarkItem) -> MirrorPage | None:
        """URL match wins; the title index is only consulted on a URL miss."""
        url_key = normalize_url(item.url)
        if url_key and url_key in self.by_url:
            return self.by_url[url_key]
        title_key = normalize_title(item.title)
        if title_key:
            return self.by_title.get(title_key)
        return None


def build_indices(pages: Iterable[MirrorPage]) -> MirrorIndex:
    """Index pages by normalized URL and title; the first page seen for a key wins."""
    index = MirrorIndex()
    for page in pages:
        if page.archived:
            continue
        url_key = normalize_url(page.url)
        if url_key:
            index.by_url.setdefault(url_key, page)
        title_key = normalize_title(page.title)
        if title_key:
            index.by_title.setdefault(title_key, page)
    return index


def needs_update(item: BookmarkItem, page: MirrorPage) -> bool:
    return (
        normalize_title(mirror_title(item)) != normalize_title(page.title)
        or normalize_url(item.url) != normalize_url(page.url)
        or not tags_match(item.tags, page.tags)
    )


@dataclass(slots=True)
class ReconciliationPlan:
    """Every source item lands in exactly one of the three lists."""

    to_create: list[BookmarkItem] = field(default_factory=list)
    to_update: list[tuple[BookmarkItem, MirrorPage]] = field(default_factory=list)
    to_skip: list[BookmarkItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.to_skip)

    @property
    def operations(self) -> int:
        return len(self.to_create) + len(self.to_update)

    @property
    def efficiency(self) -> int:
        """Percentage of items that needed no action (100 for an empty plan)."""
        if not self.total:
            return 100
        return round((1 - self.operations / self.total) * 100)


def reconcile(items: Iterable[BookmarkItem], pages: Iterable[MirrorPage]) -> ReconciliationPlan:
    index = build_indices(pages)
    plan = ReconciliationPlan()
    for item in items:
        page = index.lookup(item)
        if page is None:
            plan.to_create.append(item)
        elif needs_update(item, page):
            plan.to_update.append((item, page))
        else:
            plan.to_skip.append(item)
    return plan
