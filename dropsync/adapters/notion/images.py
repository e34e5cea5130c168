"""Validation policy for cover images attached to Notion pages."""

from __future__ import annotations

from urllib.parse import urlsplit

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp")
IMAGE_KEYWORDS = ("image", "img", "thumbnail", "asset")


def is_attachable_image_url(url: str | None) -> bool:
    """Return True when ``url`` is an absolute http(s) URL that looks like an image.

    Accepts a known image extension at the end of the URL or right before a
    query string, or a URL mentioning one of the image keywords.
    """
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return False

    lowered = url.strip().lower()
    if any(lowered.endswith(ext) or f"{ext}?" in lowered for ext in IMAGE_EXTENSIONS):
        return True
    return any(keyword in lowered for keyword in IMAGE_KEYWORDS)
