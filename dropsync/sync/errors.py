"""Errors raised by sync runs."""

from __future__ import annotations


class SyncFetchError(Exception):
    """An initial bulk fetch failed, so no meaningful reconciliation is possible."""

    def __init__(self, side: str, cause: Exception) -> None:
        self.side = side
        self.cause = cause
        super().__init__(f"Could not fetch {side} items: {cause}")
