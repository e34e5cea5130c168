"""Sync Raindrop.io bookmarks into a Notion database."""

__version__ = "1.0.0"
