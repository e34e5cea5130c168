"""Notion adapter for the mirror database."""

from dropsync.adapters.notion.client import NotionClient
from dropsync.adapters.notion.images import is_attachable_image_url
from dropsync.adapters.notion.properties import PropertyMapper

__all__ = ["NotionClient", "PropertyMapper", "is_attachable_image_url"]
