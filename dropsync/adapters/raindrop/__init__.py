"""Raindrop.io adapter for the bookmark source collection."""

from dropsync.adapters.raindrop.client import RaindropClient, filter_created_since

__all__ = ["RaindropClient", "filter_created_since"]
