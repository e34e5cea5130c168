"""Adapters for the external bookmark source and mirror store."""
