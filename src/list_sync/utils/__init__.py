"""Utility modules for List Sync."""

from list_sync.utils.logger import setup_logging

__all__ = ["setup_logging"]
