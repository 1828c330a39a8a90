"""List Sync - incremental SharePoint list to object store mirroring."""

__version__ = "1.0.0"
__author__ = "List Sync Contributors"

from list_sync.config import Settings

__all__ = ["Settings", "__version__"]
