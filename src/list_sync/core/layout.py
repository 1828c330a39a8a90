"""
Mirror Layout - deterministic object keys for a collection.

Every key for a collection lives under ``{prefix}list={collection}/``:

    {prefix}list={collection}/
        _state/sync_state.json
        item_id={id}/
            row.json
            attachments_meta.json
            attachments/{safe_file_name}
            deletion_marker.json
"""

from __future__ import annotations

import mimetypes
import re
from dataclasses import dataclass

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")

_CONTENT_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "txt": "text/plain",
    "json": "application/json",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def sanitize_file_name(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with an underscore."""
    return _UNSAFE_CHARS.sub("_", name)


def content_type_for(file_name: str) -> str:
    """Guess the MIME type of an attachment from its extension."""
    _, dot, ext = file_name.rpartition(".")
    if dot:
        known = _CONTENT_TYPES.get(ext.lower())
        if known:
            return known
    guessed, _ = mimetypes.guess_type(file_name, strict=False)
    return guessed or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class MirrorLayout:
    """Key builder for one collection under a destination prefix."""

    prefix: str
    collection: str

    @property
    def collection_prefix(self) -> str:
        return f"{self.prefix}list={self.collection}/"

    @property
    def state_key(self) -> str:
        return f"{self.collection_prefix}_state/sync_state.json"

    def item_prefix(self, item_id: str | int) -> str:
        return f"{self.collection_prefix}item_id={item_id}/"

    def row_key(self, item_id: str | int) -> str:
        return f"{self.item_prefix(item_id)}row.json"

    def attachments_meta_key(self, item_id: str | int) -> str:
        return f"{self.item_prefix(item_id)}attachments_meta.json"

    def attachment_key(self, item_id: str | int, file_name: str) -> str:
        return f"{self.item_prefix(item_id)}attachments/{sanitize_file_name(file_name)}"

    def deletion_marker_key(self, item_id: str | int) -> str:
        return f"{self.item_prefix(item_id)}deletion_marker.json"
