"""Shared fixtures and test doubles."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import pytest

from list_sync.config import Settings
from list_sync.connectors.auth import StaticTokenProvider
from list_sync.connectors.mirror import JSON_CONTENT_TYPE, encode_json
from list_sync.core.engine import SyncEngine
from list_sync.errors import ObjectNotFoundError, TransportError


class InMemoryMirror:
    """MirrorWriter keeping objects in a dict, with a write log."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.writes: list[str] = []

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        self.objects[key] = (bytes(body), content_type)
        self.writes.append(key)

    async def put_json(self, key: str, value: Any) -> None:
        await self.put_object(key, encode_json(value), JSON_CONTENT_TYPE)

    async def object_exists(self, key: str) -> bool:
        return key in self.objects

    async def get_object(self, key: str) -> bytes:
        if key not in self.objects:
            raise ObjectNotFoundError(key)
        return self.objects[key][0]

    def describe_key(self, key: str) -> str:
        return f"memory://{key}"

    def json(self, key: str) -> Any:
        return json.loads(self.objects[key][0])

    def keys_ending_with(self, suffix: str) -> list[str]:
        return sorted(k for k in self.objects if k.endswith(suffix))


class FakeListSource:
    """ListSource serving a fixed list of items and attachments."""

    def __init__(
        self,
        items: list[dict[str, Any]] | None = None,
        attachments: dict[str, list[dict[str, Any]]] | None = None,
        contents: dict[tuple[str, str], bytes] | None = None,
    ) -> None:
        self.items = list(items or [])
        self.attachments = attachments or {}
        self.contents = contents or {}
        self.failing_items: set[str] = set()
        self.tokens_seen: list[str] = []

    async def iter_items(self, list_name: str, token: str) -> AsyncIterator[dict[str, Any]]:
        self.tokens_seen.append(token)
        for item in list(self.items):
            yield item

    async def get_attachments(
        self, list_name: str, item_id: str | int, token: str
    ) -> list[dict[str, Any]]:
        if str(item_id) in self.failing_items:
            raise TransportError(
                "get_attachments failed with HTTP 503",
                operation="get_attachments",
                status=503,
                reason="Service Unavailable",
                body=b"try later",
            )
        return list(self.attachments.get(str(item_id), []))

    async def download_attachment(
        self, list_name: str, item_id: str | int, file_name: str, token: str
    ) -> bytes:
        return self.contents[(str(item_id), file_name)]


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def item(item_id: int, modified: str | None, **fields: Any) -> dict[str, Any]:
    """A raw list item as the source returns it."""
    data: dict[str, Any] = {"Id": item_id, "Title": f"Item {item_id}", **fields}
    if modified is not None:
        data["Modified"] = modified
    return data


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        site_url="https://contoso.sharepoint.com/sites/ops",
        list_name="Requests",
        prefix="raw/",
        auth={"access_token": "test-token"},
        mirror={"backend": "filesystem", "root_dir": tmp_path / "mirror"},
    )


@pytest.fixture
def mirror() -> InMemoryMirror:
    return InMemoryMirror()


@pytest.fixture
def source() -> FakeListSource:
    return FakeListSource()


@pytest.fixture
def engine(
    settings: Settings,
    source: FakeListSource,
    mirror: InMemoryMirror,
    clock: FixedClock,
) -> SyncEngine:
    return SyncEngine(
        settings,
        source,
        mirror,
        StaticTokenProvider("test-token"),
        clock=clock,
    )
