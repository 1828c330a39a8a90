"""
Mirror Writers - destination object stores.

Two backends share the MirrorWriter interface:
- S3Mirror: Amazon S3 (or any S3-compatible endpoint) via boto3
- FilesystemMirror: a directory tree, one file per key

All writes are overwrite-idempotent: putting the same key with the same
content twice leaves the store unchanged.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from list_sync.config import MirrorBackend, Settings
from list_sync.errors import ObjectNotFoundError, TransportError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def encode_json(value: Any) -> bytes:
    """Serialize a value the way every mirror stores JSON."""
    return json.dumps(value, indent=2, default=str).encode("utf-8")


class MirrorWriter(Protocol):
    """Interface for destination stores."""

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
    ) -> None: ...

    async def put_json(self, key: str, value: Any) -> None: ...

    async def object_exists(self, key: str) -> bool: ...

    async def get_object(self, key: str) -> bytes: ...

    def describe_key(self, key: str) -> str: ...


class S3Mirror:
    """
    S3 mirror backend.

    boto3 is synchronous, so each call runs in a worker thread. The client
    is built once per mirror instance with explicit timeouts and a bounded
    retry budget; credentials come from the arguments when both halves are
    given, otherwise from the default AWS chain (env, profile, IAM role).

    Example:
        mirror = S3Mirror(bucket="ops-mirror", region="eu-west-1")
        await mirror.put_json("list=Requests/item_id=1/row.json", {"Id": 1})
    """

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        endpoint_url: str | None = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_attempts: int = 3,
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.region = region

        if client is None:
            config = BotoConfig(
                region_name=region,
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": max_attempts, "mode": "standard"},
            )
            kwargs: dict[str, Any] = {"config": config}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            if access_key_id and secret_access_key:
                kwargs["aws_access_key_id"] = access_key_id
                kwargs["aws_secret_access_key"] = secret_access_key
            client = boto3.client("s3", **kwargs)

        self._client = client

    def describe_key(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        await self._call(
            "put_object",
            key,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )

    async def put_json(self, key: str, value: Any) -> None:
        await self.put_object(key, encode_json(value), JSON_CONTENT_TYPE)

    async def object_exists(self, key: str) -> bool:
        try:
            await self._call("head_object", key, Bucket=self.bucket, Key=key)
        except ObjectNotFoundError:
            return False
        return True

    async def get_object(self, key: str) -> bytes:
        response = await self._call("get_object", key, Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        finally:
            body.close()

    async def _call(self, method: str, key: str, **params: Any) -> dict[str, Any]:
        """Run a client method in a thread, translating botocore errors."""
        try:
            return await asyncio.to_thread(getattr(self._client, method), **params)
        except ClientError as e:
            error = e.response.get("Error", {})
            meta = e.response.get("ResponseMetadata", {})
            status = meta.get("HTTPStatusCode")
            if error.get("Code") in _NOT_FOUND_CODES or status == 404:
                raise ObjectNotFoundError(key) from e
            raise TransportError(
                f"S3 {method} failed for {self.describe_key(key)}: "
                f"{error.get('Code', 'Unknown')} {error.get('Message', '')}".rstrip(),
                operation=f"s3.{method}",
                status=status,
                reason=error.get("Code", ""),
                headers=meta.get("HTTPHeaders"),
                body=error,
            ) from e
        except BotoCoreError as e:
            raise TransportError(
                f"S3 {method} failed for {self.describe_key(key)}: {e}",
                operation=f"s3.{method}",
            ) from e


class FilesystemMirror:
    """
    Filesystem mirror backend.

    Keys map to relative paths under ``root``; writes go to a temporary
    sibling first and are renamed into place so readers never observe a
    half-written object.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def describe_key(self, key: str) -> str:
        return str(self._path(key))

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Key escapes mirror root: {key}")
        return path

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        await asyncio.to_thread(self._write, self._path(key), body)

    async def put_json(self, key: str, value: Any) -> None:
        await self.put_object(key, encode_json(value), JSON_CONTENT_TYPE)

    async def object_exists(self, key: str) -> bool:
        return self._path(key).is_file()

    async def get_object(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(key) from e

    @staticmethod
    def _write(path: Path, body: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_bytes(body)
        tmp.replace(path)


def create_mirror(settings: Settings) -> MirrorWriter:
    """Create the configured mirror backend."""
    cfg = settings.mirror
    if cfg.backend == MirrorBackend.FILESYSTEM:
        logger.debug("Using filesystem mirror at %s", cfg.root_dir)
        return FilesystemMirror(cfg.root_dir)

    logger.debug("Using S3 mirror s3://%s (%s)", cfg.bucket, cfg.region)
    return S3Mirror(
        bucket=cfg.bucket,
        region=cfg.region,
        access_key_id=cfg.access_key_id,
        secret_access_key=cfg.secret_access_key.get_secret_value(),
        endpoint_url=cfg.endpoint_url,
        connect_timeout=cfg.connect_timeout,
        read_timeout=cfg.read_timeout,
        max_attempts=cfg.max_attempts,
    )
