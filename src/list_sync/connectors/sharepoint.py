"""
SharePoint REST API Client.

Read-only access to SharePoint list data:
- Paginated item listing (follows next links to exhaustion)
- Attachment metadata per item
- Attachment content download

Every failed request raises TransportError with the response attached;
pagination is not retried page-by-page, the caller abandons the cycle.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from list_sync.config import Settings
from list_sync.errors import TransportError

logger = logging.getLogger(__name__)

# Keys SharePoint uses for the next page link, depending on odata mode
NEXT_LINK_KEYS = ("odata.nextLink", "@odata.nextLink", "__next")


def _quote(value: str) -> str:
    """Escape a value for use inside a single-quoted REST URL segment."""
    return value.replace("'", "''")


def record_identity(item: dict[str, Any]) -> str:
    """Stable identity of a list item, as a string."""
    for key in ("Id", "ID", "id"):
        if item.get(key) is not None:
            return str(item[key])
    raise KeyError("List item has no Id field")


def record_modified(item: dict[str, Any]) -> str | None:
    """Last-modified timestamp of a list item, if the source reported one."""
    return item.get("Modified") or item.get("modified") or None


class SharePointClient:
    """
    SharePoint list REST client.

    Example:
        async with SharePointClient("https://contoso.sharepoint.com/sites/ops") as sp:
            async for item in sp.iter_items("Requests", token):
                print(item["Id"], item["Modified"])
    """

    def __init__(
        self,
        site_url: str,
        page_size: int = 5000,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize SharePoint client.

        Args:
            site_url: Absolute site URL hosting the list
            page_size: Items per listing page ($top)
            timeout: Read timeout for requests in seconds
            http_client: Pre-built client (tests inject a mock transport)
        """
        self.site_url = site_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def list_url(self, list_name: str) -> str:
        return f"{self.site_url}/_api/web/lists/getbytitle('{_quote(list_name)}')"

    def _get_headers(self, token: str, accept_json: bool = True) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {token}"}
        if accept_json:
            headers["Accept"] = "application/json;odata=nometadata"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=10.0,
                    read=self.timeout,
                    write=30.0,
                    pool=10.0,
                ),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "SharePointClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _get(
        self,
        url: str,
        token: str,
        operation: str,
        accept_json: bool = True,
    ) -> httpx.Response:
        """Issue a GET, raising TransportError for any failure."""
        client = await self._get_client()
        try:
            response = await client.get(
                url, headers=self._get_headers(token, accept_json)
            )
        except httpx.TransportError as e:
            raise TransportError(f"{operation} failed: {e}", operation=operation) from e

        if response.is_error:
            raise TransportError.from_response(response, operation)
        return response

    async def iter_items(
        self,
        list_name: str,
        token: str,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Yield every item of a list in source order, page by page.

        Args:
            list_name: List title
            token: Bearer token
        """
        next_url: str | None = f"{self.list_url(list_name)}/items?$top={self.page_size}"
        fetched = 0
        page = 0

        while next_url:
            page += 1
            response = await self._get(next_url, token, "list_items")
            data = response.json()

            items = data.get("value") or []
            fetched += len(items)
            for item in items:
                yield item

            next_url = next(
                (data[key] for key in NEXT_LINK_KEYS if data.get(key)),
                None,
            )
            if next_url:
                logger.info("  Fetched %d items so far (page %d), continuing...", fetched, page)

    async def fetch_all(self, list_name: str, token: str) -> list[dict[str, Any]]:
        """Collect every item of a list into memory."""
        return [item async for item in self.iter_items(list_name, token)]

    async def get_attachments(
        self,
        list_name: str,
        item_id: str | int,
        token: str,
    ) -> list[dict[str, Any]]:
        """Attachment descriptors (FileName, ServerRelativeUrl) for one item."""
        url = f"{self.list_url(list_name)}/items({item_id})/AttachmentFiles"
        response = await self._get(url, token, "get_attachments")
        return response.json().get("value") or []

    async def download_attachment(
        self,
        list_name: str,
        item_id: str | int,
        file_name: str,
        token: str,
    ) -> bytes:
        """Raw bytes of one attachment via the $value endpoint."""
        url = (
            f"{self.list_url(list_name)}/items({item_id})"
            f"/AttachmentFiles('{_quote(file_name)}')/$value"
        )
        response = await self._get(url, token, "download_attachment", accept_json=False)
        return response.content


# Convenience function for creating client from settings
def create_sharepoint_client(settings: Settings) -> SharePointClient:
    """Create a SharePointClient from settings."""
    return SharePointClient(
        site_url=settings.site_url,
        page_size=settings.sync.page_size,
        timeout=settings.sync.request_timeout,
    )
