from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol
from urllib.parse import urljoin

import aiohttp

from mpaka.offline.errors import AssetFetchError
from mpaka.offline.models import CachedAsset
from mpaka.offline.utils import format_rfc3339, utc_now

logger = logging.getLogger(__name__)


class AssetSource(Protocol):
    async def fetch_asset(self, name: str) -> CachedAsset:
        """Return fresh content for a logical asset name or raise AssetFetchError."""
        ...


class HttpAssetSource:
    """Fetches assets from the application origin, bypassing intermediate HTTP caches."""

    def __init__(self, origin_url: str, *, request_timeout_seconds: Optional[float] = None) -> None:
        self._origin_url = origin_url.rstrip("/") + "/"
        self._request_timeout_seconds = request_timeout_seconds

    def url_for(self, name: str) -> str:
        return urljoin(self._origin_url, name.lstrip("/"))

    async def fetch_asset(self, name: str) -> CachedAsset:
        url = self.url_for(name)
        timeout = aiohttp.ClientTimeout(total=self._request_timeout_seconds)
        headers = {"Cache-Control": "no-cache", "Pragma": "no-cache"}
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=headers) as response:
                    if response.status != 200:
                        raise AssetFetchError(
                            f"Unexpected status {response.status} for {url}",
                            asset=name,
                            status=response.status,
                        )
                    body = await response.read()
                    content_type = response.headers.get("Content-Type", "application/octet-stream")
        except asyncio.TimeoutError as e:
            raise AssetFetchError(f"Timed out fetching {url}", asset=name) from e
        except aiohttp.ClientError as e:
            raise AssetFetchError(f"Request error for {url}: {e}", asset=name) from e

        logger.debug("offline.asset_fetched asset=%s bytes=%d", name, len(body))
        return CachedAsset(name=name, body=body, content_type=content_type, fetched_at=format_rfc3339(utc_now()))
