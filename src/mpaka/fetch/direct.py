from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import urljoin

import aiohttp

from mpaka.config.models import FetchSettings
from mpaka.fetch.decoding import ContentDecodingError, decode_body
from mpaka.fetch.errors import FetchTimeoutError, HttpStatusError, NetworkError, RedirectLoopError
from mpaka.fetch.models import DirectResponse, Profile

logger = logging.getLogger(__name__)


class DirectFetcher:
    """Single plain HTTP(S) retrieval with manual redirects and explicit body decoding."""

    def __init__(self, settings: FetchSettings) -> None:
        self._settings = settings

    async def fetch(
        self,
        url: str,
        profile: Profile,
        *,
        timeout: Optional[float] = None,
        redirect_budget: Optional[int] = None,
    ) -> DirectResponse:
        timeout_seconds = self._settings.request_timeout_seconds if timeout is None else timeout
        budget = self._settings.max_redirects if redirect_budget is None else redirect_budget
        try:
            # Cancelling the inner task on expiry aborts the in-flight transfer.
            return await asyncio.wait_for(
                self._fetch_following_redirects(url, profile, budget),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.debug("fetch.direct_timeout url=%s timeout_seconds=%s", url, timeout_seconds)
            raise FetchTimeoutError(f"Request timeout after {timeout_seconds}s", url=url) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request error: {e}", url=url) from e
        except ValueError as e:
            # yarl rejects malformed URLs with ValueError before any I/O.
            raise NetworkError(f"Invalid URL: {e}", url=url) from e

    async def _fetch_following_redirects(self, url: str, profile: Profile, redirect_budget: int) -> DirectResponse:
        chain = [url]
        current = url
        remaining = redirect_budget
        async with aiohttp.ClientSession(auto_decompress=False) as session:
            while True:
                async with session.get(current, headers=profile.as_headers(), allow_redirects=False) as response:
                    status = response.status
                    location = response.headers.get("Location")
                    if 300 <= status < 400 and location:
                        if remaining <= 0:
                            raise RedirectLoopError(chain, url=url)
                        remaining -= 1
                        current = urljoin(current, location)
                        chain.append(current)
                        logger.debug("fetch.direct_redirect url=%s location=%s remaining=%d", url, current, remaining)
                        continue

                    if not 200 <= status < 300:
                        raise HttpStatusError(status, url=current, reason=response.reason or "")

                    raw = await response.read()
                    content_encoding = response.headers.get("Content-Encoding")
                    charset = response.charset

                try:
                    body = decode_body(raw, content_encoding)
                except ContentDecodingError as e:
                    raise NetworkError(f"Stream error: {e}", url=current) from e

                text = body.decode(_codec_or_default(charset), errors="replace")
                logger.debug(
                    "fetch.direct_success url=%s final_url=%s status=%d bytes=%d",
                    url,
                    current,
                    status,
                    len(body),
                )
                return DirectResponse(body=text, final_url=current, status=status, redirect_chain=tuple(chain))


def _codec_or_default(charset: Optional[str]) -> str:
    if not charset:
        return "utf-8"
    try:
        "".encode(charset)
    except LookupError:
        return "utf-8"
    return charset
