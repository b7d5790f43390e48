from __future__ import annotations

import logging
import time

from mpaka.config.models import AppConfig
from mpaka.fetch.direct import DirectFetcher
from mpaka.fetch.errors import ExhaustedError, RenderError, RetryExhaustedError
from mpaka.fetch.headers import HeaderProfile
from mpaka.fetch.models import FetchResult
from mpaka.fetch.render import RenderFallback, render_attempt
from mpaka.fetch.retry import RetryOrchestrator

logger = logging.getLogger(__name__)


class FetchPipeline:
    """Direct attempts first; a browser render only once those are exhausted."""

    def __init__(self, retry: RetryOrchestrator, render: RenderFallback) -> None:
        self._retry = retry
        self._render = render

    @classmethod
    def from_config(cls, config: AppConfig) -> FetchPipeline:
        retry = RetryOrchestrator(DirectFetcher(config.fetch), HeaderProfile(), config.fetch)
        return cls(retry, RenderFallback(config.render))

    async def fetch(self, url: str) -> FetchResult:
        try:
            return await self._retry.fetch(url)
        except RetryExhaustedError as direct_failure:
            logger.warning(
                "fetch.direct_exhausted url=%s attempts=%d error=%s",
                url,
                len(direct_failure.attempts),
                direct_failure.last_error,
            )
            started = time.monotonic()
            try:
                rendered = await self._render.render(url)
            except RenderError as render_failure:
                attempts = (*direct_failure.attempts, render_attempt(render_failure, time.monotonic() - started))
                logger.error("fetch.exhausted url=%s direct_error=%s render_error=%s", url, direct_failure.last_error, render_failure)
                raise ExhaustedError(
                    url=url,
                    direct_error=direct_failure.last_error,
                    render_error=render_failure,
                    attempts=attempts,
                ) from render_failure

            return FetchResult(
                html=rendered.html,
                final_url=rendered.final_url,
                strategy=rendered.strategy,
                attempts=(*direct_failure.attempts, *rendered.attempts),
            )
