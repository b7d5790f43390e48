from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional

from mpaka.config.models import FetchSettings
from mpaka.fetch.direct import DirectFetcher
from mpaka.fetch.errors import FetchError, HttpStatusError, RetryExhaustedError
from mpaka.fetch.headers import HeaderProfile
from mpaka.fetch.models import FetchAttempt, FetchOutcome, FetchResult, FetchStrategy

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RetryOrchestrator:
    """
    Sequential direct attempts, each with a fresh fingerprint.

    Only HTTP 403 is retried: a different header set will not fix DNS failures,
    timeouts or other status codes.
    """

    def __init__(
        self,
        fetcher: DirectFetcher,
        profiles: HeaderProfile,
        settings: FetchSettings,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._fetcher = fetcher
        self._profiles = profiles
        self._settings = settings
        self._sleep = sleep
        self._rng = rng or random.Random()

    def retry_delay(self) -> float:
        return self._rng.uniform(self._settings.retry_delay_min_seconds, self._settings.retry_delay_max_seconds)

    async def fetch(self, url: str, *, max_attempts: Optional[int] = None) -> FetchResult:
        limit = self._settings.max_attempts if max_attempts is None else max_attempts
        if limit < 1:
            raise ValueError("max_attempts must be at least 1")

        attempts: list[FetchAttempt] = []
        attempt = 0
        while True:
            attempt += 1
            profile = self._profiles.next()
            logger.info("fetch.attempt_start attempt=%d/%d url=%s", attempt, limit, url)
            logger.debug("fetch.attempt_profile url=%s user_agent=%s...", url, profile.user_agent[:50])

            started = time.monotonic()
            try:
                response = await self._fetcher.fetch(url, profile)
            except FetchError as e:
                attempts.append(
                    FetchAttempt(
                        strategy=FetchStrategy.DIRECT,
                        url=url,
                        outcome=e.outcome,
                        elapsed_seconds=time.monotonic() - started,
                        profile=profile,
                        status=e.status,
                        error=str(e),
                    )
                )
                logger.warning("fetch.attempt_failed attempt=%d/%d url=%s error=%s", attempt, limit, url, e)

                if isinstance(e, HttpStatusError) and e.retryable and attempt < limit:
                    delay = self.retry_delay()
                    logger.info("fetch.attempt_retry url=%s delay_seconds=%.2f", url, delay)
                    await self._sleep(delay)
                    continue
                raise RetryExhaustedError(e, attempts) from e

            attempts.append(
                FetchAttempt(
                    strategy=FetchStrategy.DIRECT,
                    url=url,
                    outcome=FetchOutcome.SUCCESS,
                    elapsed_seconds=time.monotonic() - started,
                    profile=profile,
                    status=response.status,
                )
            )
            logger.info("fetch.attempt_success attempt=%d/%d url=%s", attempt, limit, url)
            return FetchResult(
                html=response.body,
                final_url=response.final_url,
                strategy=FetchStrategy.DIRECT,
                attempts=tuple(attempts),
            )
