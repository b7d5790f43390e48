from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from playwright.async_api import Browser, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from mpaka.config.models import RenderSettings
from mpaka.fetch.errors import RenderError
from mpaka.fetch.models import FetchAttempt, FetchOutcome, FetchResult, FetchStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RenderedPage:
    html: str
    final_url: str
    status: Optional[int]


class RenderEngine(Protocol):
    name: str

    async def render(self, url: str) -> RenderedPage:
        ...


class EngineSelector(Protocol):
    def choose(self, engines: Sequence[RenderEngine]) -> RenderEngine:
        ...


class RandomEngineSelector:
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.SystemRandom()

    def choose(self, engines: Sequence[RenderEngine]) -> RenderEngine:
        return self._rng.choice(engines)


class PlaywrightEngine:
    """One throwaway Playwright browser per render; nothing is reused between calls."""

    def __init__(self, name: str, settings: RenderSettings) -> None:
        self.name = name
        self._settings = settings

    async def render(self, url: str) -> RenderedPage:
        playwright = await async_playwright().start()
        try:
            launch_kwargs = {"headless": True}
            if self.name == "chromium":
                launch_kwargs["chromium_sandbox"] = self._settings.chromium_sandbox
            browser = await getattr(playwright, self.name).launch(**launch_kwargs)
            try:
                return await self._render_in(browser, url)
            finally:
                await self._close_browser(browser)
        finally:
            await playwright.stop()

    async def _render_in(self, browser: Browser, url: str) -> RenderedPage:
        context = await browser.new_context()
        page = await context.new_page()
        timeout_ms = self._settings.navigation_timeout_seconds * 1000
        logger.debug("fetch.render_navigating engine=%s url=%s", self.name, url)
        response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        status = response.status if response is not None else None
        if status is None:
            raise RenderError("Navigation produced no response", url=url, engine=self.name)
        if status >= 400:
            raise RenderError(
                f"Navigation returned HTTP {status}",
                url=url,
                engine=self.name,
                outcome=FetchOutcome.HTTP_ERROR,
                status=status,
            )

        # Deferred scripts get a fixed window to materialize content.
        await page.wait_for_timeout(self._settings.settle_seconds * 1000)
        html = await page.content()
        return RenderedPage(html=html, final_url=page.url, status=status)

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await browser.close()
        except PlaywrightError as e:
            # A crashed browser may already be gone.
            logger.debug("fetch.render_close_failed engine=%s error=%s", self.name, e)


class RenderFallback:
    def __init__(
        self,
        settings: RenderSettings,
        *,
        engines: Optional[Sequence[RenderEngine]] = None,
        selector: Optional[EngineSelector] = None,
    ) -> None:
        self._settings = settings
        if engines is None:
            engines = [PlaywrightEngine(name, settings) for name in settings.engines]
        if not engines:
            raise ValueError("At least one render engine is required")
        self._engines = tuple(engines)
        self._selector = selector or RandomEngineSelector()
        self._slots: Optional[asyncio.Semaphore] = None
        if settings.max_concurrent_sessions is not None:
            self._slots = asyncio.Semaphore(settings.max_concurrent_sessions)

    @property
    def engine_names(self) -> Sequence[str]:
        return tuple(engine.name for engine in self._engines)

    async def render(self, url: str) -> FetchResult:
        engine = self._selector.choose(self._engines)
        logger.info("fetch.render_start engine=%s url=%s", engine.name, url)
        started = time.monotonic()
        slot = self._slots if self._slots is not None else contextlib.nullcontext()
        async with slot:
            try:
                page = await asyncio.wait_for(engine.render(url), timeout=self._settings.session_timeout_seconds)
            except RenderError:
                raise
            except asyncio.TimeoutError as e:
                raise RenderError(
                    f"Render session timeout after {self._settings.session_timeout_seconds}s",
                    url=url,
                    engine=engine.name,
                    outcome=FetchOutcome.TIMEOUT,
                ) from e
            except PlaywrightTimeoutError as e:
                raise RenderError(
                    f"Navigation timeout: {e}", url=url, engine=engine.name, outcome=FetchOutcome.TIMEOUT
                ) from e
            except PlaywrightError as e:
                raise RenderError(f"Render failed: {e}", url=url, engine=engine.name) from e
            except OSError as e:
                raise RenderError(f"Render engine crashed: {e}", url=url, engine=engine.name) from e

        elapsed = time.monotonic() - started
        logger.info("fetch.render_success engine=%s url=%s elapsed_seconds=%.2f", engine.name, url, elapsed)
        attempt = FetchAttempt(
            strategy=FetchStrategy.RENDER,
            url=url,
            outcome=FetchOutcome.SUCCESS,
            elapsed_seconds=elapsed,
            status=page.status,
        )
        return FetchResult(html=page.html, final_url=page.final_url, strategy=FetchStrategy.RENDER, attempts=(attempt,))


def render_attempt(error: RenderError, elapsed_seconds: float) -> FetchAttempt:
    return FetchAttempt(
        strategy=FetchStrategy.RENDER,
        url=error.url,
        outcome=error.outcome,
        elapsed_seconds=elapsed_seconds,
        status=error.status,
        error=f"[{error.engine}] {error}",
    )
