import asyncio
import random
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from mpaka.config.models import RenderSettings
from mpaka.fetch.errors import RenderError
from mpaka.fetch.models import FetchOutcome, FetchStrategy
from mpaka.fetch.render import PlaywrightEngine, RandomEngineSelector, RenderedPage, RenderFallback

URL = "https://example.com/app"


class FakeEngine:
    def __init__(self, name: str, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.name = name
        self.error = error
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.peak = 0

    async def render(self, url: str) -> RenderedPage:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return RenderedPage(html=f"<html>{self.name}</html>", final_url=url + "#rendered", status=200)
        finally:
            self.active -= 1


class FirstSelector:
    def choose(self, engines):
        return engines[0]


class RenderFallbackTests(unittest.IsolatedAsyncioTestCase):
    async def test_success_is_tagged_as_render(self) -> None:
        engine = FakeEngine("chromium")
        fallback = RenderFallback(RenderSettings(), engines=[engine], selector=FirstSelector())

        result = await fallback.render(URL)

        self.assertEqual(result.strategy, FetchStrategy.RENDER)
        self.assertEqual(result.html, "<html>chromium</html>")
        self.assertEqual(result.final_url, URL + "#rendered")
        self.assertEqual(len(result.attempts), 1)
        self.assertEqual(result.attempts[0].outcome, FetchOutcome.SUCCESS)

    async def test_engine_failures_become_render_errors(self) -> None:
        cases = [
            (PlaywrightError("net::ERR_NAME_NOT_RESOLVED"), FetchOutcome.NETWORK_ERROR),
            (PlaywrightTimeoutError("Timeout 30000ms exceeded"), FetchOutcome.TIMEOUT),
            (OSError("browser process exited"), FetchOutcome.NETWORK_ERROR),
        ]
        for error, outcome in cases:
            with self.subTest(error=type(error).__name__):
                fallback = RenderFallback(
                    RenderSettings(), engines=[FakeEngine("firefox", error=error)], selector=FirstSelector()
                )
                with self.assertRaises(RenderError) as ctx:
                    await fallback.render(URL)
                self.assertEqual(ctx.exception.engine, "firefox")
                self.assertEqual(ctx.exception.outcome, outcome)

    async def test_session_timeout(self) -> None:
        settings = RenderSettings(session_timeout_seconds=0.05)
        fallback = RenderFallback(settings, engines=[FakeEngine("chromium", delay=5)], selector=FirstSelector())

        with self.assertRaises(RenderError) as ctx:
            await fallback.render(URL)

        self.assertEqual(ctx.exception.outcome, FetchOutcome.TIMEOUT)

    async def test_concurrent_sessions_can_be_capped(self) -> None:
        engine = FakeEngine("chromium", delay=0.05)
        fallback = RenderFallback(
            RenderSettings(max_concurrent_sessions=1), engines=[engine], selector=FirstSelector()
        )

        await asyncio.gather(*(fallback.render(URL) for _ in range(3)))

        self.assertEqual(engine.calls, 3)
        self.assertEqual(engine.peak, 1)

    async def test_uncapped_sessions_run_in_parallel(self) -> None:
        engine = FakeEngine("chromium", delay=0.05)
        fallback = RenderFallback(RenderSettings(), engines=[engine], selector=FirstSelector())

        await asyncio.gather(*(fallback.render(URL) for _ in range(3)))

        self.assertEqual(engine.peak, 3)

    async def test_random_selection_reaches_every_engine(self) -> None:
        engines = [FakeEngine("chromium"), FakeEngine("firefox")]
        fallback = RenderFallback(RenderSettings(), engines=engines, selector=RandomEngineSelector(random.Random(3)))

        for _ in range(40):
            await fallback.render(URL)

        self.assertGreater(engines[0].calls, 0)
        self.assertGreater(engines[1].calls, 0)

    def test_default_engines_follow_settings(self) -> None:
        fallback = RenderFallback(RenderSettings(engines=("chromium", "webkit")))

        self.assertEqual(fallback.engine_names, ("chromium", "webkit"))

    def test_engine_list_must_not_be_empty(self) -> None:
        with self.assertRaises(ValueError):
            RenderFallback(RenderSettings(), engines=[])


def _playwright_mocks(goto):
    page = MagicMock()
    page.goto = goto
    page.wait_for_timeout = AsyncMock()
    page.content = AsyncMock(return_value="<html>rendered</html>")
    page.url = "https://example.com/final"
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.firefox.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()
    factory = MagicMock()
    factory.return_value.start = AsyncMock(return_value=playwright)
    return factory, playwright, browser, page


class PlaywrightEngineTests(unittest.IsolatedAsyncioTestCase):
    async def test_render_returns_content_and_tears_down(self) -> None:
        factory, playwright, browser, page = _playwright_mocks(AsyncMock(return_value=MagicMock(status=200)))
        engine = PlaywrightEngine("chromium", RenderSettings(settle_seconds=0.5))

        with patch("mpaka.fetch.render.async_playwright", factory):
            rendered = await engine.render(URL)

        self.assertEqual(rendered.html, "<html>rendered</html>")
        self.assertEqual(rendered.final_url, "https://example.com/final")
        playwright.chromium.launch.assert_awaited_once_with(headless=True, chromium_sandbox=True)
        page.goto.assert_awaited_once_with(URL, wait_until="domcontentloaded", timeout=30000.0)
        page.wait_for_timeout.assert_awaited_once_with(500.0)
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    async def test_chromium_sandbox_can_be_disabled(self) -> None:
        factory, playwright, _, _ = _playwright_mocks(AsyncMock(return_value=MagicMock(status=200)))

        with patch("mpaka.fetch.render.async_playwright", factory):
            await PlaywrightEngine("chromium", RenderSettings(chromium_sandbox=False, settle_seconds=0)).render(URL)

        playwright.chromium.launch.assert_awaited_once_with(headless=True, chromium_sandbox=False)

    async def test_firefox_launch_has_no_sandbox_flag(self) -> None:
        factory, playwright, _, _ = _playwright_mocks(AsyncMock(return_value=MagicMock(status=200)))

        with patch("mpaka.fetch.render.async_playwright", factory):
            await PlaywrightEngine("firefox", RenderSettings(settle_seconds=0)).render(URL)

        playwright.firefox.launch.assert_awaited_once_with(headless=True)

    async def test_error_status_fails_and_still_tears_down(self) -> None:
        factory, playwright, browser, _ = _playwright_mocks(AsyncMock(return_value=MagicMock(status=403)))

        with patch("mpaka.fetch.render.async_playwright", factory):
            with self.assertRaises(RenderError) as ctx:
                await PlaywrightEngine("chromium", RenderSettings()).render(URL)

        self.assertEqual(ctx.exception.status, 403)
        self.assertEqual(ctx.exception.outcome, FetchOutcome.HTTP_ERROR)
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    async def test_navigation_error_propagates_after_teardown(self) -> None:
        factory, playwright, browser, _ = _playwright_mocks(AsyncMock(side_effect=PlaywrightError("net::ERR_FAILED")))

        with patch("mpaka.fetch.render.async_playwright", factory):
            with self.assertRaises(PlaywrightError):
                await PlaywrightEngine("chromium", RenderSettings()).render(URL)

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    async def test_missing_response_is_a_render_error(self) -> None:
        factory, _, browser, _ = _playwright_mocks(AsyncMock(return_value=None))

        with patch("mpaka.fetch.render.async_playwright", factory):
            with self.assertRaises(RenderError):
                await PlaywrightEngine("chromium", RenderSettings()).render(URL)

        browser.close.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
