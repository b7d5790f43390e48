import unittest

from aiohttp.test_utils import TestClient, TestServer

from mpaka.api.server import BLOCKED_SUGGESTION, UNREACHABLE_SUGGESTION, create_app
from mpaka.config.models import AppConfig
from mpaka.fetch.errors import ExhaustedError, HttpStatusError, NetworkError, RenderError
from mpaka.fetch.models import FetchResult, FetchStrategy

PAGE = "<html><head><title>Hello</title></head><body><p>World</p></body></html>"


class FakePipeline:
    def __init__(self, *, result: FetchResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.urls = []

    async def fetch(self, url: str) -> FetchResult:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.result


def _exhausted(url: str, status: int) -> ExhaustedError:
    return ExhaustedError(
        url=url,
        direct_error=HttpStatusError(status, url=url),
        render_error=RenderError("Render failed: net::ERR_FAILED", url=url, engine="chromium"),
    )


class ApiServerTests(unittest.IsolatedAsyncioTestCase):
    async def _client(self, pipeline: FakePipeline) -> TestClient:
        client = TestClient(TestServer(create_app(AppConfig(), pipeline)))
        await client.start_server()
        self.addAsyncCleanup(client.close)
        return client

    async def test_extract_success_shape(self) -> None:
        url = "https://example.com/a"
        pipeline = FakePipeline(
            result=FetchResult(html=PAGE, final_url="https://example.com/b", strategy=FetchStrategy.RENDER)
        )
        client = await self._client(pipeline)

        resp = await client.post("/api/extract", json={"url": f"  {url} "})
        body = await resp.json()

        self.assertEqual(resp.status, 200)
        self.assertTrue(body["success"])
        self.assertEqual(body["url"], url)
        self.assertEqual(body["final_url"], "https://example.com/b")
        self.assertEqual(body["strategy"], "render")
        self.assertIn("TITLE: Hello", body["content"])
        self.assertIn("World", body["content"])
        self.assertTrue(body["timestamp"].endswith("Z"))
        self.assertEqual(pipeline.urls, [url])

    async def test_invalid_requests_are_rejected_before_fetching(self) -> None:
        pipeline = FakePipeline()
        client = await self._client(pipeline)
        cases = [
            ({}, "URL is required"),
            ({"url": ""}, "URL is required"),
            ({"url": 42}, "URL is required"),
            ({"url": "ftp://example.com/file"}, "Only HTTP and HTTPS protocols are supported"),
            ({"url": "http://"}, "URL is not valid"),
            (["https://example.com"], "Request body must be a JSON object"),
        ]
        for payload, message in cases:
            with self.subTest(payload=payload):
                resp = await client.post("/api/extract", json=payload)
                body = await resp.json()
                self.assertEqual(resp.status, 400)
                self.assertEqual(body["error"], message)

        resp = await client.post("/api/extract", data="not json", headers={"Content-Type": "application/json"})
        self.assertEqual(resp.status, 400)
        self.assertEqual((await resp.json())["error"], "Invalid JSON body")
        self.assertEqual(pipeline.urls, [])

    async def test_blocked_failure_reports_reason(self) -> None:
        url = "https://example.com/guarded"
        client = await self._client(FakePipeline(error=_exhausted(url, 403)))

        resp = await client.post("/api/extract", json={"url": url})
        body = await resp.json()

        self.assertEqual(resp.status, 502)
        self.assertEqual(body["reason"], "blocked")
        self.assertEqual(body["suggestion"], BLOCKED_SUGGESTION)
        self.assertEqual(body["url"], url)
        self.assertIn("HTTP 403", body["direct_error"])
        self.assertIn("net::ERR_FAILED", body["render_error"])

    async def test_unreachable_failure_reports_reason(self) -> None:
        url = "https://example.invalid/"
        client = await self._client(FakePipeline(error=NetworkError("Request error: dns", url=url)))

        resp = await client.post("/api/extract", json={"url": url})
        body = await resp.json()

        self.assertEqual(resp.status, 502)
        self.assertEqual(body["reason"], "unreachable")
        self.assertEqual(body["suggestion"], UNREACHABLE_SUGGESTION)

    async def test_unexpected_errors_become_500(self) -> None:
        client = await self._client(FakePipeline(error=RuntimeError("boom")))

        resp = await client.post("/api/extract", json={"url": "https://example.com/"})

        self.assertEqual(resp.status, 500)
        self.assertEqual(await resp.json(), {"error": "Internal server error"})

    async def test_health_and_offline_config(self) -> None:
        client = await self._client(FakePipeline())

        health = await client.get("/health")
        offline = await client.get("/offline/config")
        offline_body = await offline.json()

        self.assertEqual((await health.json())["status"], "ok")
        self.assertEqual(offline_body["cache_name"], "mpaka-v2")
        self.assertEqual(offline_body["temp_cache_name"], "mpaka-temp-v2")
        self.assertGreater(offline_body["first_time_timeout_ms"], offline_body["returning_user_timeout_ms"])
        self.assertIn("no-cache", offline.headers["Cache-Control"])

    async def test_unknown_route_is_json_404(self) -> None:
        client = await self._client(FakePipeline())

        resp = await client.get("/missing")

        self.assertEqual(resp.status, 404)
        self.assertEqual(await resp.json(), {"error": "Not found"})


if __name__ == "__main__":
    unittest.main()
