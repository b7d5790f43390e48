from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import urlsplit

from aiohttp import web

from mpaka.config.models import AppConfig
from mpaka.extract.text import extract_text_content
from mpaka.fetch.errors import ExhaustedError, FetchError
from mpaka.fetch.models import FetchResult
from mpaka.offline.utils import format_rfc3339, utc_now

logger = logging.getLogger(__name__)

BLOCKED_SUGGESTION = (
    "The website is blocking automated requests. This is common for sites with anti-bot protection."
)
UNREACHABLE_SUGGESTION = "Check if the URL is accessible and try again."


class PagePipeline(Protocol):
    async def fetch(self, url: str) -> FetchResult:
        ...


CONFIG_KEY = web.AppKey("config", AppConfig)
PIPELINE_KEY = web.AppKey("pipeline", PagePipeline)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class RequestValidationError(ValueError):
    pass


def _validate_url(payload: object) -> str:
    if not isinstance(payload, dict):
        raise RequestValidationError("Request body must be a JSON object")
    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        raise RequestValidationError("URL is required")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise RequestValidationError("Only HTTP and HTTPS protocols are supported")
    if not parts.netloc:
        raise RequestValidationError("URL is not valid")
    return url


def _failure_body(url: str, error: FetchError) -> dict:
    blocked = error.blocked if isinstance(error, ExhaustedError) else error.status == 403
    body = {
        "error": str(error),
        "url": url,
        "reason": "blocked" if blocked else "unreachable",
        "suggestion": BLOCKED_SUGGESTION if blocked else UNREACHABLE_SUGGESTION,
    }
    if isinstance(error, ExhaustedError):
        body["direct_error"] = str(error.direct_error)
        body["render_error"] = str(error.render_error)
    return body


async def handle_extract(request: web.Request) -> web.Response:
    raw_url: Optional[str] = None
    try:
        payload = await request.json()
    except ValueError:
        return web.json_response({"error": "Invalid JSON body", "url": raw_url}, status=400)

    if isinstance(payload, dict) and isinstance(payload.get("url"), str):
        raw_url = payload["url"]
    try:
        url = _validate_url(payload)
    except RequestValidationError as e:
        return web.json_response({"error": str(e), "url": raw_url}, status=400)

    pipeline = request.app[PIPELINE_KEY]
    logger.info("api.extract_start url=%s", url)
    try:
        result = await pipeline.fetch(url)
    except FetchError as e:
        logger.error("api.extract_failed url=%s error=%s", url, e)
        return web.json_response(_failure_body(url, e), status=502)

    content = extract_text_content(result.html, result.final_url)
    logger.info("api.extract_success url=%s strategy=%s chars=%d", url, result.strategy.value, len(content))
    return web.json_response(
        {
            "success": True,
            "content": content,
            "url": url,
            "final_url": result.final_url,
            "strategy": result.strategy.value,
            "timestamp": format_rfc3339(utc_now()),
        }
    )


async def handle_health(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return web.json_response(
        {"status": "ok", "service": config.app.name, "timestamp": format_rfc3339(utc_now())}
    )


async def handle_offline_config(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    cache = config.cache
    return web.json_response(
        {
            "cache_name": cache.cache_name,
            "temp_cache_name": cache.temp_cache_name,
            "first_time_timeout_ms": cache.first_time_timeout_ms,
            "returning_user_timeout_ms": cache.returning_user_timeout_ms,
            "enable_logs": config.logging.enabled,
            "manifest": list(cache.manifest),
        },
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status == 404:
            return web.json_response({"error": "Not found"}, status=404)
        raise
    except Exception:
        logger.exception("Unhandled server error. path=%s", request.path)
        return web.json_response({"error": "Internal server error"}, status=500)


def create_app(config: AppConfig, pipeline: Optional[PagePipeline] = None) -> web.Application:
    if pipeline is None:
        from mpaka.fetch.pipeline import FetchPipeline

        pipeline = FetchPipeline.from_config(config)

    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    app[PIPELINE_KEY] = pipeline
    app.router.add_post("/api/extract", handle_extract)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/offline/config", handle_offline_config)
    if config.server.static_dir:
        static_dir = Path(config.server.static_dir)

        async def handle_index(request: web.Request) -> web.FileResponse:
            return web.FileResponse(static_dir / "index.html")

        app.router.add_get("/", handle_index)
        app.router.add_static("/", static_dir, show_index=False)
    return app


async def run_server(config: AppConfig, pipeline: Optional[PagePipeline] = None) -> None:
    app = create_app(config, pipeline)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=config.server.host, port=config.server.port)
    await site.start()
    logger.info("api.server_started host=%s port=%d", config.server.host, config.server.port)
    try:
        # Serve until the surrounding task is cancelled.
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
