from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mpaka.config import YamlConfigLoader
from mpaka.config.models import AppConfig, ConfigLoadRequest
from mpaka.logging import init_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mpaka", description="Reliable page retrieval and offline asset cache")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    # Command: serve
    subparsers.add_parser("serve", help="Start the extraction API server")

    # Command: fetch
    fetch_parser = subparsers.add_parser("fetch", help="Fetch one page and print its text")
    fetch_parser.add_argument("url", help="Absolute http(s) URL to fetch")
    fetch_parser.add_argument("--raw", action="store_true", help="Print the raw HTML instead of normalized text")

    # Command: sync
    subparsers.add_parser("sync", help="Install or update the offline asset cache from the origin")

    return parser


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
    )
    return await loader.load(request)


async def _serve(config: AppConfig) -> int:
    from mpaka.api import run_server

    logger.info("Starting extraction API. port=%d", config.server.port)
    await run_server(config)
    return 0


async def _fetch(config: AppConfig, url: str, *, raw: bool) -> int:
    from mpaka.extract import extract_text_content
    from mpaka.fetch import FetchError
    from mpaka.fetch.pipeline import FetchPipeline

    pipeline = FetchPipeline.from_config(config)
    try:
        result = await pipeline.fetch(url)
    except FetchError as e:
        logger.error("Fetch failed. url=%s error=%s", url, e)
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(result.html if raw else extract_text_content(result.html, result.final_url))
    return 0


async def _sync(config: AppConfig) -> int:
    from mpaka.offline import CacheController, NoCacheAvailableError, QueueNotifier

    notifier = QueueNotifier()
    controller = CacheController.from_settings(config.cache, notifier=notifier)
    try:
        await controller.activate()
        updated = await controller.wait_for_update()
    except NoCacheAvailableError as e:
        logger.error("Offline cache unavailable. error=%s", e)
        print("offline cache unavailable", file=sys.stderr)
        return 1
    finally:
        await controller.aclose()

    committed = controller.committed
    logger.info(
        "Offline cache synced. state=%s committed=%s updated=%s",
        controller.state.value,
        committed.name if committed else None,
        updated,
    )
    if not notifier.messages.empty():
        print(f"update committed: {committed.name if committed else ''}")
    else:
        print(f"serving: {committed.name if committed else ''}")
    return 0


async def _main_async() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    config = await _load_config(args)
    init_logging(config.logging)

    if args.command == "serve":
        return await _serve(config)
    if args.command == "fetch":
        return await _fetch(config, args.url, raw=args.raw)
    if args.command == "sync":
        return await _sync(config)
    return 2


def main() -> None:
    try:
        code = asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
