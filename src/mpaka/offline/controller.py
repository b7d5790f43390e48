from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

from mpaka.config.models import CacheSettings
from mpaka.offline.builder import CacheGenerationBuilder
from mpaka.offline.errors import AssetFetchError, GenerationBuildError, GenerationBusyError, NoCacheAvailableError
from mpaka.offline.models import (
    AssetManifest,
    CachedAsset,
    CacheGeneration,
    ControllerState,
    GenerationStatus,
    ServedAsset,
    UserState,
    committed_name,
)
from mpaka.offline.sources import AssetSource, HttpAssetSource
from mpaka.offline.store import GenerationStore

logger = logging.getLogger(__name__)

RELOAD_MESSAGE: Mapping[str, str] = {"action": "reload"}


class ClientNotifier(Protocol):
    async def post_message(self, message: Mapping[str, Any]) -> None:
        ...


class QueueNotifier:
    """Collects client messages on an asyncio queue for the page side to consume."""

    def __init__(self) -> None:
        self.messages: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()

    async def post_message(self, message: Mapping[str, Any]) -> None:
        await self.messages.put(dict(message))


class CacheController:
    """
    Keeps a complete, versioned copy of the application assets available offline.

    The first activation waits long for a full generation because there is
    nothing to fall back on. Later activations only try a short background
    update and keep serving the committed generation when it fails.
    """

    def __init__(
        self,
        settings: CacheSettings,
        *,
        store: GenerationStore,
        source: AssetSource,
        builder: Optional[CacheGenerationBuilder] = None,
        manifest: Optional[AssetManifest] = None,
        notifier: Optional[ClientNotifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._store = store
        self._source = source
        self._builder = builder or CacheGenerationBuilder(source, app_name=settings.app_name)
        self._manifest = manifest or AssetManifest.of(settings.version, settings.manifest)
        self._notifier = notifier
        self._state = ControllerState.UNINITIALIZED
        self._committed: Optional[CacheGeneration] = None
        self._clock = clock
        self._seed: Dict[str, Tuple[float, CachedAsset]] = {}
        self._update_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @classmethod
    def from_settings(cls, settings: CacheSettings, *, notifier: Optional[ClientNotifier] = None) -> CacheController:
        source = HttpAssetSource(settings.origin_url)
        return cls(settings, store=GenerationStore(settings.storage_dir), source=source, notifier=notifier)

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def committed(self) -> Optional[CacheGeneration]:
        return self._committed

    @property
    def manifest(self) -> AssetManifest:
        return self._manifest

    @property
    def user_state(self) -> UserState:
        return UserState.RETURNING if self._committed is not None else UserState.FIRST_TIME

    def timeout_for(self, user_state: UserState) -> float:
        if user_state is UserState.FIRST_TIME:
            return self._settings.first_time_timeout_ms / 1000
        return self._settings.returning_user_timeout_ms / 1000

    @property
    def serving_timeout(self) -> float:
        return self.timeout_for(self.user_state)

    async def activate(self) -> ControllerState:
        if self._committed is None:
            self._committed = self._store.load_committed(preferred_name=self._committed_name)

        if self._committed is None:
            self._state = ControllerState.FIRST_TIME_INSTALL
            logger.info("offline.first_time_install version=%s", self._manifest.version)
            try:
                await self._build_and_commit(self.timeout_for(UserState.FIRST_TIME))
            except (GenerationBuildError, GenerationBusyError, OSError) as e:
                self._state = ControllerState.UNINITIALIZED
                logger.error("offline.first_time_install_failed version=%s error=%s", self._manifest.version, e)
                raise NoCacheAvailableError(f"No offline copy available yet: {e}") from e
            self._state = ControllerState.READY
            return self._state

        if self._committed.name != self._committed_name:
            logger.info(
                "offline.stale_generation_serving committed=%s expected=%s",
                self._committed.name,
                self._committed_name,
            )
        self._schedule_update()
        return self._state

    async def wait_for_update(self) -> bool:
        task = self._update_task
        if task is None:
            return False
        return await task

    async def check_for_update(self) -> bool:
        """Try a background-budget update; True when a new generation was committed."""
        if self._committed is None:
            return False
        if self._builder.is_building(self._manifest.version):
            logger.debug("offline.update_skipped reason=busy version=%s", self._manifest.version)
            return False
        self._state = ControllerState.UPDATE_CHECK
        try:
            await self._build_and_commit(self.timeout_for(UserState.RETURNING))
        except GenerationBusyError:
            logger.debug("offline.update_skipped reason=busy version=%s", self._manifest.version)
            return False
        except GenerationBuildError as e:
            # The committed generation keeps serving; the user sees nothing.
            logger.warning("offline.update_abandoned version=%s error=%s", self._manifest.version, e)
            return False
        except OSError as e:
            logger.error("offline.update_commit_failed version=%s error=%s", self._manifest.version, e)
            return False
        finally:
            self._state = ControllerState.READY

        if self._notifier is not None:
            await self._notifier.post_message(RELOAD_MESSAGE)
        return True

    async def serve(self, name: str) -> ServedAsset:
        timeout = self.serving_timeout
        try:
            # A cancelled fetch never delivers its result anywhere.
            asset = await asyncio.wait_for(self._source.fetch_asset(name), timeout=timeout)
        except (asyncio.TimeoutError, AssetFetchError) as e:
            committed = self._committed
            cached = committed.get(name) if committed is not None else None
            if cached is None:
                raise NoCacheAvailableError(f"Asset unavailable offline: {name}") from e
            logger.debug("offline.serve_from_cache asset=%s generation=%s error=%s", name, committed.name, e)
            return ServedAsset(asset=cached, from_cache=True)

        if name in self._manifest:
            self._seed[name] = (self._clock(), asset)
        return ServedAsset(asset=asset, from_cache=False)

    def start_update_checks(self, interval_seconds: Optional[float] = None) -> None:
        interval = self._settings.update_check_interval_seconds if interval_seconds is None else interval_seconds
        if interval is None:
            return
        if interval <= 0:
            raise ValueError("Update check interval must be positive")
        if self._loop_task and not self._loop_task.done():
            return
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._update_loop(interval))

    async def stop_update_checks(self) -> None:
        if not self._loop_task:
            return
        self._stop_event.set()
        await self._loop_task
        self._loop_task = None

    async def aclose(self) -> None:
        await self.stop_update_checks()
        task = self._update_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("offline.update_cancelled version=%s", self._manifest.version)
        self._update_task = None

    @property
    def _committed_name(self) -> str:
        return committed_name(self._settings.app_name, self._manifest.version)

    def _schedule_update(self) -> None:
        if self._update_task and not self._update_task.done():
            return
        self._state = ControllerState.UPDATE_CHECK
        self._update_task = asyncio.create_task(self.check_for_update())
        self._update_task.add_done_callback(_log_update_task_result)

    async def _update_loop(self, interval_seconds: float) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                await self.check_for_update()
            except Exception:
                logger.exception("Offline cache update check failed.")
            elapsed = time.monotonic() - started
            sleep_seconds = max(0.0, interval_seconds - elapsed)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_seconds)
            except asyncio.TimeoutError:
                continue

    async def _build_and_commit(self, timeout: float) -> CacheGeneration:
        now = self._clock()
        max_age = self._settings.seed_max_age_seconds
        seed = {name: asset for name, (stamped, asset) in self._seed.items() if now - stamped <= max_age}
        self._seed = {}
        generation = await self._builder.build(self._manifest, self._manifest.version, timeout, seed=seed)
        committed = self._store.commit(generation, self._committed_name)

        previous = self._committed
        # Readers switch generations in this single assignment.
        self._committed = committed
        if previous is not None:
            previous.status = GenerationStatus.ABANDONED
        return committed


def _log_update_task_result(task: asyncio.Task) -> None:
    try:
        task.result()
    except asyncio.CancelledError:
        return
    except Exception:
        logger.exception("Offline cache background update failed.")
