from __future__ import annotations

import asyncio
import logging
from typing import Dict, Mapping, Optional, Set

from mpaka.offline.errors import (
    AssetFetchError,
    CacheVerificationError,
    GenerationBuildError,
    GenerationBusyError,
)
from mpaka.offline.models import AssetManifest, CachedAsset, CacheGeneration, GenerationStatus, temp_name
from mpaka.offline.sources import AssetSource

logger = logging.getLogger(__name__)


class CacheGenerationBuilder:
    """
    Builds one uncommitted generation from a fixed manifest.

    Assets are collected privately and attached to the generation only after the
    whole manifest arrived in time, so a cancelled or failed build never leaves a
    partially filled generation behind.
    """

    def __init__(self, source: AssetSource, *, app_name: str) -> None:
        self._source = source
        self._app_name = app_name
        self._building: Set[str] = set()

    def is_building(self, version: str) -> bool:
        return version in self._building

    async def build(
        self,
        manifest: AssetManifest,
        version: str,
        timeout: float,
        *,
        seed: Optional[Mapping[str, CachedAsset]] = None,
    ) -> CacheGeneration:
        if version in self._building:
            raise GenerationBusyError(version)

        generation = CacheGeneration(
            name=temp_name(self._app_name, version),
            version=version,
            status=GenerationStatus.BUILDING,
        )
        self._building.add(version)
        logger.info(
            "offline.build_start name=%s assets=%d timeout_seconds=%.1f",
            generation.name,
            len(manifest.assets),
            timeout,
        )
        try:
            try:
                assets = await asyncio.wait_for(self._fetch_all(manifest, seed or {}), timeout=timeout)
            except asyncio.TimeoutError as e:
                generation.status = GenerationStatus.ABANDONED
                raise GenerationBuildError(
                    f"Generation {generation.name} exceeded its {timeout:.1f}s budget",
                    generation=generation,
                ) from e
            except AssetFetchError as e:
                generation.status = GenerationStatus.ABANDONED
                raise GenerationBuildError(
                    f"Generation {generation.name} failed on asset {e.asset}: {e}",
                    generation=generation,
                    asset=e.asset,
                ) from e

            try:
                self.verify(manifest, assets)
            except CacheVerificationError as e:
                generation.status = GenerationStatus.ABANDONED
                raise GenerationBuildError(
                    f"Generation {generation.name} failed verification: {e}",
                    generation=generation,
                    asset=e.missing[0],
                ) from e

            generation.assets = assets
            generation.status = GenerationStatus.VERIFIED
            logger.info("offline.build_verified name=%s assets=%d", generation.name, len(assets))
            return generation
        finally:
            self._building.discard(version)

    @staticmethod
    def verify(manifest: AssetManifest, assets: Mapping[str, CachedAsset]) -> None:
        missing = manifest.missing_from(assets.keys())
        if missing:
            raise CacheVerificationError(missing)

    async def _fetch_all(
        self,
        manifest: AssetManifest,
        seed: Mapping[str, CachedAsset],
    ) -> Dict[str, CachedAsset]:
        assets: Dict[str, CachedAsset] = {}
        for name in manifest.assets:
            seeded = seed.get(name)
            if seeded is not None:
                assets[name] = seeded
                continue
            assets[name] = await self._source.fetch_asset(name)
        return assets
