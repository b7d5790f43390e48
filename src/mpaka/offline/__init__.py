"""Offline cache controller: atomic, versioned generations of application assets."""

from mpaka.offline.builder import CacheGenerationBuilder
from mpaka.offline.controller import CacheController, ClientNotifier, QueueNotifier
from mpaka.offline.errors import (
    AssetFetchError,
    CacheError,
    CacheVerificationError,
    GenerationBuildError,
    GenerationBusyError,
    NoCacheAvailableError,
)
from mpaka.offline.models import (
    AssetManifest,
    CachedAsset,
    CacheGeneration,
    ControllerState,
    GenerationStatus,
    ServedAsset,
    UserState,
)
from mpaka.offline.sources import AssetSource, HttpAssetSource
from mpaka.offline.store import GenerationStore

__all__ = [
    "AssetFetchError",
    "AssetManifest",
    "AssetSource",
    "CacheController",
    "CacheError",
    "CacheGeneration",
    "CacheGenerationBuilder",
    "CacheVerificationError",
    "CachedAsset",
    "ClientNotifier",
    "ControllerState",
    "GenerationBuildError",
    "GenerationBusyError",
    "GenerationStatus",
    "GenerationStore",
    "HttpAssetSource",
    "NoCacheAvailableError",
    "QueueNotifier",
    "ServedAsset",
    "UserState",
]
