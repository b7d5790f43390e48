from __future__ import annotations

from typing import Optional, Sequence, Tuple

from mpaka.offline.models import CacheGeneration


class CacheError(Exception):
    pass


class AssetFetchError(CacheError):
    def __init__(self, message: str, *, asset: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.asset = asset
        self.status = status


class CacheVerificationError(CacheError):
    """A manifest entry is missing at verify time. Only ever forces ABANDONED."""

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__(f"Generation is missing manifest entries: {', '.join(missing)}")
        self.missing: Tuple[str, ...] = tuple(missing)


class GenerationBuildError(CacheError):
    def __init__(self, message: str, *, generation: CacheGeneration, asset: Optional[str] = None) -> None:
        super().__init__(message)
        self.generation = generation
        self.asset = asset


class GenerationBusyError(CacheError):
    def __init__(self, version: str) -> None:
        super().__init__(f"A generation for version {version} is already being built")
        self.version = version


class NoCacheAvailableError(CacheError):
    """Neither the network nor a committed generation can provide content."""
