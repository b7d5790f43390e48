from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple


class GenerationStatus(str, Enum):
    BUILDING = "building"
    VERIFIED = "verified"
    COMMITTED = "committed"
    ABANDONED = "abandoned"


class UserState(str, Enum):
    FIRST_TIME = "first_time"
    RETURNING = "returning"


class ControllerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    FIRST_TIME_INSTALL = "first_time_install"
    UPDATE_CHECK = "update_check"
    READY = "ready"


def committed_name(app_name: str, version: str) -> str:
    return f"{app_name}-{version}"


def temp_name(app_name: str, version: str) -> str:
    return f"{app_name}-temp-{version}"


@dataclass(frozen=True, slots=True)
class AssetManifest:
    """Logical asset names that must all be cached for a generation to be usable."""

    version: str
    assets: Tuple[str, ...]

    @classmethod
    def of(cls, version: str, assets: Iterable[str]) -> AssetManifest:
        unique = tuple(dict.fromkeys(a for a in assets if a))
        if not unique:
            raise ValueError("Asset manifest must list at least one asset")
        return cls(version=version, assets=unique)

    def __contains__(self, name: object) -> bool:
        return name in self.assets

    def missing_from(self, names: Iterable[str]) -> Tuple[str, ...]:
        present = set(names)
        return tuple(a for a in self.assets if a not in present)


@dataclass(frozen=True, slots=True)
class CachedAsset:
    name: str
    body: bytes
    content_type: str
    fetched_at: str


@dataclass(slots=True)
class CacheGeneration:
    name: str
    version: str
    status: GenerationStatus
    assets: Dict[str, CachedAsset] = field(default_factory=dict)
    committed_at: Optional[str] = None

    def get(self, asset_name: str) -> Optional[CachedAsset]:
        return self.assets.get(asset_name)


@dataclass(frozen=True, slots=True)
class ServedAsset:
    asset: CachedAsset
    from_cache: bool
