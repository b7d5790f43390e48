from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

from mpaka.offline.models import CachedAsset, CacheGeneration, GenerationStatus
from mpaka.offline.utils import decode_bytes, encode_bytes, hash_bytes

SchemaVersion = 1


class CorruptGenerationError(ValueError):
    pass


def atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)


def _encode_asset(asset: CachedAsset) -> dict:
    return {
        "content_type": asset.content_type,
        "fetched_at": asset.fetched_at,
        "sha256": hash_bytes(asset.body),
        "body": encode_bytes(asset.body),
    }


def _decode_asset(name: str, payload: dict) -> CachedAsset:
    try:
        body = decode_bytes(payload["body"])
    except (ValueError, KeyError) as e:
        raise CorruptGenerationError(f"Asset body unreadable: {name}") from e
    if hash_bytes(body) != payload.get("sha256"):
        raise CorruptGenerationError(f"Asset checksum mismatch: {name}")
    return CachedAsset(
        name=name,
        body=body,
        content_type=payload.get("content_type", "application/octet-stream"),
        fetched_at=payload.get("fetched_at", ""),
    )


def encode_generation(generation: CacheGeneration) -> dict:
    return {
        "schema_version": SchemaVersion,
        "name": generation.name,
        "version": generation.version,
        "status": generation.status.value,
        "committed_at": generation.committed_at,
        "assets": {name: _encode_asset(asset) for name, asset in generation.assets.items()},
    }


def decode_generation(payload: dict) -> CacheGeneration:
    if int(payload.get("schema_version", -1)) != SchemaVersion:
        raise CorruptGenerationError(f"Unsupported schema version: {payload.get('schema_version')}")
    try:
        status = GenerationStatus(payload["status"])
        assets: Dict[str, CachedAsset] = {
            name: _decode_asset(name, asset_payload) for name, asset_payload in payload.get("assets", {}).items()
        }
        return CacheGeneration(
            name=payload["name"],
            version=payload["version"],
            status=status,
            assets=assets,
            committed_at=payload.get("committed_at"),
        )
    except CorruptGenerationError:
        raise
    except (KeyError, ValueError) as e:
        raise CorruptGenerationError(f"Malformed generation payload: {e}") from e


def read_generation_file(path: Path) -> CacheGeneration:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CorruptGenerationError(f"Unreadable generation file: {path}") from e
    if not isinstance(payload, dict):
        raise CorruptGenerationError(f"Generation file is not a mapping: {path}")
    return decode_generation(payload)
