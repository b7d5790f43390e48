from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from mpaka.offline.io import CorruptGenerationError, atomic_write_json, encode_generation, read_generation_file
from mpaka.offline.models import CacheGeneration, GenerationStatus
from mpaka.offline.utils import format_rfc3339, parse_rfc3339, utc_now

logger = logging.getLogger(__name__)


class GenerationStore:
    """
    Filesystem storage for cache generations, one JSON file per generation.

    A generation is written under its temp name first and then renamed onto its
    committed name, so a committed file is always complete. Only files whose
    stem matches the stored name and whose status is COMMITTED are ever loaded.
    """

    def __init__(self, storage_dir: str | Path) -> None:
        self._dir = Path(storage_dir)

    @property
    def storage_dir(self) -> Path:
        return self._dir

    def path_for(self, name: str) -> Path:
        return self._dir / f"{name}.json"

    def names(self) -> List[str]:
        if not self._dir.exists():
            return []
        return sorted(path.stem for path in self._dir.glob("*.json"))

    def load_committed(self, preferred_name: Optional[str] = None) -> Optional[CacheGeneration]:
        committed: List[CacheGeneration] = []
        for name in self.names():
            path = self.path_for(name)
            try:
                generation = read_generation_file(path)
            except CorruptGenerationError as e:
                logger.warning("offline.generation_corrupt path=%s error=%s", path, e)
                continue
            if generation.name != name or generation.status is not GenerationStatus.COMMITTED:
                continue
            if generation.name == preferred_name:
                return generation
            committed.append(generation)
        if not committed:
            return None
        return max(committed, key=_committed_sort_key)

    def commit(self, generation: CacheGeneration, committed_name: str) -> CacheGeneration:
        if generation.status is not GenerationStatus.VERIFIED:
            raise ValueError(f"Only a verified generation can be committed, got {generation.status.value}")

        committed = CacheGeneration(
            name=committed_name,
            version=generation.version,
            status=GenerationStatus.COMMITTED,
            assets=dict(generation.assets),
            committed_at=format_rfc3339(utc_now()),
        )
        temp_path = self.path_for(generation.name)
        try:
            atomic_write_json(temp_path, encode_generation(committed))
            temp_path.replace(self.path_for(committed_name))
        except OSError:
            self.discard(generation.name)
            raise
        generation.status = GenerationStatus.COMMITTED

        removed = self.prune(keep=committed_name)
        logger.info(
            "offline.generation_committed name=%s assets=%d pruned=%d",
            committed_name,
            len(committed.assets),
            len(removed),
        )
        return committed

    def prune(self, *, keep: str) -> List[str]:
        removed: List[str] = []
        if not self._dir.exists():
            return removed
        for path in self._dir.iterdir():
            if not path.is_file() or path.name == f"{keep}.json":
                continue
            if path.suffix not in (".json", ".tmp"):
                continue
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(path.name)
        return removed

    def discard(self, name: str) -> None:
        for path in (self.path_for(name), self.path_for(name).with_suffix(".json.tmp")):
            try:
                path.unlink()
            except FileNotFoundError:
                continue


def _committed_sort_key(generation: CacheGeneration) -> float:
    if not generation.committed_at:
        return 0.0
    try:
        return parse_rfc3339(generation.committed_at).timestamp()
    except ValueError:
        return 0.0
