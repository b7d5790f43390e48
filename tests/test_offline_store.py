import json
import tempfile
import unittest
from pathlib import Path

from mpaka.offline.io import encode_generation
from mpaka.offline.models import CachedAsset, CacheGeneration, GenerationStatus
from mpaka.offline.store import GenerationStore


def _verified(version: str, body: bytes = b"<html></html>") -> CacheGeneration:
    asset = CachedAsset(name="/", body=body, content_type="text/html", fetched_at="2026-01-01T00:00:00Z")
    return CacheGeneration(
        name=f"shop-temp-{version}",
        version=version,
        status=GenerationStatus.VERIFIED,
        assets={"/": asset},
    )


class GenerationStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)
        self.store = GenerationStore(self.dir)

    def test_commit_renames_temp_generation_and_reloads(self) -> None:
        generation = _verified("v1", b"hello")

        committed = self.store.commit(generation, "shop-v1")

        self.assertEqual(committed.status, GenerationStatus.COMMITTED)
        self.assertIsNotNone(committed.committed_at)
        self.assertEqual(generation.status, GenerationStatus.COMMITTED)
        self.assertEqual(self.store.names(), ["shop-v1"])
        self.assertFalse(self.store.path_for("shop-temp-v1").exists())

        loaded = self.store.load_committed()
        self.assertIsNotNone(loaded)
        self.assertEqual(loaded.name, "shop-v1")
        self.assertEqual(loaded.get("/").body, b"hello")

    def test_only_verified_generations_commit(self) -> None:
        generation = _verified("v1")
        generation.status = GenerationStatus.BUILDING

        with self.assertRaises(ValueError):
            self.store.commit(generation, "shop-v1")
        self.assertEqual(self.store.names(), [])

    def test_commit_prunes_other_generations(self) -> None:
        self.store.commit(_verified("v1"), "shop-v1")
        (self.dir / "leftover.json.tmp").write_text("{}", encoding="utf-8")

        self.store.commit(_verified("v2"), "shop-v2")

        self.assertEqual(self.store.names(), ["shop-v2"])
        self.assertFalse((self.dir / "leftover.json.tmp").exists())

    def test_corrupt_and_mismatched_files_are_ignored(self) -> None:
        self.dir.mkdir(parents=True, exist_ok=True)
        self.store.path_for("shop-v0").write_text("not json", encoding="utf-8")
        payload = encode_generation(
            CacheGeneration(
                name="shop-v1",
                version="v1",
                status=GenerationStatus.COMMITTED,
                assets=_verified("v1").assets,
                committed_at="2026-01-01T00:00:00Z",
            )
        )
        payload["assets"]["/"]["sha256"] = "0" * 64
        self.store.path_for("shop-v1").write_text(json.dumps(payload), encoding="utf-8")

        self.assertIsNone(self.store.load_committed())

    def test_uncommitted_payload_is_never_loaded(self) -> None:
        self.dir.mkdir(parents=True, exist_ok=True)
        payload = encode_generation(_verified("v1"))
        self.store.path_for("shop-temp-v1").write_text(json.dumps(payload), encoding="utf-8")

        self.assertIsNone(self.store.load_committed())

    def test_preferred_name_wins(self) -> None:
        self.dir.mkdir(parents=True, exist_ok=True)
        for name, stamp in (("shop-v1", "2026-01-01T00:00:00Z"), ("shop-v2", "2026-02-01T00:00:00Z")):
            generation = CacheGeneration(
                name=name,
                version=name.split("-")[-1],
                status=GenerationStatus.COMMITTED,
                assets=_verified("x").assets,
                committed_at=stamp,
            )
            self.store.path_for(name).write_text(json.dumps(encode_generation(generation)), encoding="utf-8")

        self.assertEqual(self.store.load_committed().name, "shop-v2")
        self.assertEqual(self.store.load_committed(preferred_name="shop-v1").name, "shop-v1")

    def test_failed_commit_leaves_no_temp_files(self) -> None:
        blocker = self.store.path_for("shop-v1")
        blocker.mkdir(parents=True)
        (blocker / "keep").write_text("x", encoding="utf-8")
        generation = _verified("v1")

        with self.assertRaises(OSError):
            self.store.commit(generation, "shop-v1")

        self.assertEqual(generation.status, GenerationStatus.VERIFIED)
        self.assertFalse(self.store.path_for("shop-temp-v1").exists())
        self.assertEqual(list(self.dir.glob("*.tmp")), [])

    def test_discard_removes_generation_files(self) -> None:
        self.store.commit(_verified("v1"), "shop-v1")

        self.store.discard("shop-v1")

        self.assertEqual(self.store.names(), [])


if __name__ == "__main__":
    unittest.main()
