import json
import tempfile
import unittest
from pathlib import Path

from primer_cache.cache import Meta, read_meta, write_meta
from primer_cache.cache.models import BundleMeta, FileEtag


class MetaStoreTests(unittest.TestCase):
    def test_missing_file_reads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            meta = read_meta(Path(tmp) / "_meta.json")

        self.assertIsNone(meta.registry_etag)
        self.assertEqual(meta.bundles, {})

    def test_corrupt_json_reads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "_meta.json"
            path.write_text("{\"registryEtag\": ", encoding="utf-8")

            meta = read_meta(path)

        self.assertEqual(meta, Meta())

    def test_schema_mismatch_reads_as_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "_meta.json"
            path.write_text(json.dumps({"bundles": {"alpha": {"etags": {}}}}), encoding="utf-8")

            meta = read_meta(path)

        self.assertEqual(meta.bundles, {})

    def test_write_then_read(self) -> None:
        meta = Meta(
            registry_fetched_at="2026-01-02T03:04:05Z",
            registry_etag='"abc"',
            bundles={
                "alpha": BundleMeta(
                    fetched_at="2026-01-02T03:04:06Z",
                    etags={"index.md": FileEtag(etag='"i1"')},
                )
            },
        )
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "_meta.json"
            write_meta(path, meta)

            payload = json.loads(path.read_text(encoding="utf-8"))
            loaded = read_meta(path)
            leftovers = [p.name for p in path.parent.iterdir() if p.name.endswith(".tmp")]

        self.assertEqual(payload["registryEtag"], '"abc"')
        self.assertEqual(payload["bundles"]["alpha"]["fetchedAt"], "2026-01-02T03:04:06Z")
        self.assertEqual(loaded, meta)
        self.assertEqual(leftovers, [])

    def test_absent_values_are_not_written(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "_meta.json"
            write_meta(path, Meta(bundles={"alpha": BundleMeta(fetched_at="2026-01-01T00:00:00Z")}))

            payload = json.loads(path.read_text(encoding="utf-8"))

        self.assertNotIn("registryEtag", payload)
        self.assertEqual(payload["bundles"]["alpha"]["etags"], {})

    def test_reads_legacy_field_names(self) -> None:
        legacy = {
            "manifestFetchedAt": "2025-12-01T00:00:00Z",
            "manifestEtag": '"m1"',
            "primers": {"alpha": {"fetchedAt": "2025-12-01T00:00:01Z", "etags": {"index.md": {"etag": '"x"'}}}},
        }
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "_meta.json"
            path.write_text(json.dumps(legacy), encoding="utf-8")

            meta = read_meta(path)

        self.assertEqual(meta.registry_etag, '"m1"')
        self.assertEqual(meta.bundles["alpha"].etags["index.md"].etag, '"x"')


if __name__ == "__main__":
    unittest.main()
