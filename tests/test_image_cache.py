"""Unit tests for the card image cache and local object store."""

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from tcg_scanner.core.keys import build_key
from tcg_scanner.core.types import ImagePayload
from tcg_scanner.store.image_cache import ImageCacheStore
from tcg_scanner.utils.error_handler import StorageError

from conftest import JPEG_BYTES, PNG_BYTES

KEY = "pokemon:pid:12345"


class TestLocalObjectStore:
    """Test exclusive-create object writes."""

    def test_write_new_creates_object(self, object_store, temp_dirs):
        assert object_store.write_new("scans/a.jpg", b"abc", "image/jpeg") is True
        assert (temp_dirs['objects_dir'] / "scans" / "a.jpg").read_bytes() == b"abc"

    def test_write_new_never_overwrites(self, object_store, temp_dirs):
        object_store.write_new("scans/a.jpg", b"first", "image/jpeg")
        assert object_store.write_new("scans/a.jpg", b"second", "image/jpeg") is False
        assert (temp_dirs['objects_dir'] / "scans" / "a.jpg").read_bytes() == b"first"

    def test_no_temp_files_left_behind(self, object_store, temp_dirs):
        object_store.write_new("scans/a.jpg", b"abc", "image/jpeg")
        object_store.write_new("scans/a.jpg", b"abc", "image/jpeg")
        assert [p.name for p in (temp_dirs['objects_dir'] / "scans").iterdir()] == ["a.jpg"]

    def test_find_by_stem_any_extension(self, object_store):
        object_store.write_new("scans/pokemon__pid__1.png", b"x", "image/png")
        assert object_store.find("scans", "pokemon__pid__1") == "scans/pokemon__pid__1.png"
        assert object_store.find("scans", "pokemon__pid__2") is None

    def test_public_url(self, object_store):
        assert object_store.public_url("scans/a.jpg") == "http://cdn.test/card-images/scans/a.jpg"

    def test_path_escape_rejected(self, object_store):
        with pytest.raises(ValueError):
            object_store.write_new("../outside.jpg", b"x", "image/jpeg")


class TestImageCacheStore:
    """Test lookup and first-write-wins put."""

    def test_lookup_miss(self, image_cache):
        assert image_cache.lookup(KEY) is None

    def test_put_then_lookup(self, image_cache, sample_image):
        result = image_cache.put(KEY, sample_image)
        assert result.created is True
        assert result.image_url == "http://cdn.test/card-images/scans/pokemon__pid__12345.jpg"
        assert image_cache.lookup(KEY) == result.image_url

    def test_second_put_reuses_first_image(self, image_cache, sample_image, temp_dirs):
        """A repeat put returns the same URL and does not store a second object."""
        first = image_cache.put(KEY, sample_image)
        second = image_cache.put(KEY, ImagePayload(data=PNG_BYTES, mime_type="image/png", extension="png"))

        assert second.created is False
        assert second.image_url == first.image_url
        stored = list((temp_dirs['objects_dir'] / "scans").iterdir())
        assert len(stored) == 1
        assert stored[0].read_bytes() == JPEG_BYTES

    def test_lookup_uses_canonical_key(self, image_cache, sample_image):
        key = build_key("pokemon", "Charizard ex", "Obsidian Flames", "125/197")
        url = image_cache.put(key, sample_image).image_url
        assert image_cache.lookup("Pokemon:Charizard ex:Obsidian Flames:125/197") == url

    def test_png_keeps_extension(self, image_cache):
        result = image_cache.put("magic:pid:99", ImagePayload(data=PNG_BYTES, mime_type="image/png", extension="png"))
        assert result.image_url.endswith("/scans/magic__pid__99.png")

    def test_orphaned_object_is_adopted(self, image_cache, object_store, sample_image):
        """An object without an index row (failed earlier insert) is reused, not overwritten."""
        object_store.write_new("scans/pokemon__pid__12345.jpg", b"orphan", "image/jpeg")

        result = image_cache.put(KEY, sample_image)
        assert result.created is False
        assert image_cache.lookup(KEY) == result.image_url

    @pytest.mark.parametrize("first,second", [
        ("pokemon:pid:SV3-125", "pokemon:pid:sv3_125"),
        (build_key("pokemon", "Pikachu", product_id="base:1"), build_key("pokemon", "PID", "Base", "1")),
    ])
    def test_similar_keys_never_adopt_each_others_object(self, image_cache, sample_image, first, second):
        first_url = image_cache.put(first, sample_image).image_url
        result = image_cache.put(second, ImagePayload(data=PNG_BYTES, mime_type="image/png", extension="png"))

        assert result.created is True
        assert result.image_url != first_url
        assert image_cache.lookup(first) == first_url

    def test_backfill_restores_product_ids_exactly(self, image_cache, sample_image, record_store):
        url = image_cache.put("pokemon:pid:sv3_125", sample_image).image_url
        with record_store.connect() as conn:
            conn.execute("DELETE FROM card_images")

        image_cache.backfill()

        assert image_cache.lookup("pokemon:pid:sv3_125") == url
        assert image_cache.lookup("pokemon:pid:sv3-125") is None

    def test_concurrent_first_puts_converge(self, record_store, object_store, temp_dirs):
        """Simultaneous first commits for one key store one object and agree on the URL."""
        stores = [ImageCacheStore(record_store, object_store) for _ in range(8)]
        images = [ImagePayload(data=JPEG_BYTES + bytes([i]), mime_type="image/jpeg", extension="jpg")
                  for i in range(8)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda pair: pair[0].put(KEY, pair[1]), zip(stores, images)))

        assert len({r.image_url for r in results}) == 1
        assert sum(1 for r in results if r.created) == 1
        assert len(list((temp_dirs['objects_dir'] / "scans").iterdir())) == 1

    def test_index_failure_raises_storage_error(self, image_cache, sample_image):
        with patch.object(image_cache.store, "transaction", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(StorageError) as exc_info:
                image_cache.put(KEY, sample_image)
        assert exc_info.value.details["card_key"] == KEY

    def test_lookup_failure_raises_storage_error(self, image_cache):
        with patch.object(image_cache.store, "connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(StorageError):
                image_cache.lookup(KEY)


class TestBackfill:
    """Test the one-time index migration."""

    def test_backfill_indexes_legacy_objects(self, image_cache, object_store):
        object_store.write_new("scans/pokemon__pid__777.jpg", b"x", "image/jpeg")
        object_store.write_new("scans/magic__black_lotus__alpha__232.png", b"y", "image/png")
        object_store.write_new("scans/holiday-photo.jpg", b"z", "image/jpeg")

        counts = image_cache.backfill()

        assert counts == {"indexed": 2, "skipped": 0, "unrecognized": 1}
        assert image_cache.lookup("pokemon:pid:777").endswith("/scans/pokemon__pid__777.jpg")
        assert image_cache.lookup("magic:black_lotus:alpha:232").endswith(".png")

    def test_backfill_skips_indexed_keys(self, image_cache, sample_image):
        image_cache.put(KEY, sample_image)
        counts = image_cache.backfill()
        assert counts == {"indexed": 0, "skipped": 1, "unrecognized": 0}

    def test_backfill_is_repeatable(self, image_cache, object_store):
        object_store.write_new("scans/pokemon__pid__777.jpg", b"x", "image/jpeg")
        image_cache.backfill()
        assert image_cache.backfill() == {"indexed": 0, "skipped": 1, "unrecognized": 0}
