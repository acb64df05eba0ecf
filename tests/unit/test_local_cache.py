# =============================================================================
# tests/unit/test_local_cache.py
# Unit Tests for the Local Object Cache
# =============================================================================

import threading

import pytest

from dma_core.errors import StorageUnavailable
from dma_core.offline.local_cache import (
    CACHE_INFO_KEY,
    EVAC_CENTERS,
    RESIDENTS,
    LocalObjectCache,
)


def _as_set(records):
    return {tuple(sorted((k, str(v)) for k, v in r.items())) for r in records}


class TestCollections:
    """put/get/replace behavior"""

    def test_round_trip(self, temp_cache, sample_residents):
        records = [r.to_record() for r in sample_residents]

        stored = temp_cache.put_collection(RESIDENTS, records)

        assert stored == len(records)
        assert _as_set(temp_cache.get_collection(RESIDENTS)) == _as_set(records)

    def test_never_populated_is_empty(self, temp_cache):
        assert temp_cache.get_collection(RESIDENTS) == []
        assert temp_cache.get_collection(EVAC_CENTERS) == []
        assert temp_cache.count(RESIDENTS) == 0

    def test_replace_not_merge(self, temp_cache):
        temp_cache.put_collection(RESIDENTS, [{"id": "a", "v": 1}, {"id": "b", "v": 2}])
        temp_cache.put_collection(RESIDENTS, [{"id": "c", "v": 3}])

        assert temp_cache.get_collection(RESIDENTS) == [{"id": "c", "v": 3}]

    def test_replace_with_empty_list_clears(self, temp_cache):
        temp_cache.put_collection(EVAC_CENTERS, [{"id": "c1"}])
        temp_cache.put_collection(EVAC_CENTERS, [])

        assert temp_cache.get_collection(EVAC_CENTERS) == []

    def test_put_collections_is_atomic(self, temp_cache):
        """A bad record in one collection leaves every collection untouched"""
        temp_cache.put_collection(RESIDENTS, [{"id": "r1"}])

        with pytest.raises(ValueError):
            temp_cache.put_collections({
                EVAC_CENTERS: [{"id": "c1"}],
                RESIDENTS: [{"id": "r2"}, {"name": "no id"}],
            })

        assert temp_cache.get_collection(RESIDENTS) == [{"id": "r1"}]
        assert temp_cache.get_collection(EVAC_CENTERS) == []

    def test_put_collections_writes_metadata(self, temp_cache):
        counts = temp_cache.put_collections(
            {RESIDENTS: [{"id": "r1"}], EVAC_CENTERS: [{"id": "c1"}, {"id": "c2"}]},
            metadata={CACHE_INFO_KEY: {"municipality": "Daraga", "timestamp": "2024-11-02T08:00:00"}},
        )

        assert counts == {RESIDENTS: 1, EVAC_CENTERS: 2}
        assert temp_cache.get_metadata(CACHE_INFO_KEY)["municipality"] == "Daraga"

    def test_duplicate_ids_keep_last(self, temp_cache):
        temp_cache.put_collection(RESIDENTS, [{"id": "r1", "v": 1}, {"id": "r1", "v": 2}])

        assert temp_cache.get_collection(RESIDENTS) == [{"id": "r1", "v": 2}]

    def test_numeric_ids_are_stored(self, temp_cache):
        temp_cache.put_collection(EVAC_CENTERS, [{"id": 42, "name": "Gym"}])

        assert temp_cache.get_collection(EVAC_CENTERS) == [{"id": 42, "name": "Gym"}]

    def test_missing_id_rejected(self, temp_cache):
        with pytest.raises(ValueError):
            temp_cache.put_collection(RESIDENTS, [{"first_name": "Ana"}])

    def test_unknown_collection_rejected(self, temp_cache):
        with pytest.raises(ValueError):
            temp_cache.put_collection("patients", [{"id": "p1"}])
        with pytest.raises(ValueError):
            temp_cache.get_collection("patients")

    def test_snapshot_visible_to_another_connection(self, tmp_path):
        path = tmp_path / "shared.db"
        writer = LocalObjectCache(path)
        reader = LocalObjectCache(path)

        writer.put_collection(RESIDENTS, [{"id": "r1"}])

        assert reader.get_collection(RESIDENTS) == [{"id": "r1"}]
        writer.close()
        reader.close()

    def test_reader_never_sees_partial_snapshot(self, tmp_path):
        """Readers on another connection see the old or the new snapshot, nothing in between"""
        path = tmp_path / "shared.db"
        writer = LocalObjectCache(path)
        reader = LocalObjectCache(path)
        big = [{"id": f"a{i}", "batch": "A"} for i in range(500)]
        small = [{"id": f"b{i}", "batch": "B"} for i in range(300)]
        writer.put_collection(RESIDENTS, big)

        done = threading.Event()
        seen = []
        errors = []

        def read_until_done():
            try:
                while True:
                    records = reader.get_collection(RESIDENTS)
                    seen.append((len(records), {r["batch"] for r in records}))
                    if done.is_set():
                        break
            except Exception as e:
                errors.append(e)
            finally:
                # Connections are per thread
                reader.close()

        thread = threading.Thread(target=read_until_done)
        thread.start()
        try:
            for i in range(40):
                writer.put_collection(RESIDENTS, small if i % 2 == 0 else big)
        finally:
            done.set()
            thread.join(timeout=30)

        assert errors == []
        assert seen
        assert all(snapshot in [(500, {"A"}), (300, {"B"})] for snapshot in seen)
        writer.close()


class TestMetadata:
    """Key/value metadata"""

    def test_set_and_get(self, temp_cache):
        temp_cache.set_metadata(CACHE_INFO_KEY, {"municipality": "Daraga", "timestamp": "t"})

        assert temp_cache.get_metadata(CACHE_INFO_KEY) == {"municipality": "Daraga", "timestamp": "t"}

    def test_missing_key_returns_default(self, temp_cache):
        assert temp_cache.get_metadata("nope") is None
        assert temp_cache.get_metadata("nope", default={}) == {}

    def test_overwrite(self, temp_cache):
        temp_cache.set_metadata("k", 1)
        temp_cache.set_metadata("k", 2)

        assert temp_cache.get_metadata("k") == 2


class TestClearAll:
    """Reset"""

    def test_clear_all_empties_everything(self, temp_cache):
        temp_cache.put_collections(
            {RESIDENTS: [{"id": "r1"}], EVAC_CENTERS: [{"id": "c1"}]},
            metadata={CACHE_INFO_KEY: {"municipality": "Daraga", "timestamp": "t"}},
        )

        temp_cache.clear_all()

        assert temp_cache.get_collection(RESIDENTS) == []
        assert temp_cache.get_collection(EVAC_CENTERS) == []
        assert temp_cache.get_metadata(CACHE_INFO_KEY) is None


class TestStorageFailures:
    """Storage errors surface as StorageUnavailable"""

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("plain file")
        cache = LocalObjectCache(blocker / "offline.db")

        with pytest.raises(StorageUnavailable) as exc_info:
            cache.get_collection(RESIDENTS)

        assert exc_info.value.code == "CACHE_001"
        assert exc_info.value.recoverable
        assert "offline.db" in exc_info.value.details["path"]

    def test_write_failure_rolls_back(self, temp_cache):
        temp_cache.put_collection(RESIDENTS, [{"id": "r1"}])

        # Second table of the batch is gone, so the write fails after residents were replaced
        temp_cache._get_connection().execute("DROP TABLE evac_centers")

        with pytest.raises(StorageUnavailable) as exc_info:
            temp_cache.put_collections({RESIDENTS: [{"id": "r2"}], EVAC_CENTERS: [{"id": "c1"}]})

        assert exc_info.value.details["collection"] == "residents,evac_centers"
        assert temp_cache.get_collection(RESIDENTS) == [{"id": "r1"}]

    def test_env_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DMA_CACHE_PATH", str(tmp_path / "env.db"))

        cache = LocalObjectCache()

        assert cache.db_path == tmp_path / "env.db"
