"""Tests for builds/dependency_cache.py module."""

import os
import time
from pathlib import Path

import pytest

from helpers import FAILING_SCRIPT, install_script, python_command
from sitedeploy.builds.dependency_cache import DependencyCache, entry_lock
from sitedeploy.errors import BuildError

MANIFEST_A = {"dependencies": {"react": "^19.0.0"}}
MANIFEST_B = {"dependencies": {"vue": "^3.0.0"}}


@pytest.fixture
def cache(tmp_path: Path, install_counter: Path) -> DependencyCache:
    return DependencyCache(
        cache_dir=tmp_path / "cache",
        install_command=python_command(install_script(install_counter)),
        install_timeout=60,
        keep=3,
    )


def _installs(counter: Path) -> int:
    return int(counter.read_text()) if counter.exists() else 0


def _stage(tmp_path: Path, name: str) -> Path:
    path = tmp_path / "staging" / name
    path.mkdir(parents=True)
    return path


class TestPrepare:
    """Tests for DependencyCache.prepare."""

    def test_miss_then_hit(self, cache, tmp_path: Path, install_counter: Path) -> None:
        """A manifest should be installed once and reused afterwards."""
        first = _stage(tmp_path, "one")
        key, hit = cache.prepare(first, MANIFEST_A)
        assert hit is False
        assert (first / "node_modules" / "dep" / "index.js").exists()

        second = _stage(tmp_path, "two")
        key2, hit2 = cache.prepare(second, {"dependencies": {"react": "^19.0.0"}})
        assert key2 == key
        assert hit2 is True
        assert (second / "node_modules" / "dep" / "index.js").exists()
        assert _installs(install_counter) == 1

    def test_entry_contains_manifest(self, cache, tmp_path: Path) -> None:
        """The entry should hold the dependency manifest it was built from."""
        key, _ = cache.prepare(_stage(tmp_path, "one"), MANIFEST_A)
        entry = cache.get(key)
        assert entry is not None
        assert (entry / "package.json").exists()

    def test_different_manifests_different_entries(
        self, cache, tmp_path: Path, install_counter: Path
    ) -> None:
        """Different dependency sets should not share an entry."""
        key_a, _ = cache.prepare(_stage(tmp_path, "a"), MANIFEST_A)
        key_b, _ = cache.prepare(_stage(tmp_path, "b"), MANIFEST_B)
        assert key_a != key_b
        assert _installs(install_counter) == 2

    def test_install_failure(self, tmp_path: Path) -> None:
        """A failing install should raise and leave no entry behind."""
        cache = DependencyCache(
            cache_dir=tmp_path / "cache",
            install_command=python_command(FAILING_SCRIPT),
        )
        log = tmp_path / "build.log"
        with pytest.raises(BuildError) as exc_info:
            cache.prepare(_stage(tmp_path, "x"), MANIFEST_A, log_path=log)

        assert exc_info.value.code == "dependency_install_failed"
        assert cache.list_entries() == []
        assert "compile error: boom" in log.read_text()

    def test_materialize_missing_entry(self, cache, tmp_path: Path) -> None:
        """Materializing an unknown key should raise BuildError."""
        with pytest.raises(BuildError) as exc_info:
            cache.materialize("0" * 64, tmp_path)
        assert exc_info.value.code == "cache_miss"


class TestPrune:
    """Tests for list_entries and prune."""

    def _populate(self, cache: DependencyCache, tmp_path: Path, count: int) -> list[str]:
        keys = []
        for i in range(count):
            key = cache.key_for({"dependencies": {f"pkg{i}": "1.0.0"}})
            cache.populate(key, {"dependencies": {f"pkg{i}": "1.0.0"}})
            # Distinct recency, oldest first
            stamp = time.time() - (count - i) * 100
            os.utime(cache.entry_path(key), (stamp, stamp))
            keys.append(key)
        return keys

    def test_list_most_recent_first(self, cache, tmp_path: Path) -> None:
        """Entries should be ordered by last use, newest first."""
        keys = self._populate(cache, tmp_path, 3)
        assert [e.key for e in cache.list_entries()] == list(reversed(keys))

    def test_keeps_most_recent(self, cache, tmp_path: Path) -> None:
        """Only the N most recently used entries should survive."""
        keys = self._populate(cache, tmp_path, 4)
        removed = cache.prune(keep=2)

        assert sorted(removed) == sorted(keys[:2])
        assert cache.get(keys[0]) is None
        assert cache.get(keys[3]) is not None

    def test_use_refreshes_recency(self, cache, tmp_path: Path) -> None:
        """Materializing an entry should protect it from pruning."""
        keys = self._populate(cache, tmp_path, 3)
        cache.materialize(keys[0], _stage(tmp_path, "use"))

        removed = cache.prune(keep=1)
        assert keys[0] not in removed
        assert cache.get(keys[0]) is not None

    def test_in_use_entry_skipped(self, cache, tmp_path: Path) -> None:
        """An entry whose lock is held should not be removed."""
        keys = self._populate(cache, tmp_path, 3)

        with entry_lock(cache.lock_dir, keys[0]):
            removed = cache.prune(keep=1)

        assert keys[0] not in removed
        assert cache.get(keys[0]) is not None
        assert removed == [keys[1]]

    def test_default_keep(self, cache, tmp_path: Path) -> None:
        """prune() without an argument should use the configured keep."""
        self._populate(cache, tmp_path, 5)
        cache.prune()
        assert len(cache.list_entries()) == 3


class TestEntryLock:
    """Tests for entry_lock."""

    def test_timeout_when_held(self, tmp_path: Path) -> None:
        """A held lock should time out a second acquirer."""
        with entry_lock(tmp_path, "k"):
            with pytest.raises(TimeoutError):
                with entry_lock(tmp_path, "k", timeout=0):
                    pass

    def test_reacquire_after_release(self, tmp_path: Path) -> None:
        """A released lock should be acquirable again."""
        with entry_lock(tmp_path, "k"):
            pass
        with entry_lock(tmp_path, "k", timeout=0):
            pass
