import json

import pytest

from html_optimizer.models import AssetKind
from html_optimizer.registry import FileHashStore, HashRegistry, MemoryHashStore, hash_entry

from conftest import SITE_URL


def _find_short_hash_collision():
    seen = {}
    for index in range(500_000):
        sources = [f"/css/c{index}.css"]
        short = hash_entry(sources).short_hash
        if short in seen:
            return seen[short], sources
        seen[short] = sources
    raise AssertionError("no collision found")


def test_hash_entry_shapes():
    entry = hash_entry(["/a.css", "/b.css"])
    assert len(entry.short_hash) == 5
    assert len(entry.full_hash) == 32
    assert entry.full_hash.endswith(entry.short_hash)
    assert hash_entry(["/b.css", "/a.css"]).full_hash != entry.full_hash


def test_resolve_is_deterministic(registry, store):
    sources = ["/css/a.css", "/css/b.css"]
    first = registry.resolve(sources, AssetKind.CSS)
    second = registry.resolve(list(sources), AssetKind.CSS)
    short = hash_entry(sources).short_hash
    assert first == second == f"{SITE_URL}/min/{short}.css"
    assert store.get(f"{short}.css") == sources


def test_kinds_use_separate_keys(registry, store):
    registry.resolve(["/a"], AssetKind.CSS)
    registry.resolve(["/a"], AssetKind.JS)
    short = hash_entry(["/a"]).short_hash
    assert store.get(f"{short}.css") == ["/a"]
    assert store.get(f"{short}.js") == ["/a"]


def test_taken_short_hash_falls_back_to_full_hash(registry, store):
    sources = ["/js/a.js"]
    entry = hash_entry(sources)
    store.put(f"{entry.short_hash}.js", ["/js/other.js"])

    url = registry.resolve(sources, AssetKind.JS)

    assert url == f"{SITE_URL}/min/{entry.full_hash}.js"
    assert store.get(f"{entry.short_hash}.js") == ["/js/other.js"]
    assert store.get(f"{entry.full_hash}.js") == sources
    assert registry.resolve(sources, AssetKind.JS) == url


def test_colliding_source_lists_get_distinct_urls(registry):
    first, second = _find_short_hash_collision()
    first_url = registry.resolve(first, AssetKind.CSS)
    second_url = registry.resolve(second, AssetKind.CSS)
    assert first_url != second_url
    assert first_url.endswith(f"/{hash_entry(first).short_hash}.css")
    assert second_url.endswith(f"/{hash_entry(second).full_hash}.css")
    assert registry.sources_for(f"{hash_entry(second).full_hash}.css") == second


def test_empty_source_list_is_rejected(registry):
    with pytest.raises(ValueError):
        registry.resolve([], AssetKind.CSS)


def test_custom_min_dir():
    registry = HashRegistry(MemoryHashStore(), "http://example.com/", "/static/min/")
    name = registry.resolve_name(["/a.js"], AssetKind.JS)
    assert registry.url_for(name, AssetKind.JS) == f"http://example.com/static/min/{name}.js"


def test_sources_for_rejects_odd_filenames(registry):
    assert registry.sources_for("../etc/passwd") is None
    assert registry.sources_for("abcde.png") is None


def test_file_store_round_trip_and_check_then_set(tmp_path):
    store = FileHashStore(tmp_path / "store")
    assert store.get("abcde.css") is None
    assert store.put_if_absent("abcde.css", ["/a.css"]) is None
    assert store.put_if_absent("abcde.css", ["/b.css"]) == ["/a.css"]
    store.put("fghij.js", ["/x.js", "/y.js"])
    assert store.get("fghij.js") == ["/x.js", "/y.js"]
    assert json.loads((tmp_path / "store" / "abcde.css.json").read_text()) == ["/a.css"]


def test_file_store_rejects_invalid_keys(tmp_path):
    store = FileHashStore(tmp_path)
    with pytest.raises(ValueError):
        store.put("../escape.css", ["/a.css"])


def test_registry_over_file_store(tmp_path):
    registry = HashRegistry(FileHashStore(tmp_path), SITE_URL)
    url = registry.resolve(["/a.css"], AssetKind.CSS)
    reopened = HashRegistry(FileHashStore(tmp_path), SITE_URL)
    assert reopened.resolve(["/a.css"], AssetKind.CSS) == url
    assert reopened.sources_for(url.rsplit("/", 1)[1]) == ["/a.css"]


def test_keys_with_trailing_newline_are_rejected(tmp_path, registry, store):
    store.put("abcde.css", ["/a.css"])
    assert registry.sources_for("abcde.css\n") is None
    with pytest.raises(ValueError):
        FileHashStore(tmp_path).put("abcde.css\n", ["/a.css"])
