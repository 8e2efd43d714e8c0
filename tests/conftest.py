from pathlib import Path

import pytest

from html_optimizer.classifier import LocalFileResolver
from html_optimizer.config import OptimizeConfig
from html_optimizer.pipeline import Optimizer
from html_optimizer.registry import HashRegistry, MemoryHashStore, hash_entry

SITE_URL = "http://example.com"


def min_url(sources, ext):
    """URL a fresh registry assigns to an ordered source list."""
    return f"{SITE_URL}/min/{hash_entry(sources).short_hash}.{ext}"


@pytest.fixture
def doc_root(tmp_path) -> Path:
    root = tmp_path / "public"
    root.mkdir()
    return root


@pytest.fixture
def asset(doc_root):
    def _write(rel_path: str, size: int = 10, content: str = None) -> Path:
        path = doc_root / rel_path.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x" * size if content is None else content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def store():
    return MemoryHashStore()


@pytest.fixture
def registry(store):
    return HashRegistry(store, SITE_URL)


@pytest.fixture
def resolver(doc_root):
    return LocalFileResolver(SITE_URL, doc_root)


@pytest.fixture
def make_optimizer(registry, resolver):
    def _make(minifier=None, extensions=None, **options):
        config = OptimizeConfig(site_url=SITE_URL, **options)
        kwargs = {}
        if minifier is not None:
            kwargs["minifier"] = minifier
        return Optimizer(config, registry, resolver, extensions=extensions, **kwargs)

    return _make
