"""Serve combined/minified files previously named by the hash registry."""

from __future__ import annotations

import logging
import posixpath
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from .classifier import LocalFileResolver
from .config import CSS_ASYNC_LIB_NAME, OptimizeConfig
from .minifier import Minifier, MinifyError, minify
from .models import AssetKind
from .registry import HashRegistry

logger = logging.getLogger("html_optimizer")

CSS_ASYNC_LIB_PATH = Path(__file__).parent / "assets" / CSS_ASYNC_LIB_NAME
CSS_ASYNC_LIB_TTL = 8_640_000
MIN_TAG = "MIN"
CSS_ASYNC_TAG = "MIN_CSS_ASYNC"

CONTENT_TYPES = {
    AssetKind.CSS: "text/css; charset=utf-8",
    AssetKind.JS: "application/javascript; charset=utf-8",
}

CSS_URL_PATTERN = re.compile(r"url\(\s*([\"']?)([^\"')]+)\1\s*\)", re.IGNORECASE)


@dataclass
class CacheControl:
    """Collects the caching decision for one response."""

    cacheable: bool = False
    ttl: Optional[int] = None
    tags: List[str] = field(default_factory=list)

    def set_cacheable(self) -> None:
        self.cacheable = True

    def set_ttl(self, seconds: int) -> None:
        self.ttl = seconds

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def headers(self) -> Dict[str, str]:
        if not self.cacheable:
            return {"Cache-Control": "no-cache"}
        headers = {"Cache-Control": "public" if self.ttl is None else f"public, max-age={self.ttl}"}
        if self.tags:
            headers["Cache-Tag"] = ",".join(self.tags)
        return headers


@dataclass
class StaticResponse:
    body: bytes
    content_type: str
    headers: Dict[str, str]


def rewrite_css_urls(css: str, source_url: str) -> str:
    """Make relative `url()` references absolute so they survive combination."""
    base_dir = posixpath.dirname(urlsplit(source_url).path) or "/"

    def _absolute(match: re.Match) -> str:
        quote, target = match.group(1), match.group(2).strip()
        lowered = target.lower()
        if target.startswith(("/", "#")) or lowered.startswith(("data:", "http:", "https:")):
            return match.group(0)
        resolved = posixpath.normpath(posixpath.join(base_dir, target))
        return f"url({quote}{resolved}{quote})"

    return CSS_URL_PATTERN.sub(_absolute, css)


class MinFileResponder:
    """Answer `/min/<hash>.<ext>` requests by rebuilding the file from its sources."""

    def __init__(
        self,
        config: OptimizeConfig,
        registry: HashRegistry,
        resolver: LocalFileResolver,
        minifier: Minifier = minify,
        cache_dir: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.resolver = resolver
        self.minifier = minifier
        self.cache_dir = cache_dir
        min_dir = re.escape(config.min_dir.rstrip("/"))
        self._file_pattern = re.compile(min_dir + r"/(\w+\.(css|js))\Z")
        self._lib_path = config.min_dir.rstrip("/") + "/" + CSS_ASYNC_LIB_NAME

    def handle(self, request_uri: str, cache: CacheControl) -> Optional[StaticResponse]:
        """Return the response for a min-file request, or None when not ours."""
        path = urlsplit(request_uri).path
        cfg = self.config

        if (cfg.css_async_load or cfg.google_fonts_async) and path.endswith(self._lib_path):
            logger.debug("Serving CSS async loader")
            body = CSS_ASYNC_LIB_PATH.read_bytes()
            cache.set_cacheable()
            cache.set_ttl(CSS_ASYNC_LIB_TTL)
            cache.add_tag(CSS_ASYNC_TAG)
            return self._response(body, AssetKind.JS, cache)

        if not (cfg.css_minify or cfg.css_combine or cfg.js_minify or cfg.js_combine):
            return None
        match = self._file_pattern.search(path)
        if not match:
            return None

        filename, kind = match.group(1), AssetKind(match.group(2))
        body = self._read_cache(filename, kind)
        if body is None:
            body = self.build(filename, kind)
            if body is None:
                logger.warning("No content could be built for %s", filename)
                return None
            self._write_cache(filename, kind, body)

        cache.set_cacheable()
        cache.set_ttl(cfg.optimize_ttl)
        cache.add_tag(MIN_TAG)
        return self._response(body, kind, cache)

    def build(self, filename: str, kind: AssetKind) -> Optional[bytes]:
        """Concatenate, and unless configured otherwise minify, a file's sources."""
        sources = self.registry.sources_for(filename)
        if not sources:
            logger.warning("Unknown min file %s", filename)
            return None

        parts: List[bytes] = []
        for src in sources:
            info = self.resolver.resolve_local(src)
            if info is None:
                logger.warning("Source %s of %s is no longer available", src, filename)
                continue
            data = info.path.read_bytes()
            if kind is AssetKind.CSS:
                data = rewrite_css_urls(data.decode("utf-8", errors="replace"), src).encode("utf-8")
            parts.append(data)
        if not parts:
            return None

        content = (b"\n" if kind is AssetKind.CSS else b";\n").join(parts)
        concat_only = not (self.config.css_minify if kind is AssetKind.CSS else self.config.js_minify)
        if concat_only:
            return content
        try:
            return self.minifier(content, kind)
        except MinifyError as exc:
            logger.warning("Serving %s unminified: %s", filename, exc)
            return content

    def _cache_path(self, filename: str, kind: AssetKind) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return Path(self.cache_dir) / kind.value / filename

    def _read_cache(self, filename: str, kind: AssetKind) -> Optional[bytes]:
        path = self._cache_path(filename, kind)
        if path is None or not path.is_file():
            return None
        if time.time() - path.stat().st_mtime > self.config.optimize_ttl:
            return None
        logger.debug("Serving %s from file cache", path)
        return path.read_bytes()

    def _write_cache(self, filename: str, kind: AssetKind, body: bytes) -> None:
        path = self._cache_path(filename, kind)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as exc:
            logger.warning("Failed to write min file cache %s: %s", path, exc)

    @staticmethod
    def _response(body: bytes, kind: AssetKind, cache: CacheControl) -> StaticResponse:
        headers = {"Content-Length": str(len(body)), "Content-Type": CONTENT_TYPES[kind]}
        headers.update(cache.headers())
        return StaticResponse(body=body, content_type=CONTENT_TYPES[kind], headers=headers)
