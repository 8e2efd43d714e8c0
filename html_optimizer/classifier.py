"""Decide which asset references may be minified or combined."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import unquote, urlsplit

from .config import OptimizeConfig
from .models import AssetKind, AssetReference, ClassifiedReference, ExcludeReason, FileInfo
from .utils import is_jquery, str_hit_array

logger = logging.getLogger("html_optimizer")


class FileResolver(Protocol):
    def resolve_local(self, url: str) -> Optional[FileInfo]: ...


class LocalFileResolver:
    """Map URLs on the site's own host to files below a document root."""

    def __init__(self, site_url: str, doc_root: Path) -> None:
        parsed = urlsplit(site_url)
        self.site_host = parsed.netloc.lower()
        self.site_path = parsed.path.rstrip("/")
        self.doc_root = Path(doc_root).resolve()

    def local_path(self, url: str) -> Optional[Path]:
        """Return the file path a URL points to, or None for other hosts."""
        parsed = urlsplit(url)
        if parsed.scheme and parsed.scheme not in ("http", "https"):
            return None
        if parsed.netloc and parsed.netloc.lower() != self.site_host:
            return None

        path = unquote(parsed.path)
        if not path:
            return None
        if path.startswith("/"):
            if self.site_path and path.startswith(self.site_path + "/"):
                path = path[len(self.site_path):]
        candidate = (self.doc_root / path.lstrip("/")).resolve()
        try:
            candidate.relative_to(self.doc_root)
        except ValueError:
            logger.debug("URL %s escapes the document root", url)
            return None
        return candidate

    def resolve_local(self, url: str) -> Optional[FileInfo]:
        path = self.local_path(url)
        if path is None or not path.is_file():
            return None
        return FileInfo(path=path, size=path.stat().st_size)


class LinkClassifier:
    """Apply the exclusion rules to a reference, first matching rule wins."""

    def __init__(self, config: OptimizeConfig, resolver: FileResolver) -> None:
        self.config = config
        self.resolver = resolver

    def _exclude_patterns(self, kind: AssetKind):
        if kind is AssetKind.CSS:
            return self.config.css_exclude_list
        return self.config.js_exclude_list

    def classify(self, reference: AssetReference) -> ClassifiedReference:
        url = reference.url
        if "data-no-optimize" in reference.raw_tag:
            logger.debug("Excluded %s: data-no-optimize attribute", url)
            return ClassifiedReference(reference, False, ExcludeReason.EXPLICIT_EXCLUDE)

        pattern = str_hit_array(url, self._exclude_patterns(reference.kind))
        if pattern:
            logger.debug("Excluded %s: matches exclude pattern %s", url, pattern)
            return ClassifiedReference(reference, False, ExcludeReason.CONFIGURED_EXCLUDE)

        file_info = self.resolver.resolve_local(url)
        if file_info is None:
            logger.debug("Excluded %s: external or missing file", url)
            return ClassifiedReference(reference, False, ExcludeReason.EXTERNAL)

        if self.config.exclude_jquery and is_jquery(url):
            logger.debug("Excluded %s: jQuery kept separate by setting", url)
            return ClassifiedReference(
                reference, False, ExcludeReason.JQUERY_EXCLUDED, file_info.size
            )

        return ClassifiedReference(reference, True, None, file_info.size)
