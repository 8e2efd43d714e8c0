"""Regex based discovery of stylesheet and script tags."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Protocol

from .models import AssetKind, AssetReference, Position
from .utils import PROTECTED_BLOCKS, parse_attrs

logger = logging.getLogger("html_optimizer")

HEAD_CLOSE = "</head>"

LINK_PATTERN = re.compile(
    PROTECTED_BLOCKS + r"|(?P<tag><link\s+[^>]+?/?>|</head>)", re.IGNORECASE | re.DOTALL
)
SCRIPT_PATTERN = re.compile(
    PROTECTED_BLOCKS + r"|(?P<tag><script\s+[^>]+>\s*</script\s*>|</head>)", re.IGNORECASE | re.DOTALL
)


class TagScanner(Protocol):
    """Anything able to list the asset tags of a page in document order."""

    def scan(self, html: str, kind: AssetKind) -> List[AssetReference]: ...


class RegexTagScanner:
    """Find `<link rel=stylesheet>` and empty-bodied `<script src>` tags.

    The page itself is searched, with comments and ``<noscript>`` blocks matched
    first and passed over, so every reference is a live tag whose raw text
    occurs verbatim outside those blocks.
    """

    def scan(self, html: str, kind: AssetKind) -> List[AssetReference]:
        pattern = LINK_PATTERN if kind is AssetKind.CSS else SCRIPT_PATTERN
        references: List[AssetReference] = []
        seen = set()
        position = Position.HEAD
        for match in pattern.finditer(html):
            raw_tag = match.group("tag")
            if raw_tag is None:
                continue
            if raw_tag.lower() == HEAD_CLOSE:
                position = Position.BODY
                continue
            if raw_tag in seen:
                continue

            attrs = parse_attrs(raw_tag)
            if attrs is None:
                logger.debug("Skipping tag that failed attribute parsing: %s", raw_tag)
                continue

            url = self._asset_url(attrs, kind)
            if not url:
                continue

            seen.add(raw_tag)
            references.append(
                AssetReference(
                    url=url,
                    raw_tag=raw_tag,
                    position=position,
                    kind=kind,
                    attrs=attrs,
                )
            )
        logger.debug("Found %d %s references", len(references), kind.value)
        return references

    @staticmethod
    def _asset_url(attrs: Dict[str, str], kind: AssetKind) -> Optional[str]:
        if "data-optimized" in attrs or "data-no-optimize" in attrs:
            return None
        if kind is AssetKind.CSS:
            if attrs.get("rel", "").strip().lower() != "stylesheet":
                return None
            if "print" in attrs.get("media", "").lower():
                return None
            return attrs.get("href", "").strip() or None
        return attrs.get("src", "").strip() or None
