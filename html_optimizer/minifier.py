"""Default byte-level minifiers for HTML, CSS and JavaScript."""

from __future__ import annotations

import logging
from typing import Callable, Dict

import minify_html
import rcssmin
import rjsmin

from .models import AssetKind

logger = logging.getLogger("html_optimizer")

Minifier = Callable[[bytes, AssetKind], bytes]


class MinifyError(RuntimeError):
    """Raised when a minifier cannot process its input."""


def _minify_html(text: str) -> str:
    return minify_html.minify(
        text,
        minify_js=True,
        minify_css=True,
        keep_closing_tags=True,
        keep_html_and_head_opening_tags=True,
    )


_TEXT_MINIFIERS: Dict[AssetKind, Callable[[str], str]] = {
    AssetKind.HTML: _minify_html,
    AssetKind.CSS: rcssmin.cssmin,
    AssetKind.JS: rjsmin.jsmin,
}


def minify(data: bytes, kind: AssetKind) -> bytes:
    """Minify UTF-8 encoded content of the given kind."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MinifyError(f"{kind.value} input is not valid UTF-8: {exc}") from exc
    try:
        result = _TEXT_MINIFIERS[kind](text)
    except Exception as exc:  # noqa: BLE001 - third-party minifiers raise arbitrary errors
        raise MinifyError(f"Failed to minify {kind.value}: {exc}") from exc
    logger.debug("Minified %s: %d -> %d bytes", kind.value, len(data), len(result.encode("utf-8")))
    return result.encode("utf-8")
