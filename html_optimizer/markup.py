"""Build replacement tags and splice them back into the page."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Mapping

from .config import OptimizeConfig
from .models import AssetKind, ClassifiedReference
from .utils import PROTECTED_BLOCKS, is_jquery, parse_attrs, replace_attr_value, str_hit_array

logger = logging.getLogger("html_optimizer")

CHARSET_META_PATTERN = re.compile(r"<meta\s+charset\b[^>]*>", re.IGNORECASE)
HEAD_OPEN_PATTERN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
BODY_CLOSE_PATTERN = re.compile(r"</body\s*>", re.IGNORECASE)
REL_STYLESHEET_PATTERN = re.compile(r"(\srel\s*=\s*)([\"']?)stylesheet\2", re.IGNORECASE)
TAG_OPEN_PATTERN = re.compile(r"^<(link|script)\b", re.IGNORECASE)

ASYNC_CSS_ATTRS = " data-asynced='1' as='style' onload='this.rel=\"stylesheet\"'"
DEFER_ATTRS = ' defer data-deferred="1"'
NO_DEFER_ATTRS = ("async", "defer", "data-deferred", "data-no-defer")


def combined_css_tag(url: str) -> str:
    return f"<link data-optimized='2' rel='stylesheet' href='{url}' />"


def combined_js_tag(url: str, defer: bool = False) -> str:
    return f"<script data-optimized='1' src='{url}'{' defer' if defer else ''}></script>"


def dns_prefetch_tag(host: str) -> str:
    return f"<link rel='dns-prefetch' href='{host}' />"


def push_hint(uri: str, kind: AssetKind) -> str:
    """Format one Link header value announcing a preloadable asset."""
    return f"<{uri}>; rel=preload; as={kind.preload_as}"


def mark_optimized(tag_html: str, marker: str = "1") -> str:
    return TAG_OPEN_PATTERN.sub(lambda m: f"<{m.group(1)} data-optimized='{marker}'", tag_html, count=1)


def minified_tag(ref: ClassifiedReference, url: str) -> str:
    """Point an existing tag at its minified copy, keeping every other attribute."""
    attr = "href" if ref.kind is AssetKind.CSS else "src"
    return mark_optimized(replace_attr_value(ref.raw_tag, attr, url))


def async_css(tag_html: str) -> str:
    """Turn a stylesheet link into a preload that applies itself once loaded.

    The original tag is kept inside ``<noscript>`` for clients without JS.
    """
    if "data-asynced" in tag_html:
        logger.debug("Async CSS bypass: data-asynced already present")
        return tag_html
    if "data-no-async" in tag_html:
        logger.debug("Async CSS bypass: data-no-async attribute")
        return tag_html

    swapped = REL_STYLESHEET_PATTERN.sub(r"\1\2preload\2", tag_html, count=1)
    swapped = TAG_OPEN_PATTERN.sub(lambda m: f"<{m.group(1)}{ASYNC_CSS_ATTRS}", swapped, count=1)
    return f"{swapped}<noscript>{tag_html}</noscript>"


def defer_js(tag_html: str, config: OptimizeConfig) -> str:
    """Add `defer` to a script tag unless something asks to keep it blocking."""
    attrs = parse_attrs(tag_html)
    if attrs is None:
        logger.debug("JS defer: failed to parse %s", tag_html)
        return tag_html
    if any(name in attrs for name in NO_DEFER_ATTRS):
        return tag_html

    src = attrs.get("src", "")
    if not src:
        logger.debug("JS defer: no src in %s", tag_html)
        return tag_html
    if str_hit_array(src, config.js_defer_exclude_list):
        logger.debug("JS defer exclude %s", src)
        return tag_html
    if config.exclude_jquery and is_jquery(src):
        logger.debug("JS defer skipped for jQuery %s", src)
        return tag_html

    end = tag_html.index(">")
    return tag_html[:end] + DEFER_ATTRS + tag_html[end:]


def assemble(snippet: str, ignored: Iterable[str], enqueue_first: bool) -> str:
    """Join the combined snippet with the tags that were left alone."""
    ignored_html = "".join(ignored)
    if enqueue_first:
        return snippet + ignored_html
    return ignored_html + snippet


def splice(content: str, replacements: Mapping[str, str]) -> str:
    """Replace every pending raw tag in a single pass.

    Occurrences inside comments or ``<noscript>`` blocks are left untouched.
    """
    if not replacements:
        return content
    alternatives = "|".join(re.escape(raw) for raw in sorted(replacements, key=len, reverse=True))
    pattern = re.compile(f"({PROTECTED_BLOCKS})|({alternatives})")

    def _swap(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return replacements[match.group(2)]

    return pattern.sub(_swap, content)


def inject_head(content: str, head_html: str) -> str:
    """Insert markup right after `<meta charset>` or, failing that, `<head>`."""
    if not head_html:
        return content
    match = CHARSET_META_PATTERN.search(content) or HEAD_OPEN_PATTERN.search(content)
    if match is None:
        logger.warning("No <head> found; prepending head markup to the document")
        return head_html + content
    return content[: match.end()] + head_html + content[match.end():]


def inject_foot(content: str, foot_html: str) -> str:
    """Insert markup right before the last `</body>`."""
    if not foot_html:
        return content
    matches: List[re.Match] = list(BODY_CLOSE_PATTERN.finditer(content))
    if not matches:
        logger.warning("No </body> found; appending foot markup to the document")
        return content + foot_html
    start = matches[-1].start()
    return content[:start] + foot_html + content[start:]
