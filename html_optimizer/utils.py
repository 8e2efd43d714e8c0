"""Utility helpers for URL matching and tag attribute handling."""

from __future__ import annotations

import posixpath
import re
from typing import Dict, Iterable, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

PROTECTED_BLOCKS = r"(?is:<!--.*?-->|<noscript\b.*?</noscript\s*>)"
VER_QUERY_PATTERN = re.compile(r"(&amp;|[?&])ver=[\w.\-]*(?=&|#|$)", re.IGNORECASE)
JQUERY_FILENAMES = {"jquery.js", "jquery.min.js"}


def str_hit_array(value: str, patterns: Iterable[str]) -> Optional[str]:
    """Return the first pattern found in value.

    Patterns are plain substrings; a leading ``^`` anchors the match to the
    start of the value and a trailing ``$`` to its end.
    """
    for pattern in patterns:
        if not pattern:
            continue
        needle = pattern
        anchored_start = needle.startswith("^")
        anchored_end = needle.endswith("$")
        if anchored_start:
            needle = needle[1:]
        if anchored_end:
            needle = needle[:-1]
        if not needle:
            continue
        if anchored_start and anchored_end:
            hit = value == needle
        elif anchored_start:
            hit = value.startswith(needle)
        elif anchored_end:
            hit = value.endswith(needle)
        else:
            hit = needle in value
        if hit:
            return pattern
    return None


def parse_attrs(tag_html: str) -> Optional[Dict[str, str]]:
    """Parse the attributes of the first element in a tag snippet."""
    try:
        soup = BeautifulSoup(tag_html, "html.parser", multi_valued_attributes=None)
    except ParserRejectedMarkup:
        return None
    element = soup.find(True)
    if element is None:
        return None
    return {str(name).lower(): "" if value is None else str(value) for name, value in element.attrs.items()}


def is_jquery(url: str) -> bool:
    """Detect the jQuery core library by its filename."""
    path = urlsplit(url).path
    return posixpath.basename(path).lower() in JQUERY_FILENAMES


def remove_query_strings(src: str) -> str:
    """Drop `ver=` cache-busting parameters from an asset URL."""
    if "ver=" not in src.lower():
        return src

    def _keep_question_mark(match: re.Match) -> str:
        return "?" if match.group(1) == "?" else ""

    stripped = VER_QUERY_PATTERN.sub(_keep_question_mark, src)
    stripped = stripped.replace("?&amp;", "?").replace("?&", "?").replace("?#", "#")
    return stripped.rstrip("?")


def _attr_value_pattern(name: str) -> re.Pattern:
    return re.compile(
        r"(?P<prefix>\s" + re.escape(name) + r"\s*=\s*)"
        r"(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)'|(?P<bare>[^\s\"'>]+))",
        re.IGNORECASE,
    )


def get_attr_raw(tag_html: str, name: str) -> Optional[str]:
    """Return an attribute value exactly as written in the markup."""
    match = _attr_value_pattern(name).search(tag_html)
    if not match:
        return None
    for group in ("dq", "sq", "bare"):
        if match.group(group) is not None:
            return match.group(group)
    return None


def replace_attr_value(tag_html: str, name: str, new_value: str) -> str:
    """Swap one attribute value while keeping the tag's quoting style."""

    def _swap(match: re.Match) -> str:
        if match.group("dq") is not None:
            quote = '"'
        elif match.group("sq") is not None:
            quote = "'"
        else:
            quote = ""
        return f"{match.group('prefix')}{quote}{new_value}{quote}"

    return _attr_value_pattern(name).sub(_swap, tag_html, count=1)


def url2uri(url: str) -> str:
    """Reduce a URL to its path and query so it can be used in a Link header."""
    parts = urlsplit(url)
    if not parts.path:
        return ""
    return parts.path + (f"?{parts.query}" if parts.query else "")
