"""High-level orchestration of the page optimization pipeline."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .classifier import FileResolver, LinkClassifier
from .config import OptimizeConfig
from .grouping import group
from .markup import (
    assemble,
    async_css,
    combined_css_tag,
    combined_js_tag,
    defer_js,
    dns_prefetch_tag,
    inject_foot,
    inject_head,
    minified_tag,
    push_hint,
    splice,
)
from .minifier import Minifier, minify
from .models import AssetKind, ClassifiedReference, DocumentBuffer, ExcludeReason, Position
from .registry import HashRegistry
from .scanner import RegexTagScanner, TagScanner
from .utils import get_attr_raw, is_jquery, remove_query_strings, replace_attr_value, str_hit_array, url2uri

logger = logging.getLogger("html_optimizer")

GOOGLE_FONTS_HOST = "fonts.googleapis.com"
GOOGLE_FONTS_STATIC = "fonts.gstatic.com"
GOOGLE_FONTS_PRECONNECT = '<link rel="preconnect" href="https://fonts.gstatic.com/" crossorigin />'
CRITICAL_CSS_ID = "optm-css-rules"

RESOURCE_HINT_PATTERN = re.compile(r"<link\b[^>]*>", re.IGNORECASE)
ASSET_TAG_PATTERN = re.compile(r"<(?:link|script)\b[^>]*>", re.IGNORECASE)
INLINE_SCRIPT_PATTERN = re.compile(r"<script\b[^>]*>(?:(?!</script).)*</script\s*>", re.IGNORECASE | re.DOTALL)
INLINE_STYLE_PATTERN = re.compile(r"<style\b[^>]*>(?:(?!</style).)*</style\s*>", re.IGNORECASE | re.DOTALL)
EMOJI_SCRIPT_MARKERS = ("wpemojiSettings", "wp-emoji-release")
EMOJI_STYLE_MARKER = "img.wp-smiley"

DocumentTransform = Callable[[str], str]
ReferenceFilter = Callable[[List[ClassifiedReference]], List[ClassifiedReference]]
HeadFootTransform = Callable[[str, str], Tuple[str, str]]


class Stage(str, Enum):
    IDLE = "idle"
    SCANNING_CSS = "scanning_css"
    PROCESSING_CSS = "processing_css"
    SCANNING_JS = "scanning_js"
    PROCESSING_JS = "processing_js"
    INJECTING_HEAD_FOOT = "injecting_head_foot"
    MINIFYING_WHOLE = "minifying_whole"
    DONE = "done"


@dataclass
class Extensions:
    """Callbacks invoked at fixed points of every run.

    ``pre_scan`` hooks rewrite the page before any tag is scanned,
    ``post_classify`` hooks may reorder or drop classified references (called
    once per asset kind) and ``pre_splice`` hooks receive and return the head
    and foot markup about to be injected.
    """

    pre_scan: List[DocumentTransform] = field(default_factory=list)
    post_classify: List[ReferenceFilter] = field(default_factory=list)
    pre_splice: List[HeadFootTransform] = field(default_factory=list)


@dataclass
class OptimizeResult:
    """Final page body and the preload hints collected while producing it."""

    content: str
    push_hints: List[str]
    stages: List[Stage]

    def link_header(self) -> str:
        """Value for a single `Link:` response header, empty when nothing to push."""
        return ",".join(self.push_hints)


class Optimizer:
    """Rewrite asset tags of HTML pages according to an `OptimizeConfig`.

    The optimizer keeps no per-request state: every call to `run` works on a
    fresh `DocumentBuffer`, so one instance can serve concurrent requests as
    long as the registry's store is safe to share.
    """

    def __init__(
        self,
        config: OptimizeConfig,
        registry: HashRegistry,
        resolver: FileResolver,
        minifier: Minifier = minify,
        scanner: Optional[TagScanner] = None,
        extensions: Optional[Extensions] = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.minifier = minifier
        self.scanner = scanner or RegexTagScanner()
        self.extensions = extensions or Extensions()
        self.classifier = LinkClassifier(config, resolver)

    def should_optimize(self, request_uri: str) -> bool:
        """Return False when the request URI hits a page exclusion pattern."""
        hit = str_hit_array(request_uri, self.config.uri_excludes)
        if hit:
            logger.debug("Optimizer bypass: %s hits URI exclude %s", request_uri, hit)
            return False
        return True

    def run(self, html: str, request_uri: str = "") -> OptimizeResult:
        """Optimize one page and return the rewritten markup."""
        stages = [Stage.IDLE]
        if request_uri and not self.should_optimize(request_uri):
            stages.append(Stage.DONE)
            return OptimizeResult(content=html, push_hints=[], stages=stages)

        cfg = self.config
        buffer = DocumentBuffer(content=html)
        self._apply_document_transforms(buffer)
        self._prepend_head_extras(buffer)

        if cfg.css_enabled or cfg.css_async_load or cfg.google_fonts_async or cfg.google_fonts_remove:
            self._run_guarded("CSS", buffer, lambda: self._css_stage(buffer, stages))

        if cfg.js_enabled or cfg.js_defer:
            self._run_guarded("JS", buffer, lambda: self._js_stage(buffer, stages))

        self._append_head_extras(buffer)

        self._apply_pre_splice_hooks(buffer)

        if buffer.replacements or buffer.head_injection or buffer.foot_injection:
            stages.append(Stage.INJECTING_HEAD_FOOT)
            content = splice(buffer.content, buffer.replacements)
            content = inject_head(content, buffer.head_injection)
            buffer.content = inject_foot(content, buffer.foot_injection)
            buffer.replacements = {}

        if cfg.html_minify:
            stages.append(Stage.MINIFYING_WHOLE)
            self._minify_document(buffer)

        stages.append(Stage.DONE)
        logger.debug("Optimizer finished with %d push hints", len(buffer.push_hints))
        return OptimizeResult(content=buffer.content, push_hints=list(buffer.push_hints), stages=stages)

    def _run_guarded(self, label: str, buffer: DocumentBuffer, stage: Callable[[], None]) -> None:
        saved = buffer.snapshot()
        try:
            stage()
        except Exception:  # pylint: disable=broad-except
            logger.exception("%s optimization failed; keeping original markup", label)
            buffer.restore(saved)

    # ---- document level transforms ----

    def _apply_document_transforms(self, buffer: DocumentBuffer) -> None:
        if self.config.emoji_script_remove:
            buffer.content = remove_emoji_scripts(buffer.content)
        if self.config.query_string_remove:
            buffer.content = strip_asset_query_strings(buffer.content)
        for hook in self.extensions.pre_scan:
            try:
                buffer.content = hook(buffer.content)
            except Exception:  # pylint: disable=broad-except
                logger.exception("pre_scan hook %r failed; keeping page unchanged", hook)

    def _apply_pre_splice_hooks(self, buffer: DocumentBuffer) -> None:
        for hook in self.extensions.pre_splice:
            try:
                head, foot = hook(buffer.head_injection, buffer.foot_injection)
            except Exception:  # pylint: disable=broad-except
                logger.exception("pre_splice hook %r failed; keeping head and foot markup", hook)
                continue
            buffer.head_injection, buffer.foot_injection = head, foot

    def _prepend_head_extras(self, buffer: DocumentBuffer) -> None:
        cfg = self.config
        if cfg.css_async_load and cfg.critical_css and CRITICAL_CSS_ID not in buffer.content:
            buffer.head_injection += f'<style id="{CRITICAL_CSS_ID}">{cfg.critical_css}</style>'
        existing = [tag for tag in RESOURCE_HINT_PATTERN.findall(buffer.content) if "dns-prefetch" in tag]
        for host in cfg.dns_prefetch_list:
            if any(host in tag for tag in existing):
                continue
            buffer.head_injection += dns_prefetch_tag(host)

    def _append_head_extras(self, buffer: DocumentBuffer) -> None:
        cfg = self.config
        if cfg.css_async_load or cfg.google_fonts_async:
            lib_url = cfg.css_async_lib_url
            if lib_url not in buffer.content:
                defer = " defer" if cfg.js_defer else ""
                buffer.head_injection += f"<script data-no-optimize='1' src='{lib_url}'{defer}></script>"
            self._push(buffer, lib_url, AssetKind.JS)
        if cfg.google_fonts_async:
            hints = RESOURCE_HINT_PATTERN.findall(buffer.content)
            if not any("preconnect" in tag and GOOGLE_FONTS_STATIC in tag for tag in hints):
                buffer.head_injection += GOOGLE_FONTS_PRECONNECT

    # ---- shared helpers ----

    def _classify(self, buffer: DocumentBuffer, kind: AssetKind) -> List[ClassifiedReference]:
        references = self.scanner.scan(buffer.content, kind)
        classified = [self.classifier.classify(ref) for ref in references]
        for hook in self.extensions.post_classify:
            classified = hook(classified)
        return classified

    def _push_enabled(self, kind: AssetKind) -> bool:
        return self.config.css_http2_push if kind is AssetKind.CSS else self.config.js_http2_push

    def _push(self, buffer: DocumentBuffer, url: str, kind: AssetKind) -> None:
        if not self._push_enabled(kind):
            return
        uri = url2uri(url)
        if uri:
            buffer.add_push_hint(push_hint(uri, kind))

    def _push_kept_internal(self, buffer: DocumentBuffer, working: List[ClassifiedReference]) -> None:
        for ref in working:
            if ref.reason is ExcludeReason.JQUERY_EXCLUDED:
                self._push(buffer, ref.url, ref.kind)

    def _combine(self, eligible: List[ClassifiedReference], kind: AssetKind) -> List[str]:
        batches = group(eligible, self.config.max_combined_bytes)
        urls = [self.registry.resolve(batch.sources, kind) for batch in batches]
        logger.info("Combined %d %s files into %d", len(eligible), kind.value, len(urls))
        return urls

    # ---- CSS ----

    def _wants_async(self, ref: ClassifiedReference) -> bool:
        if self.config.css_async_load:
            return True
        return self.config.google_fonts_async and GOOGLE_FONTS_HOST in ref.url

    def _css_stage(self, buffer: DocumentBuffer, stages: List[Stage]) -> None:
        cfg = self.config
        stages.append(Stage.SCANNING_CSS)
        classified = self._classify(buffer, AssetKind.CSS)
        working = [ref for ref in classified if not ref.pinned]

        if cfg.google_fonts_remove:
            kept = []
            for ref in working:
                if GOOGLE_FONTS_HOST in ref.url:
                    logger.debug("Removing Google Fonts stylesheet %s", ref.url)
                    buffer.queue_replacement(ref.raw_tag, "")
                else:
                    kept.append(ref)
            working = kept

        if not (cfg.css_enabled or cfg.css_async_load or cfg.google_fonts_async):
            return
        stages.append(Stage.PROCESSING_CSS)
        if cfg.css_enabled:
            self._push_kept_internal(buffer, working)

        eligible = [ref for ref in working if ref.eligible]
        if cfg.css_combine and eligible:
            urls = self._combine(eligible, AssetKind.CSS)
            tags = [combined_css_tag(url) for url in urls]
            if cfg.css_async_load:
                tags = [async_css(tag) for tag in tags]
            ignored = [
                async_css(ref.raw_tag) if self._wants_async(ref) else ref.raw_tag
                for ref in working
                if not ref.eligible
            ]
            buffer.head_injection += assemble("".join(tags), ignored, cfg.combined_css_enqueue_first)
            for ref in working:
                buffer.queue_replacement(ref.raw_tag, "")
            for url in urls:
                self._push(buffer, url, AssetKind.CSS)
            return

        for ref in working:
            replacement = ref.raw_tag
            if cfg.css_minify and ref.eligible:
                url = self.registry.resolve([ref.url], AssetKind.CSS)
                replacement = minified_tag(ref, url)
                self._push(buffer, url, AssetKind.CSS)
            elif ref.eligible:
                self._push(buffer, ref.url, AssetKind.CSS)
            if self._wants_async(ref):
                replacement = async_css(replacement)
            if replacement != ref.raw_tag:
                buffer.queue_replacement(ref.raw_tag, replacement)

    # ---- JS ----

    def _js_stage(self, buffer: DocumentBuffer, stages: List[Stage]) -> None:
        cfg = self.config
        stages.append(Stage.SCANNING_JS)
        classified = self._classify(buffer, AssetKind.JS)
        working = [ref for ref in classified if not ref.pinned]

        stages.append(Stage.PROCESSING_JS)
        if cfg.js_enabled:
            self._push_kept_internal(buffer, working)

        eligible = [ref for ref in working if ref.eligible]
        if cfg.js_combine and eligible:
            buffer.head_injection += self._combined_js_block(buffer, working, Position.HEAD)
            buffer.foot_injection += self._combined_js_block(buffer, working, Position.BODY)
            for ref in working:
                buffer.queue_replacement(ref.raw_tag, "")
            return

        for ref in working:
            replacement = ref.raw_tag
            if cfg.js_minify and ref.eligible:
                url = self.registry.resolve([ref.url], AssetKind.JS)
                replacement = minified_tag(ref, url)
                self._push(buffer, url, AssetKind.JS)
            elif ref.eligible and cfg.js_enabled:
                self._push(buffer, ref.url, AssetKind.JS)
            if cfg.js_defer:
                replacement = defer_js(replacement, cfg)
            if replacement != ref.raw_tag:
                buffer.queue_replacement(ref.raw_tag, replacement)

    def _combined_js_block(
        self,
        buffer: DocumentBuffer,
        working: List[ClassifiedReference],
        position: Position,
    ) -> str:
        cfg = self.config
        placed = [ref for ref in working if ref.position is position]
        eligible = [ref for ref in placed if ref.eligible]
        ignored = [ref for ref in placed if not ref.eligible]

        snippet = ""
        if eligible:
            for url in self._combine(eligible, AssetKind.JS):
                snippet += combined_js_tag(url, defer=cfg.js_defer)
                self._push(buffer, url, AssetKind.JS)

        ignored_html = [defer_js(ref.raw_tag, cfg) if cfg.js_defer else ref.raw_tag for ref in ignored]

        leading = ""
        if cfg.combined_js_enqueue_first and position is Position.HEAD:
            for index, ref in enumerate(ignored):
                if is_jquery(ref.url):
                    leading = ignored_html.pop(index)
                    break
        return leading + assemble(snippet, ignored_html, cfg.combined_js_enqueue_first)

    # ---- whole document ----

    def _minify_document(self, buffer: DocumentBuffer) -> None:
        original = buffer.content
        try:
            minified = self.minifier(original.encode("utf-8"), AssetKind.HTML)
            buffer.content = minified.decode("utf-8")
        except Exception:  # pylint: disable=broad-except
            logger.exception("HTML minification failed; restoring unminified page")
            buffer.content = original


def remove_emoji_scripts(html: str) -> str:
    """Strip the emoji detection script and its companion style block."""

    def _drop_script(match: re.Match) -> str:
        block = match.group(0)
        if any(marker in block for marker in EMOJI_SCRIPT_MARKERS):
            logger.debug("Removed emoji detection script")
            return ""
        return block

    def _drop_style(match: re.Match) -> str:
        block = match.group(0)
        return "" if EMOJI_STYLE_MARKER in block else block

    html = INLINE_SCRIPT_PATTERN.sub(_drop_script, html)
    return INLINE_STYLE_PATTERN.sub(_drop_style, html)


def strip_asset_query_strings(html: str) -> str:
    """Remove `ver=` parameters from script sources and stylesheet hrefs."""

    def _strip(match: re.Match) -> str:
        tag = match.group(0)
        lowered = tag.lower()
        if lowered.startswith("<link"):
            if "stylesheet" not in lowered:
                return tag
            attr = "href"
        else:
            attr = "src"
        value = get_attr_raw(tag, attr)
        if not value:
            return tag
        cleaned = remove_query_strings(value)
        if cleaned == value:
            return tag
        return replace_attr_value(tag, attr, cleaned)

    return ASSET_TAG_PATTERN.sub(_strip, html)
