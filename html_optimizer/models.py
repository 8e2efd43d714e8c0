"""Data models used throughout the optimizer pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class AssetKind(str, Enum):
    CSS = "css"
    JS = "js"
    HTML = "html"

    @property
    def preload_as(self) -> str:
        """Value of the `as=` parameter used in preload hints."""
        return "style" if self is AssetKind.CSS else "script"


class Position(str, Enum):
    HEAD = "head"
    BODY = "body"


class ExcludeReason(str, Enum):
    EXPLICIT_EXCLUDE = "explicit_exclude"
    CONFIGURED_EXCLUDE = "configured_exclude"
    EXTERNAL = "external"
    JQUERY_EXCLUDED = "jquery_excluded"


@dataclass
class AssetReference:
    """A `<link>` or `<script>` tag discovered in the page."""

    url: str
    raw_tag: str
    position: Position
    kind: AssetKind
    attrs: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass
class ClassifiedReference:
    """An asset reference together with the optimizer's verdict on it."""

    reference: AssetReference
    eligible: bool
    reason: Optional[ExcludeReason] = None
    file_size: Optional[int] = None

    @property
    def url(self) -> str:
        return self.reference.url

    @property
    def raw_tag(self) -> str:
        return self.reference.raw_tag

    @property
    def position(self) -> Position:
        return self.reference.position

    @property
    def kind(self) -> AssetKind:
        return self.reference.kind

    @property
    def pinned(self) -> bool:
        """Excluded by attribute or setting: the tag is left exactly where it is."""
        return self.reason in (ExcludeReason.EXPLICIT_EXCLUDE, ExcludeReason.CONFIGURED_EXCLUDE)


@dataclass
class Batch:
    """Eligible references that will be served as one combined file."""

    references: List[ClassifiedReference] = field(default_factory=list)

    @property
    def sources(self) -> List[str]:
        return [ref.url for ref in self.references]

    @property
    def total_bytes(self) -> int:
        return sum(ref.file_size or 0 for ref in self.references)


@dataclass
class HashEntry:
    """Short and full content hash for an ordered list of sources."""

    short_hash: str
    full_hash: str
    sources: List[str]


@dataclass
class FileInfo:
    """Local file backing an internal asset URL."""

    path: Path
    size: int


@dataclass
class DocumentBuffer:
    """Per-request page body plus everything queued for insertion into it."""

    content: str
    head_injection: str = ""
    foot_injection: str = ""
    push_hints: List[str] = field(default_factory=list)
    replacements: Dict[str, str] = field(default_factory=dict)

    def add_push_hint(self, value: str) -> None:
        if value not in self.push_hints:
            self.push_hints.append(value)

    def queue_replacement(self, raw_tag: str, replacement: str) -> None:
        self.replacements[raw_tag] = replacement

    def snapshot(self) -> "DocumentBuffer":
        return replace(
            self,
            push_hints=list(self.push_hints),
            replacements=dict(self.replacements),
        )

    def restore(self, saved: "DocumentBuffer") -> None:
        self.content = saved.content
        self.head_injection = saved.head_injection
        self.foot_injection = saved.foot_injection
        self.push_hints = list(saved.push_hints)
        self.replacements = dict(saved.replacements)
