"""Configuration objects and constants for the optimizer."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

logger = logging.getLogger("html_optimizer")

DEFAULT_MIN_DIR = "/min"
DEFAULT_MAX_COMBINED_BYTES = 1_000_000
DEFAULT_OPTIMIZE_TTL = 604_800
CSS_ASYNC_LIB_NAME = "css_async.js"

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
_TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass
class OptimizeConfig:
    """Snapshot of every switch the pipeline consults for one request."""

    site_url: str = "http://localhost"
    min_dir: str = DEFAULT_MIN_DIR

    css_minify: bool = False
    css_combine: bool = False
    css_http2_push: bool = False
    css_async_load: bool = False
    css_exclude_list: List[str] = field(default_factory=list)
    combined_css_enqueue_first: bool = False
    critical_css: str = ""

    google_fonts_async: bool = False
    google_fonts_remove: bool = False

    js_minify: bool = False
    js_combine: bool = False
    js_http2_push: bool = False
    js_defer: bool = False
    js_defer_exclude_list: List[str] = field(default_factory=list)
    js_exclude_list: List[str] = field(default_factory=list)
    combined_js_enqueue_first: bool = False
    exclude_jquery: bool = False

    html_minify: bool = False
    query_string_remove: bool = False
    emoji_script_remove: bool = False
    dns_prefetch_list: List[str] = field(default_factory=list)
    uri_excludes: List[str] = field(default_factory=list)

    max_combined_bytes: int = DEFAULT_MAX_COMBINED_BYTES
    optimize_ttl: int = DEFAULT_OPTIMIZE_TTL

    @property
    def css_enabled(self) -> bool:
        return self.css_minify or self.css_combine or self.css_http2_push

    @property
    def js_enabled(self) -> bool:
        return self.js_minify or self.js_combine or self.js_http2_push

    @property
    def css_async_lib_url(self) -> str:
        return site_path_url(self.site_url, f"{self.min_dir.rstrip('/')}/{CSS_ASYNC_LIB_NAME}")


def site_path_url(site_url: str, path: str) -> str:
    """Join a site-relative path onto the configured site URL."""
    return site_url.rstrip("/") + "/" + path.lstrip("/")


def _split_lines(value: Union[str, List[str], None]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.splitlines()
    else:
        items = [str(item) for item in value]
    return [item.strip() for item in items if item and item.strip()]


def _normalize_key(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def config_from_mapping(data: Mapping[str, Any]) -> OptimizeConfig:
    """Build a config from a mapping using snake_case or camelCase option names."""
    known = {f.name: f for f in fields(OptimizeConfig)}
    values: Dict[str, Any] = {}
    for raw_key, value in data.items():
        key = _normalize_key(raw_key)
        spec = known.get(key)
        if spec is None:
            logger.warning("Ignoring unknown config option %s", raw_key)
            continue
        if key.endswith("_list") or key == "uri_excludes":
            values[key] = _split_lines(value)
        elif key in ("max_combined_bytes", "optimize_ttl"):
            try:
                values[key] = int(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Option {raw_key} must be an integer, got {value!r}") from exc
        elif spec.type in ("bool", bool):
            values[key] = _parse_bool(value)
        else:
            values[key] = "" if value is None else str(value)
    return OptimizeConfig(**values)


def load_config(path: Path) -> OptimizeConfig:
    """Read a JSON config file; a missing file yields the defaults."""
    if not path.exists():
        logger.warning("Config file %s not found; using defaults", path)
        return OptimizeConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return config_from_mapping(data)


def validate_config(config: OptimizeConfig) -> List[str]:
    """Return human-readable warnings about contradictory settings."""
    warnings: List[str] = []
    if config.max_combined_bytes < 0:
        warnings.append("max_combined_bytes is negative; combined files will not be size limited")
    if config.exclude_jquery:
        for option in ("css_exclude_list", "js_exclude_list"):
            for pattern in getattr(config, option):
                if "jquery" in pattern.lower():
                    warnings.append(
                        f"{option} pattern {pattern!r} overlaps exclude_jquery; "
                        "the exclude list takes precedence"
                    )
    if config.google_fonts_remove and config.google_fonts_async:
        warnings.append("google_fonts_remove makes google_fonts_async ineffective")
    for warning in warnings:
        logger.warning("Config: %s", warning)
    return warnings
