"""Command-line entry point for the HTML optimizer."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

import requests

from .classifier import LocalFileResolver
from .config import OptimizeConfig, load_config, validate_config
from .pipeline import Optimizer
from .registry import FileHashStore, HashRegistry
from .responder import CacheControl, MinFileResponder

logger = logging.getLogger("html_optimizer.cli")

DEFAULT_STORE_DIR = ".optm-store"


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return argv
    first = argv[0]
    if first in commands or first.startswith("-"):
        return argv
    return ("optimize", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with optimizer options",
    )
    parser.add_argument(
        "--doc-root",
        type=Path,
        default=Path("."),
        help="Directory that site-relative asset URLs resolve against",
    )
    parser.add_argument(
        "--site-url",
        default=None,
        help="Public base URL of the site (overrides the config file)",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=Path(DEFAULT_STORE_DIR),
        help="Directory holding the hash to source list mapping",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the result here instead of STDOUT",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_optimize_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("source", help="HTML file to optimize, or an http(s) URL to fetch")
    parser.add_argument(
        "--request-uri",
        default="",
        help="Request URI used for page exclusion checks",
    )
    _add_common_arguments(parser)


def _add_min_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", help="Min file path such as /min/ab12c.css")
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Keep built files here and reuse them until they expire",
    )
    _add_common_arguments(parser)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Minify, combine and defer the CSS/JS assets referenced by HTML pages.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    optimize_parser = subparsers.add_parser("optimize", help="Rewrite the asset tags of an HTML page")
    _add_optimize_arguments(optimize_parser)

    min_parser = subparsers.add_parser("min", help="Build a combined/minified file by its hashed name")
    _add_min_arguments(min_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def build_components(
    config: OptimizeConfig,
    doc_root: Path,
    store_dir: Path,
) -> Tuple[HashRegistry, LocalFileResolver]:
    """Create the registry and resolver shared by page and min-file handling."""
    registry = HashRegistry(FileHashStore(store_dir), config.site_url, config.min_dir)
    resolver = LocalFileResolver(config.site_url, doc_root)
    return registry, resolver


def _load(args: argparse.Namespace) -> OptimizeConfig:
    config = load_config(args.config) if args.config else OptimizeConfig()
    if args.site_url:
        config.site_url = args.site_url
    validate_config(config)
    return config


def fetch_html(url: str) -> Optional[str]:
    """Download a page for optimization."""
    try:
        resp = requests.get(url, timeout=30)
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Failed to fetch %s: %s", url, exc)
        return None
    return resp.text


def _write_output(data: bytes, output: Optional[Path]) -> None:
    if output is None:
        sys.stdout.buffer.write(data)
        sys.stdout.flush()
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    logger.info("Saved output to %s", output)


def _run_optimize(args: argparse.Namespace) -> None:
    config = _load(args)
    if args.source.startswith(("http://", "https://")):
        html = fetch_html(args.source)
        if html is None:
            raise SystemExit(1)
    else:
        html = Path(args.source).read_text(encoding="utf-8")

    registry, resolver = build_components(config, args.doc_root, args.store)
    optimizer = Optimizer(config, registry, resolver)
    result = optimizer.run(html, request_uri=args.request_uri)

    logger.info("Stages: %s", " -> ".join(stage.value for stage in result.stages))
    if result.push_hints:
        logger.info("Link: %s", result.link_header())
    _write_output(result.content.encode("utf-8"), args.output)


def _run_min(args: argparse.Namespace) -> None:
    config = _load(args)
    registry, resolver = build_components(config, args.doc_root, args.store)
    responder = MinFileResponder(config, registry, resolver, cache_dir=args.cache_dir)
    cache = CacheControl()
    response = responder.handle(args.path, cache)
    if response is None:
        logger.error("Nothing to serve for %s", args.path)
        raise SystemExit(1)
    for name, value in response.headers.items():
        logger.debug("%s: %s", name, value)
    _write_output(response.body, args.output)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "optimize":
        _run_optimize(args)
    else:
        _run_min(args)


if __name__ == "__main__":
    main()
