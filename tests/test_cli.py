import json
import re

import pytest
import requests

from html_optimizer import cli


PAGE = (
    '<html><head><meta charset="utf-8">\n'
    '<link rel="stylesheet" href="/css/a.css">\n'
    '<link rel="stylesheet" href="/css/b.css">\n'
    "</head><body><p>hi</p></body></html>"
)


def test_ensure_command_prefix():
    commands = ("optimize", "min")
    assert cli._ensure_command_prefix(["page.html"], commands) == ("optimize", "page.html")
    assert cli._ensure_command_prefix(["min", "/min/a.css"], commands) == ["min", "/min/a.css"]
    assert cli._ensure_command_prefix(["--help"], commands) == ["--help"]
    assert cli._ensure_command_prefix([], commands) == []


def test_optimize_then_serve_combined_file(tmp_path):
    doc_root = tmp_path / "public"
    (doc_root / "css").mkdir(parents=True)
    (doc_root / "css" / "a.css").write_text("a { color: red; }", encoding="utf-8")
    (doc_root / "css" / "b.css").write_text("b { color: blue; }", encoding="utf-8")
    page = tmp_path / "index.html"
    page.write_text(PAGE, encoding="utf-8")
    config = tmp_path / "optimizer.json"
    config.write_text(json.dumps({"siteUrl": "http://example.com", "cssCombine": True}), encoding="utf-8")
    common = ["--config", str(config), "--doc-root", str(doc_root), "--store", str(tmp_path / "store")]

    optimized = tmp_path / "out" / "index.html"
    cli.main([str(page), *common, "--output", str(optimized)])

    html = optimized.read_text(encoding="utf-8")
    match = re.search(r"href='http://example\.com(/min/\w+\.css)'", html)
    assert match is not None
    assert 'href="/css/' not in html

    served = tmp_path / "out" / "combined.css"
    cli.main(["min", match.group(1), *common, "--output", str(served)])
    assert served.read_text(encoding="utf-8") == "a { color: red; }\nb { color: blue; }"


def test_min_for_unknown_file_exits(tmp_path):
    config = tmp_path / "optimizer.json"
    config.write_text(json.dumps({"css_combine": True}), encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["min", "/min/abcde.css", "--config", str(config), "--store", str(tmp_path / "store")])
    assert excinfo.value.code == 1


def test_fetch_html_failure_returns_none(monkeypatch):
    def _fail(url, timeout):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(cli.requests, "get", _fail)
    assert cli.fetch_html("https://example.com/") is None
