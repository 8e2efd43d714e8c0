import pytest

from html_optimizer.minifier import MinifyError, minify
from html_optimizer.models import AssetKind


def test_css_is_compacted():
    source = b"body {\n    color: red;\n}\n\n/* note */\np { margin: 0 }\n"
    result = minify(source, AssetKind.CSS)
    assert len(result) < len(source)
    assert b"/* note */" not in result
    assert b"color:red" in result


def test_js_is_compacted():
    source = b"function add(a, b) {\n    // sum\n    return a + b;\n}\n"
    result = minify(source, AssetKind.JS)
    assert len(result) < len(source)
    assert b"// sum" not in result
    assert b"return a+b" in result


def test_html_keeps_structure():
    source = (
        b"<html>\n  <head>\n    <title>  Demo  </title>\n  </head>\n"
        b"  <body>\n    <p>Hello</p>\n  </body>\n</html>\n"
    )
    result = minify(source, AssetKind.HTML)
    assert len(result) < len(source)
    assert b"<head>" in result
    assert b"Hello" in result


def test_invalid_utf8_raises():
    with pytest.raises(MinifyError):
        minify(b"\xff\xfe body{}", AssetKind.CSS)
