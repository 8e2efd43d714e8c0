from html_optimizer.classifier import LinkClassifier, LocalFileResolver
from html_optimizer.config import OptimizeConfig
from html_optimizer.models import AssetKind, AssetReference, ExcludeReason, Position

from conftest import SITE_URL


def _ref(url, kind=AssetKind.JS, raw=None):
    if raw is None:
        raw = f'<script src="{url}"></script>' if kind is AssetKind.JS else f'<link rel="stylesheet" href="{url}">'
    return AssetReference(url=url, raw_tag=raw, position=Position.HEAD, kind=kind)


def _classifier(resolver, **options):
    return LinkClassifier(OptimizeConfig(site_url=SITE_URL, **options), resolver)


def test_internal_file_is_eligible_with_size(asset, resolver):
    asset("/js/app.js", size=1234)
    result = _classifier(resolver).classify(_ref("/js/app.js?ver=2"))
    assert result.eligible
    assert result.reason is None
    assert result.file_size == 1234


def test_absolute_url_on_site_host_is_internal(asset, resolver):
    asset("/css/site.css", size=5)
    result = _classifier(resolver).classify(_ref(f"{SITE_URL}/css/site.css", AssetKind.CSS))
    assert result.eligible
    assert result.file_size == 5


def test_other_host_and_missing_file_are_external(resolver):
    classifier = _classifier(resolver)
    assert classifier.classify(_ref("https://cdn.example.net/lib.js")).reason is ExcludeReason.EXTERNAL
    assert classifier.classify(_ref("//cdn.example.net/lib.js")).reason is ExcludeReason.EXTERNAL
    assert classifier.classify(_ref("/js/missing.js")).reason is ExcludeReason.EXTERNAL


def test_path_escaping_document_root_is_not_local(resolver):
    assert resolver.local_path("/../../etc/passwd") is None
    assert resolver.resolve_local("/../../etc/passwd") is None


def test_no_optimize_marker_wins_first(asset, resolver):
    asset("/js/app.js")
    raw = '<script src="/js/app.js" data-no-optimize=""></script>'
    result = _classifier(resolver, js_exclude_list=["app.js"]).classify(_ref("/js/app.js", raw=raw))
    assert not result.eligible
    assert result.reason is ExcludeReason.EXPLICIT_EXCLUDE
    assert result.pinned


def test_exclude_pattern_takes_precedence_over_jquery(asset, resolver):
    asset("/js/jquery.min.js")
    classifier = _classifier(resolver, exclude_jquery=True, js_exclude_list=["jquery"])
    result = classifier.classify(_ref("/js/jquery.min.js"))
    assert result.reason is ExcludeReason.CONFIGURED_EXCLUDE
    assert result.pinned


def test_css_exclude_list_only_applies_to_css(asset, resolver):
    asset("/assets/app.js")
    asset("/assets/app.css")
    classifier = _classifier(resolver, css_exclude_list=["/assets/"])
    assert classifier.classify(_ref("/assets/app.js")).eligible
    assert classifier.classify(_ref("/assets/app.css", AssetKind.CSS)).reason is ExcludeReason.CONFIGURED_EXCLUDE


def test_jquery_excluded_only_when_setting_active(asset, resolver):
    asset("/js/jquery.js", size=300)
    excluded = _classifier(resolver, exclude_jquery=True).classify(_ref("/js/jquery.js"))
    assert excluded.reason is ExcludeReason.JQUERY_EXCLUDED
    assert excluded.file_size == 300
    assert not excluded.pinned
    assert _classifier(resolver).classify(_ref("/js/jquery.js")).eligible


def test_site_path_prefix_is_stripped(doc_root, asset):
    asset("/css/a.css")
    resolver = LocalFileResolver("http://example.com/blog/", doc_root)
    assert resolver.resolve_local("/blog/css/a.css") is not None
    assert resolver.resolve_local("http://example.com/blog/css/a.css") is not None
