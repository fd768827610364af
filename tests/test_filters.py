import logging

import pytest

from urlrecorder.filters import PatternMatcher, resolve_url


@pytest.fixture
def matcher():
    return PatternMatcher()


def test_no_patterns_never_matches(matcher):
    assert matcher.matches("https://a.com/x.pdf", []) is False


def test_empty_url_never_matches(matcher):
    assert matcher.matches("", [".*"]) is False
    assert matcher.matches(None, [".*"]) is False


def test_case_insensitive_search(matcher):
    assert matcher.matches("https://A.COM/Report.PDF", [r"\.pdf$"])
    assert matcher.matches("https://a.com/path/abc/def", ["abc"])


def test_invalid_pattern_is_skipped(matcher, caplog):
    with caplog.at_level(logging.WARNING):
        assert matcher.matches("abc.com", ["(unclosed", "abc"])
    assert "(unclosed" in caplog.text


def test_only_invalid_patterns(matcher):
    assert matcher.matches("https://a.com/", ["(unclosed", "[z-a]"]) is False


def test_results_are_deterministic(matcher):
    patterns = ["(bad", "x=1", "nope"]
    url = "https://a.com/?x=1"
    assert [matcher.matches(url, patterns) for _ in range(3)] == [True, True, True]


def test_invalidate_keeps_behaviour(matcher):
    assert matcher.matches("https://a.com/x", ["a\\.com"])
    matcher.invalidate()
    assert matcher.matches("https://a.com/x", ["a\\.com"])
    assert not matcher.matches("https://b.com/x", ["a\\.com"])


def test_resolve_relative_against_base():
    assert resolve_url("/x.pdf", "https://a.com/dir/page") == "https://a.com/x.pdf"
    assert resolve_url("abc.com", "https://example.com/") == "https://example.com/abc.com"


def test_resolve_absolute_without_base():
    assert resolve_url("  https://a.com/x  ") == "https://a.com/x"


@pytest.mark.parametrize("raw", ["", "   ", None, "no-scheme", "http://", "http://[::1"])
def test_resolve_rejects_unresolvable(raw):
    assert resolve_url(raw) is None
