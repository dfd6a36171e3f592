import os

import pytest

from liveserver.paths import is_inside, resolve_request_path, safe_unquote

ROOT = os.path.abspath(os.path.join(os.sep, "srv", "site"))


def under_root(*parts):
    return os.path.join(ROOT, *parts)


@pytest.mark.parametrize("target", ["", "/", "/?v=2", "/#top"])
def test_root_maps_to_index(target):
    assert resolve_request_path(ROOT, target) == under_root("index.html")


def test_plain_file():
    assert resolve_request_path(ROOT, "/css/site.css") == under_root("css", "site.css")


def test_query_and_fragment_are_stripped():
    assert resolve_request_path(ROOT, "/app.js?v=123#frag") == under_root("app.js")
    assert resolve_request_path(ROOT, "/page.html#a?b") == under_root("page.html")


def test_trailing_slash_maps_to_directory_index():
    assert resolve_request_path(ROOT, "/docs/") == under_root("docs", "index.html")


def test_percent_decoding():
    assert resolve_request_path(ROOT, "/my%20file.html") == under_root("my file.html")
    assert resolve_request_path(ROOT, "/caf%C3%A9.html") == under_root("café.html")


def test_plus_is_not_a_space():
    assert resolve_request_path(ROOT, "/a+b.txt") == under_root("a+b.txt")


def test_invalid_utf8_falls_back_to_raw_string():
    assert safe_unquote("/bad%FF.html") == "/bad%FF.html"
    assert resolve_request_path(ROOT, "/bad%FF.html") == under_root("bad%FF.html")


def test_malformed_escape_is_kept():
    assert resolve_request_path(ROOT, "/100%.html") == under_root("100%.html")


def test_inner_dotdot_that_stays_inside_is_fine():
    assert resolve_request_path(ROOT, "/a/b/../c.html") == under_root("a", "c.html")


@pytest.mark.parametrize(
    "target",
    [
        "/../../etc/passwd",
        "/..",
        "/../",
        "/a/../../secret.txt",
        "/%2e%2e/%2e%2e/etc/passwd",
        "/..%2f..%2fetc%2fpasswd",
        "/%2E%2E%2Fsite-other/file.html",
        "/.%2e/x",
        "/..\\..\\windows\\win.ini",
        "/index.html%00.png",
    ],
)
def test_traversal_is_rejected(target):
    assert resolve_request_path(ROOT, target) is None


def test_sibling_with_common_prefix_is_rejected():
    # /srv/site-other must not pass as being inside /srv/site
    assert resolve_request_path(ROOT, "/../site-other/index.html") is None


def test_absolute_looking_path_stays_under_root():
    assert resolve_request_path(ROOT, "//etc/passwd") == under_root("etc", "passwd")


def test_resolving_to_root_itself_is_rejected():
    assert resolve_request_path(ROOT, "/docs/..") is None


def test_file_named_with_leading_dots_is_allowed():
    assert resolve_request_path(ROOT, "/..hidden") == under_root("..hidden")


def test_resolved_paths_never_escape():
    segments = ["..", ".", "a", "%2e%2e", "", "b%2f..", "..%5c"]
    for first in segments:
        for second in segments:
            for third in segments:
                target = "/" + "/".join((first, second, third))
                resolved = resolve_request_path(ROOT, target)
                assert resolved is None or is_inside(ROOT, resolved), target


def test_is_inside():
    assert is_inside(ROOT, under_root("a.html"))
    assert not is_inside(ROOT, ROOT)
    assert not is_inside(ROOT, os.path.dirname(ROOT))
    assert not is_inside(ROOT, ROOT + "-other")
