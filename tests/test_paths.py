"""Tests for the virtual path codec."""

from __future__ import annotations

import pytest

from deskvfs.fs.exceptions import InvalidArgumentError, InvalidPathError
from deskvfs.fs.paths import (
    basename,
    dirname,
    extension,
    format_path,
    is_root,
    is_within,
    join,
    normalize_path,
    parse,
    rebase,
    scheme_of,
    split_path,
    strip_scheme,
)

# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParse:
    def test_scheme_and_segments(self):
        assert parse("home:///a/b") == ("home", ["a", "b"])

    def test_two_slash_form(self):
        assert parse("shared://pub/f") == ("shared", ["pub", "f"])

    def test_schemeless_absolute(self):
        assert parse("/a/b") == (None, ["a", "b"])

    def test_dot_segments_dropped(self):
        assert parse("home:///a/./../b") == ("home", ["a", "b"])

    def test_relative_rejected(self):
        with pytest.raises(InvalidPathError):
            parse("a/b")

    def test_empty_rejected(self):
        with pytest.raises(InvalidPathError):
            parse("")

    def test_non_string_rejected(self):
        with pytest.raises(InvalidPathError):
            parse(42)  # type: ignore[arg-type]

    def test_control_character_rejected(self):
        with pytest.raises(InvalidPathError):
            parse("home:///a\x00b")

    def test_bad_scheme_rejected(self):
        with pytest.raises(InvalidPathError):
            parse("ho me:///a")

    def test_invalid_path_is_invalid_argument(self):
        with pytest.raises(InvalidArgumentError):
            parse("")

    def test_format_path(self):
        assert format_path("home", ["a", "b"]) == "home:///a/b"
        assert format_path("home", []) == "home:///"
        assert format_path(None, ["a"]) == "/a"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalize:
    def test_collapses_slashes_and_trailing(self):
        assert normalize_path("home://a//b/") == "home:///a/b"

    def test_root(self):
        assert normalize_path("home:///") == "home:///"
        assert normalize_path("home://") == "home:///"

    def test_schemeless(self):
        assert normalize_path("/a/./b/") == "/a/b"

    def test_cannot_climb_above_root(self):
        assert normalize_path("home:///../../etc") == "home:///etc"

    def test_idempotent(self):
        p = normalize_path("shared://pub//f/")
        assert normalize_path(p) == p


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


class TestAccessors:
    def test_scheme_of(self):
        assert scheme_of("home:///a") == "home"
        assert scheme_of("/a") is None

    def test_strip_scheme(self):
        assert strip_scheme("home:///a/b") == "/a/b"
        assert strip_scheme("home:///") == "/"

    def test_is_root(self):
        assert is_root("home:///")
        assert not is_root("home:///a")

    def test_dirname(self):
        assert dirname("home:///a/b.txt") == "home:///a"
        assert dirname("home:///a") == "home:///"

    def test_dirname_of_root_is_root(self):
        assert dirname("home:///") == "home:///"

    def test_basename(self):
        assert basename("home:///a/b.txt") == "b.txt"
        assert basename("home:///") == ""

    def test_split_path(self):
        assert split_path("home:///foo/bar.txt") == ("home:///foo", "bar.txt")
        assert split_path("home:///") == ("home:///", "")

    def test_extension(self):
        assert extension("home:///a/Report.PDF") == "pdf"
        assert extension("home:///a/archive.tar.gz") == "gz"

    def test_extension_missing(self):
        assert extension("home:///a/Makefile") is None
        assert extension("home:///a/trailing.") is None


# ---------------------------------------------------------------------------
# Join / containment / rebase
# ---------------------------------------------------------------------------


class TestJoin:
    def test_join_parts(self):
        assert join("home:///a", "b", "c.txt") == "home:///a/b/c.txt"

    def test_join_ignores_dot_segments(self):
        assert join("home:///a", "b", "../c") == "home:///a/b/c"

    def test_join_skips_empty_parts(self):
        assert join("home:///a", "", "b") == "home:///a/b"

    def test_first_scheme_wins(self):
        assert join("home:///a", "other:///b") == "home:///a/b"

    def test_schemeless(self):
        assert join("/a", "b") == "/a/b"

    @pytest.mark.parametrize(
        "path",
        ["home:///a/b.txt", "home:///a", "shared://pub/f", "home:///x/y/z/"],
    )
    def test_join_dirname_basename_roundtrip(self, path):
        assert join(dirname(path), basename(path)) == normalize_path(path)


class TestIsWithin:
    def test_equal(self):
        assert is_within("home:///a", "home:///a")

    def test_descendant(self):
        assert is_within("home:///a/b/c", "home:///a")

    def test_sibling_prefix_is_not_within(self):
        assert not is_within("home:///ab", "home:///a")

    def test_different_scheme(self):
        assert not is_within("other:///a/b", "home:///a")

    def test_root_contains_everything(self):
        assert is_within("home:///a/b", "home:///")


class TestRebase:
    def test_alias_rebase(self):
        assert rebase("shared:///pub/f", "shared:///pub", "home:///_internal/pub") == "home:///_internal/pub/f"

    def test_rebase_prefix_itself(self):
        assert rebase("shared:///pub", "shared:///pub", "home:///x") == "home:///x"

    def test_rebase_outside_prefix(self):
        with pytest.raises(InvalidPathError):
            rebase("home:///a", "shared:///pub", "home:///x")
