"""Tests for identifier predicates."""

import pytest
from rockery.core.types import (
    ends_with,
    get_file_extension,
    is_absolute_url,
    is_file_path,
    is_full_slug,
    is_relative_url,
    is_simple_slug,
    strip_slashes,
    trim_suffix,
)


class TestIsSimpleSlug:
    """Tests for is_simple_slug()."""

    @pytest.mark.parametrize("value", ["", "abc", "abc/", "notindex", "notindex/def"])
    def test__valid_slug__returns_true(self, value: str) -> None:
        """Accept plain, folder and root-like simple slugs."""
        assert is_simple_slug(value)

    @pytest.mark.parametrize(
        "value",
        [
            "//",
            "index",
            "https://example.com",
            "/abc",
            "abc/index",
            "abc#anchor",
            "abc?query=1",
            "index.md",
            "index.html",
        ],
    )
    def test__invalid_slug__returns_false(self, value: str) -> None:
        """Reject index endings, extensions, leading slashes and forbidden characters."""
        assert not is_simple_slug(value)


class TestIsRelativeUrl:
    """Tests for is_relative_url()."""

    @pytest.mark.parametrize(
        "value",
        [
            ".",
            "..",
            "./abc/def",
            "./abc/def#an-anchor",
            "./abc/def?query=1#an-anchor",
            "../abc/def",
            "./abc/def.pdf",
        ],
    )
    def test__relative_url__returns_true(self, value: str) -> None:
        """Accept URLs starting with . or .."""
        assert is_relative_url(value)

    @pytest.mark.parametrize(
        "value",
        ["abc", "/abc/def", "", "./abc/def.html", "./abc/def.md"],
    )
    def test__non_relative_url__returns_false(self, value: str) -> None:
        """Reject bare, absolute and content-extension URLs."""
        assert not is_relative_url(value)


class TestIsAbsoluteUrl:
    """Tests for is_absolute_url()."""

    @pytest.mark.parametrize(
        "value",
        [
            "https://example.com",
            "http://example.com",
            "ftp://example.com/a/b/c",
            "http://host/%25",
            "file://host/twoslashes?more//slashes",
        ],
    )
    def test__url_with_scheme__returns_true(self, value: str) -> None:
        """Accept URLs with a scheme."""
        assert is_absolute_url(value)

    @pytest.mark.parametrize("value", ["example.com/abc/def", "abc", "./abc", "C:/notes"])
    def test__url_without_scheme__returns_false(self, value: str) -> None:
        """Reject paths and drive letters."""
        assert not is_absolute_url(value)


class TestIsFullSlug:
    """Tests for is_full_slug()."""

    @pytest.mark.parametrize("value", ["index", "abc/def", "html.energy", "test.pdf"])
    def test__valid_slug__returns_true(self, value: str) -> None:
        """Accept canonical slugs, with or without extension."""
        assert is_full_slug(value)

    @pytest.mark.parametrize(
        "value",
        [".", "./abc/def", "../abc/def", "abc/def#anchor", "abc/def?query=1", "note with spaces"],
    )
    def test__invalid_slug__returns_false(self, value: str) -> None:
        """Reject relative slugs and forbidden characters."""
        assert not is_full_slug(value)


class TestIsFilePath:
    """Tests for is_file_path()."""

    @pytest.mark.parametrize("value", ["content/index.md", "content/test.png"])
    def test__path_with_extension__returns_true(self, value: str) -> None:
        """Accept paths with a file extension."""
        assert is_file_path(value)

    @pytest.mark.parametrize("value", ["../test.pdf", "content/test", "./content/test"])
    def test__relative_or_extensionless__returns_false(self, value: str) -> None:
        """Reject relative paths and paths without extension."""
        assert not is_file_path(value)


class TestHelpers:
    """Tests for string helpers."""

    def test__get_file_extension__returns_last_extension(self) -> None:
        """Return only the trailing extension."""
        assert get_file_extension("notes.with.dots.md") == ".md"
        assert get_file_extension("notes/readme") is None

    def test__ends_with__is_segment_aware(self) -> None:
        """Match whole trailing segments only."""
        assert ends_with("a/index", "index")
        assert ends_with("index", "index")
        assert not ends_with("notindex", "index")

    def test__trim_suffix__keeps_separator(self) -> None:
        """Trim the segment and leave the slash in place."""
        assert trim_suffix("a/index", "index") == "a/"
        assert trim_suffix("notindex", "index") == "notindex"

    def test__strip_slashes__strips_single_slashes(self) -> None:
        """Strip one slash at each end, or only the leading one."""
        assert strip_slashes("/a/b/") == "a/b"
        assert strip_slashes("/a/b/", only_prefix=True) == "a/b/"
