"""Tests for SlugRegistry."""

from rockery.core.registry import SlugRegistry
from rockery.core.types import FullSlug


class TestSlugRegistry:
    """Tests for SlugRegistry."""

    def test__add__deduplicates_and_keeps_order(self) -> None:
        """Keep the first insertion position of each slug."""
        registry = SlugRegistry()

        assert registry.add(FullSlug("b"))
        assert registry.add(FullSlug("a"))
        assert not registry.add(FullSlug("b"))

        assert list(registry) == ["b", "a"]
        assert len(registry) == 2

    def test__extend__returns_new_count(self) -> None:
        """Count only slugs that were not known before."""
        registry = SlugRegistry([FullSlug("a")])

        added = registry.extend([FullSlug("a"), FullSlug("b"), FullSlug("c")])

        assert added == 2
        assert FullSlug("c") in registry

    def test__reset__replaces_contents(self) -> None:
        """Start over with only the given slugs."""
        registry = SlugRegistry([FullSlug("a"), FullSlug("b")])

        registry.reset([FullSlug("c")])

        assert list(registry) == ["c"]
        assert FullSlug("a") not in registry
