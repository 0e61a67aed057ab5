"""Registry of every slug known to a build pass."""

from collections.abc import Iterable, Iterator

from rockery.core.types import FullSlug


class SlugRegistry:
    """Insertion-ordered set of known slugs.

    Rebuilt from scratch by every full build and extended additively by
    partial builds. Slugs are never removed while a pass is running.
    """

    __slots__ = ("_slugs",)

    def __init__(self, slugs: Iterable[FullSlug] = ()) -> None:
        self._slugs: dict[FullSlug, None] = dict.fromkeys(slugs)

    def add(self, slug: FullSlug) -> bool:
        """Add a slug.

        Returns:
            True if the slug was not known before
        """
        if slug in self._slugs:
            return False
        self._slugs[slug] = None
        return True

    def extend(self, slugs: Iterable[FullSlug]) -> int:
        """Add several slugs, returning how many were new."""
        return sum(1 for slug in slugs if self.add(slug))

    def reset(self, slugs: Iterable[FullSlug] = ()) -> None:
        """Start a new pass with only ``slugs`` registered."""
        self._slugs = dict.fromkeys(slugs)

    def __contains__(self, slug: object) -> bool:
        return slug in self._slugs

    def __iter__(self) -> Iterator[FullSlug]:
        return iter(self._slugs)

    def __len__(self) -> int:
        return len(self._slugs)

    def __repr__(self) -> str:
        return f"SlugRegistry({list(self._slugs)!r})"
