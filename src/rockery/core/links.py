"""Link resolution strategies.

Chooses the relative URL emitted for an authored link, given the page the link
appears on and the registry of every known slug.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from rockery.core.slugs import (
    is_folder_path,
    join_segments,
    path_to_root,
    resolve_relative,
    split_anchor,
    transform_internal_link,
)
from rockery.core.types import FullSlug, RelativeURL, strip_slashes


class LinkStrategy(StrEnum):
    """How authored links are interpreted."""

    RELATIVE = "relative"
    ABSOLUTE = "absolute"
    SHORTEST = "shortest"


@dataclass(frozen=True)
class TransformOptions:
    """Link resolution settings shared by every page of a build."""

    strategy: LinkStrategy
    all_slugs: Iterable[FullSlug]


def transform_link(
    src: FullSlug,
    target: str,
    *,
    strategy: LinkStrategy | str,
    all_slugs: Iterable[FullSlug],
) -> RelativeURL:
    """Resolve an authored link into a relative URL.

    Args:
        src: Slug of the page containing the link
        target: Link as written by the author (e.g., "h", "a/b/index#Intro")
        strategy: Link resolution strategy
        all_slugs: Every known slug in the corpus

    Returns:
        Relative URL valid from ``src``

    Note:
        With the shortest strategy, a filename shared by several slugs (or
        matching none) falls back to resolution from the site root.
    """
    target_slug = transform_internal_link(target)

    if LinkStrategy(strategy) is LinkStrategy.RELATIVE:
        return target_slug

    folder_tail = "/" if is_folder_path(target_slug) else ""
    canonical_slug = strip_slashes(target_slug[len(".") :])
    target_canonical, target_anchor = split_anchor(canonical_slug)

    if LinkStrategy(strategy) is LinkStrategy.SHORTEST:
        matching = [slug for slug in all_slugs if slug.split("/")[-1] == target_canonical]
        if len(matching) == 1:
            return RelativeURL(resolve_relative(src, matching[0]) + target_anchor)

    return RelativeURL(join_segments(path_to_root(src), canonical_slug) + folder_tail)


def transform_link_with(src: FullSlug, target: str, opts: TransformOptions) -> RelativeURL:
    """Resolve a link using bundled options."""
    return transform_link(src, target, strategy=opts.strategy, all_slugs=opts.all_slugs)
