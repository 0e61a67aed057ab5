"""Rebase relative links of transcluded HTML fragments.

A fragment rendered for one page keeps working when it is spliced into
another page: every relative ``href``/``src`` is rewritten to go through the
fragment's original location.
"""

import copy

from bs4 import BeautifulSoup, Tag

from rockery.core.slugs import join_segments, resolve_relative
from rockery.core.types import FullSlug, is_relative_url

_REBASED_ATTRIBUTES = ("src", "href")


def normalize_element(el: Tag, cur_base: FullSlug, new_base: FullSlug) -> Tag:
    """Return a copy of an element tree with relative links rebased.

    Args:
        el: Element rendered relative to ``new_base``; never modified
        cur_base: Slug of the page the element is spliced into
        new_base: Slug of the page the element's links were written for

    Returns:
        Deep copy of ``el`` with relative ``href``/``src`` values rewritten
    """
    rebased = copy.copy(el)
    _rebase_links(rebased, _rebase_prefix(cur_base, new_base))
    return rebased


def rebase_html(html: str, cur_base: FullSlug, new_base: FullSlug) -> str:
    """Rebase an HTML fragment from ``new_base`` onto ``cur_base``.

    Args:
        html: Rendered HTML fragment
        cur_base: Slug of the page receiving the fragment
        new_base: Slug the fragment was rendered for

    Returns:
        Rebased HTML fragment
    """
    soup = BeautifulSoup(html, "html.parser")
    _rebase_links(soup, _rebase_prefix(cur_base, new_base))
    return str(soup)


def _rebase_prefix(cur_base: FullSlug, new_base: FullSlug) -> str:
    return join_segments(resolve_relative(cur_base, new_base), "..")


def _rebase_links(root: Tag, prefix: str) -> None:
    nodes = root.find_all(True)
    if not isinstance(root, BeautifulSoup):
        nodes.insert(0, root)
    for node in nodes:
        for attr in _REBASED_ATTRIBUTES:
            value = node.get(attr)
            if isinstance(value, str) and value and is_relative_url(value):
                node[attr] = join_segments(prefix, value)
