"""Markdown rendering with link resolution.

Every internal link and embed goes through the link resolver so that the
emitted HTML only ever contains relative URLs.
"""

import posixpath
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import mistune
from mistune.util import escape, striptags

from rockery.core.links import TransformOptions, transform_link_with
from rockery.core.rebase import rebase_html
from rockery.core.slugs import simplify_slug, slugify_heading
from rockery.core.types import FullSlug, get_file_extension, is_absolute_url

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".svg", ".webp", ".avif")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".ogv", ".mov", ".mkv")
AUDIO_EXTENSIONS = (".mp3", ".webm", ".wav", ".m4a", ".ogg", ".3gp", ".flac")

WIKILINK_PATTERN = (
    r"(?P<wiki_embed>!?)\[\[(?P<wiki_target>[^\[\]|\n]+?)(?:\|(?P<wiki_alias>[^\[\]\n]+?))?\]\]"
)

# Resolves a page key to (slug, html fragment rendered for that slug)
EmbedResolver = Callable[[str], tuple[FullSlug, str] | None]


def page_key(slug: str) -> str:
    """Key identifying a page regardless of ``index`` suffix or slashes."""
    return simplify_slug(slug).strip("/")


def target_key(src: FullSlug, url: str) -> str:
    """Page key a relative URL points at when followed from ``src``."""
    path = url.partition("#")[0]
    joined = posixpath.normpath(posixpath.join(posixpath.dirname(src), path))
    return "" if joined == "." else joined.strip("/")


@dataclass
class RenderedPage:
    """Rendered HTML fragment and the page keys it references."""

    html: str
    links: set[str] = field(default_factory=set)


class PageRenderer(mistune.HTMLRenderer):
    """HTML renderer bound to one page.

    Rewrites markdown links, images and ``[[wikilinks]]`` relative to the
    page slug, assigns heading ids and splices embedded pages.
    """

    def __init__(
        self,
        slug: FullSlug,
        options: TransformOptions,
        *,
        embed: EmbedResolver | None = None,
    ) -> None:
        super().__init__(escape=False)
        self._slug = slug
        self._options = options
        self._embed = embed
        self._heading_ids: dict[str, int] = {}
        self.links: set[str] = set()
        self._transclusions: list[str] = []

    def paragraph(self, text: str) -> str:
        # Transcluded pages are block content, lift them out of the paragraph
        pending, self._transclusions = self._transclusions, []
        out: list[str] = []
        rest = text
        for block in pending:
            before, found, after = rest.partition(block)
            if not found:
                continue
            if before.strip():
                out.append(super().paragraph(before.strip()))
            out.append(block)
            rest = after
        if not out:
            return super().paragraph(text)
        if rest.strip():
            out.append(super().paragraph(rest.strip()))
        return "".join(out)

    def link(self, text: str, url: str, title: str | None = None) -> str:
        if _is_internal(url):
            url = self._resolve(url)
        return super().link(text, url, title)

    def image(self, text: str, url: str, title: str | None = None) -> str:
        if _is_internal(url):
            url = self._resolve(url)
        return super().image(text, url, title)

    def heading(self, text: str, level: int, **attrs: Any) -> str:
        heading_id = self._unique_heading_id(striptags(text))
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def wikilink(self, text: str, target: str, embed: bool = False) -> str:
        if target.startswith("#"):
            anchor = slugify_heading(target[1:], "-")
            return f'<a href="#{anchor}" class="internal">{escape(text)}</a>'

        url = self._resolve(target)
        if not embed:
            return f'<a href="{self.safe_url(url)}" class="internal">{escape(text)}</a>'

        ext = get_file_extension(target.partition("#")[0])
        src = self.safe_url(url)
        if ext in IMAGE_EXTENSIONS:
            alt = "" if text == target else escape(text)
            return f'<img src="{src}" alt="{alt}" />'
        if ext in VIDEO_EXTENSIONS:
            return f'<video src="{src}" controls="controls"></video>'
        if ext in AUDIO_EXTENSIONS:
            return f'<audio src="{src}" controls="controls"></audio>'
        if ext == ".pdf":
            return f'<iframe src="{src}" class="pdf"></iframe>'

        return self._transclude(url, text)

    def _transclude(self, url: str, text: str) -> str:
        key = target_key(self._slug, url)
        found = self._embed(key) if self._embed is not None else None
        if found is None:
            return f'<a href="{self.safe_url(url)}" class="internal transclude-src">{escape(text)}</a>'

        embedded_slug, html = found
        rebased = rebase_html(html, self._slug, embedded_slug)
        block = (
            f'<blockquote class="transclude" data-url="{self.safe_url(url)}">'
            f"{rebased}</blockquote>\n"
        )
        self._transclusions.append(block)
        return block

    def _resolve(self, target: str) -> str:
        url = transform_link_with(self._slug, target, self._options)
        self.links.add(target_key(self._slug, url))
        return url

    def _unique_heading_id(self, text: str) -> str:
        base = slugify_heading(text, "-")
        count = self._heading_ids.get(base, 0)
        self._heading_ids[base] = count + 1
        return base if count == 0 else f"{base}-{count}"


def _is_internal(url: str) -> bool:
    return bool(url) and not url.startswith("#") and not is_absolute_url(url)


def _parse_wikilink(inline: Any, m: re.Match[str], state: Any) -> int:
    target = m.group("wiki_target").strip()
    alias = m.group("wiki_alias")
    state.append_token(
        {
            "type": "wikilink",
            "raw": alias.strip() if alias else target,
            "attrs": {"target": target, "embed": bool(m.group("wiki_embed"))},
        },
    )
    return m.end()


def wikilinks(md: mistune.Markdown) -> None:
    """Mistune plugin for ``[[target|alias]]`` links and ``![[target]]`` embeds."""
    md.inline.register("wikilink", WIKILINK_PATTERN, _parse_wikilink, before="link")


def render_markdown(
    body: str,
    slug: FullSlug,
    options: TransformOptions,
    *,
    embed: EmbedResolver | None = None,
) -> RenderedPage:
    """Render a markdown body for the page ``slug``.

    Args:
        body: Markdown text without frontmatter
        slug: Slug of the page being rendered
        options: Link resolution options
        embed: Callback resolving embedded pages

    Returns:
        RenderedPage with HTML and referenced page keys
    """
    renderer = PageRenderer(slug, options, embed=embed)
    md = mistune.create_markdown(
        renderer=renderer,
        plugins=["strikethrough", "table", "footnotes", "task_lists", wikilinks],
    )
    html = md(body)
    return RenderedPage(html=str(html), links=renderer.links)
