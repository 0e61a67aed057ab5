"""Slug algebra.

Pure functions converting between file paths, slugs and relative URLs. Every
link emitted into rendered HTML is derived from these functions, so they must
stay deterministic and free of filesystem access.
"""

import re
from urllib.parse import unquote

from pymdownx.slugs import slugify as _md_slugify

from rockery.core.types import (
    FilePath,
    FullSlug,
    RelativeURL,
    SimpleSlug,
    ends_with,
    get_file_extension,
    strip_slashes,
    trim_suffix,
)

# Same slugifier as heading ids so that anchors match rendered headings
slugify_heading = _md_slugify(case="lower")

_CONTENT_EXTENSIONS = (".md", ".html")
_WHITESPACE_RE = re.compile(r"\s")
_RELATIVE_SEGMENT_RE = re.compile(r"^\.{0,2}$")


def sluggify(text: str) -> str:
    """Make a path URL-safe segment by segment.

    Args:
        text: Path-like text (e.g., "cool/what about r&d?")

    Returns:
        Slugified path (e.g., "cool/what-about-r-and-d")
    """
    segments = []
    for segment in text.split("/"):
        segment = _WHITESPACE_RE.sub("-", segment)
        segment = segment.replace("&", "-and-")
        segment = segment.replace("%", "").replace("?", "").replace("#", "")
        segments.append(segment)

    joined = "/".join(segments)
    return joined[:-1] if joined.endswith("/") else joined


def slugify_file_path(fp: FilePath | str, exclude_ext: bool = False) -> FullSlug:
    """Convert a content file path to its full slug.

    Markdown and HTML files lose their extension, other assets keep it.
    ``_index`` files are treated as ``index``.

    Args:
        fp: File path relative to the content root (e.g., "notes/_index.md")
        exclude_ext: Drop the extension even for non-content assets

    Returns:
        Full slug (e.g., "notes/index", "img/cat.png")
    """
    fp = strip_slashes(fp)
    ext = get_file_extension(fp)
    without_ext = fp[: -len(ext)] if ext else fp
    if exclude_ext or ext is None or ext in _CONTENT_EXTENSIONS:
        ext = ""

    slug = sluggify(without_ext)

    if ends_with(slug, "_index"):
        slug = slug[: -len("_index")] + "index"

    return FullSlug(slug + ext)


def simplify_slug(fp: FullSlug | str) -> SimpleSlug:
    """Drop a trailing ``index`` segment; the root page becomes ``/``."""
    res = strip_slashes(trim_suffix(fp, "index"), only_prefix=True)
    return SimpleSlug(res if res else "/")


def path_to_root(slug: FullSlug | str) -> RelativeURL:
    """Relative path from the directory a slug is emitted in back to the site root.

    Examples:
        >>> path_to_root("abc/def/ghi")
        '../..'
        >>> path_to_root("index")
        '.'
    """
    segments = [segment for segment in slug.split("/") if segment]
    root_path = "/".join(".." for _ in segments[:-1])
    return RelativeURL(root_path or ".")


def resolve_relative(current: FullSlug | str, target: FullSlug | SimpleSlug | str) -> RelativeURL:
    """Relative URL from the page ``current`` to the page ``target``."""
    return RelativeURL(join_segments(path_to_root(current), simplify_slug(target)))


def join_segments(*args: str) -> str:
    """Join path segments with single slashes.

    A leading slash on the first segment and a trailing slash on the last one
    are preserved. Scheme separators (``https://``) are left untouched.

    Examples:
        >>> join_segments("/a/", "b", "/")
        '/a/b/'
        >>> join_segments("https://example.com/", "a/")
        'https://example.com/a/'
    """
    if not args:
        return ""

    joined = "/".join(
        strip_slashes(segment) for segment in args if segment not in ("", "/")
    )

    if args[0].startswith("/"):
        joined = "/" + joined

    if args[-1].endswith("/"):
        joined = joined + "/"

    return joined


def split_anchor(link: str) -> tuple[str, str]:
    """Split a link into its path and ``#anchor`` parts.

    Anchors are slugified like heading ids, except for PDFs where viewers use
    anchors such as ``#page=3``.

    Args:
        link: Link text (e.g., "notes/guide#Getting Started")

    Returns:
        Tuple of (path, anchor) where anchor is "" or starts with "#"
    """
    fp, sep, anchor = link.partition("#")
    if not sep:
        return fp, ""
    if fp.endswith(".pdf"):
        return fp, f"#{anchor}"
    return fp, "#" + slugify_heading(anchor, "-")


def slug_tag(tag: str) -> str:
    """Slugify a hierarchical tag (e.g., "Project Notes/Q&A" -> "Project-Notes/Q-and-A")."""
    return "/".join(sluggify(segment) for segment in tag.split("/"))


def all_segment_prefixes(tag: str) -> list[str]:
    """Return every prefix of a hierarchical tag: ``a/b/c`` -> ``a``, ``a/b``, ``a/b/c``."""
    segments = tag.split("/")
    return ["/".join(segments[: i + 1]) for i in range(len(segments))]


def is_folder_path(fplike: str) -> bool:
    """Check whether a link points at a folder page."""
    return (
        fplike.endswith("/")
        or ends_with(fplike, "index")
        or ends_with(fplike, "index.md")
        or ends_with(fplike, "index.html")
    )


def transform_internal_link(link: str) -> RelativeURL:
    """Normalize an authored internal link into a relative URL.

    Leading ``.``/``..`` segments are kept as written, the rest of the path is
    slugified and simplified, folder links keep their trailing slash and the
    anchor is re-attached.

    Args:
        link: Link as written by the author (e.g., "../notes/My Note.md#Intro")

    Returns:
        Relative URL (e.g., "../notes/My-Note#intro")
    """
    fplike, anchor = split_anchor(unquote(link))

    folder_path = is_folder_path(fplike)
    segments = [segment for segment in fplike.split("/") if segment]

    prefix_len = 0
    while prefix_len < len(segments) and _RELATIVE_SEGMENT_RE.match(segments[prefix_len]):
        prefix_len += 1
    prefix = "/".join(segments[:prefix_len])
    fp = "/".join(segments[prefix_len:])

    simple_slug = simplify_slug(slugify_file_path(FilePath(fp)))
    joined = join_segments(strip_slashes(prefix), strip_slashes(simple_slug))
    trail = "/" if folder_path else ""
    return RelativeURL(_add_relative_to_start(joined) + trail + anchor)


def _add_relative_to_start(s: str) -> str:
    if s == "":
        s = "."

    if not s.startswith("."):
        s = join_segments(".", s)

    return s
