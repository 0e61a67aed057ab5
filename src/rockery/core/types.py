"""Identifier type definitions and validators.

All identifiers are plain strings at runtime. The NewTypes below only exist for
the type checker; validity is checked structurally by the ``is_*`` predicates.
"""

import re
from typing import NewType
from urllib.parse import urlsplit

# On-disk-like path to a content asset (e.g., "notes/guide.md", "img/cat.png")
FilePath = NewType("FilePath", str)

# Canonical page identifier (e.g., "notes/guide", "notes/index")
FullSlug = NewType("FullSlug", str)

# Display/traversal identifier (e.g., "notes/guide", "notes/", "/")
SimpleSlug = NewType("SimpleSlug", str)

# Link value safe to emit into rendered HTML (e.g., "./guide", "../../notes/")
RelativeURL = NewType("RelativeURL", str)

_FILE_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]+$")
_RELATIVE_START_RE = re.compile(r"^\.{1,2}")
_FORBIDDEN_CHARACTERS = (" ", "#", "?", "&")


def is_file_path(s: str) -> bool:
    """Check that a string is a non-relative path with a file extension."""
    return not s.startswith(".") and has_file_extension(s)


def is_full_slug(s: str) -> bool:
    """Check that a string is a valid full slug.

    Full slugs cannot be relative and have no leading or trailing slash. They
    may end with an ``index`` segment.
    """
    valid_start = not (s.startswith(".") or s.startswith("/"))
    valid_ending = not s.endswith("/")
    return valid_start and valid_ending and not _contains_forbidden_characters(s)


def is_simple_slug(s: str) -> bool:
    """Check that a string is a valid simple slug.

    Simple slugs cannot be relative, cannot end with ``/index`` and have no
    file extension. A trailing slash marks a folder; a lone ``/`` is the root.
    """
    valid_start = not (s.startswith(".") or (len(s) > 1 and s.startswith("/")))
    valid_ending = not ends_with(s, "index")
    return (
        valid_start
        and valid_ending
        and not _contains_forbidden_characters(s)
        and not has_file_extension(s)
    )


def is_relative_url(s: str) -> bool:
    """Check that a string is a relative URL that can be emitted as an href."""
    valid_start = _RELATIVE_START_RE.match(s) is not None
    valid_ending = not ends_with(s, "index")
    return valid_start and valid_ending and get_file_extension(s) not in (".md", ".html")


def is_absolute_url(s: str) -> bool:
    """Check that a string parses as a URL with a scheme.

    Args:
        s: Candidate URL (e.g., "https://example.com", "file://host/a")

    Returns:
        True if the string has a scheme and is not a bare path
    """
    try:
        parts = urlsplit(s)
    except ValueError:
        return False
    # Single-letter schemes are Windows drive letters, not URLs
    return len(parts.scheme) > 1


def get_file_extension(s: str) -> str | None:
    """Return the trailing dotted extension (e.g., ".md") or None."""
    match = _FILE_EXTENSION_RE.search(s)
    return match.group(0) if match else None


def has_file_extension(s: str) -> bool:
    return get_file_extension(s) is not None


def ends_with(s: str, suffix: str) -> bool:
    """Segment-aware suffix check: ``a/index`` ends with ``index``, ``notindex`` does not."""
    return s == suffix or s.endswith("/" + suffix)


def trim_suffix(s: str, suffix: str) -> str:
    """Remove a trailing path segment if present."""
    if ends_with(s, suffix):
        s = s[: -len(suffix)]
    return s


def strip_slashes(s: str, *, only_prefix: bool = False) -> str:
    """Strip a single leading slash and, unless ``only_prefix``, a single trailing one."""
    if s.startswith("/"):
        s = s[1:]
    if not only_prefix and s.endswith("/"):
        s = s[:-1]
    return s


def _contains_forbidden_characters(s: str) -> bool:
    return any(ch in s for ch in _FORBIDDEN_CHARACTERS)
