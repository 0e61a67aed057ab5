"""Content file parsing.

Reads markdown sources, extracts YAML frontmatter and derives the slugs a
page is reachable under (its own slug plus aliases and permalink).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from rockery.core.slugs import slug_tag, slugify_file_path
from rockery.core.types import FilePath, FullSlug, get_file_extension

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = (".md",)


@dataclass
class ContentPage:
    """Parsed markdown page."""

    file_path: FilePath
    slug: FullSlug
    source_path: Path
    title: str
    body: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    aliases: list[FullSlug] = field(default_factory=list)
    draft: bool = False

    @property
    def slugs(self) -> list[FullSlug]:
        """Every slug this page claims: its own, then aliases."""
        return [self.slug, *self.aliases]


def is_markdown(file_path: str) -> bool:
    return get_file_extension(file_path) in MARKDOWN_EXTENSIONS


def to_file_path(content_dir: Path, source_path: Path) -> FilePath:
    """Convert an absolute source path into a content-relative FilePath."""
    return FilePath(source_path.relative_to(content_dir).as_posix())


def parse_content_file(content_dir: Path, source_path: Path) -> ContentPage:
    """Read and parse a markdown file.

    Args:
        content_dir: Content root directory
        source_path: Markdown file inside content_dir

    Returns:
        ContentPage with frontmatter fields coalesced

    Raises:
        OSError: If the file cannot be read
    """
    text = source_path.read_text(encoding="utf-8")
    file_path = to_file_path(content_dir, source_path)
    return parse_content(file_path, text, source_path=source_path)


def parse_content(file_path: FilePath, text: str, *, source_path: Path | None = None) -> ContentPage:
    """Parse markdown text with optional frontmatter.

    Args:
        file_path: Content-relative path (e.g., "notes/guide.md")
        text: Raw file content
        source_path: Absolute source path, defaults to file_path

    Returns:
        ContentPage
    """
    metadata, body = _split_frontmatter(file_path, text)

    title = metadata.get("title")
    if title is None or str(title) == "":
        title = Path(file_path).stem
    title = str(title)

    tags: list[str] = []
    raw_tags = _coerce_to_list(_coalesce(metadata, "tags", "tag"))
    for tag in raw_tags or []:
        slugged = slug_tag(tag)
        if slugged and slugged not in tags:
            tags.append(slugged)

    aliases: list[FullSlug] = []
    raw_aliases = _coerce_to_list(_coalesce(metadata, "aliases", "alias"))
    for alias in raw_aliases or []:
        aliases.append(_alias_slug(alias))

    permalink = metadata.get("permalink")
    if permalink is not None and str(permalink) != "":
        aliases.append(FullSlug(str(permalink)))

    return ContentPage(
        file_path=file_path,
        slug=slugify_file_path(file_path),
        source_path=source_path if source_path is not None else Path(file_path),
        title=title,
        body=body,
        frontmatter=metadata,
        tags=tags,
        aliases=aliases,
        draft=_is_truthy(metadata.get("draft", False)),
    )


def _split_frontmatter(file_path: FilePath, text: str) -> tuple[dict[str, Any], str]:
    try:
        post = frontmatter.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        logger.warning(f"Failed to parse frontmatter in {file_path}: {e}")
        return {}, text

    if not isinstance(post.metadata, dict):
        logger.warning(f"Frontmatter in {file_path} is not a mapping, ignoring it")
        return {}, post.content
    return dict(post.metadata), post.content


def _coalesce(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _coerce_to_list(value: Any) -> list[str] | None:
    """Accept a list or a comma separated string; keep strings and numbers only."""
    if value is None:
        return None
    if not isinstance(value, list):
        value = [part.strip() for part in str(value).split(",")]
    return [
        str(item)
        for item in value
        if isinstance(item, (str, int, float)) and not isinstance(item, bool)
    ]


def _alias_slug(alias: str) -> FullSlug:
    mock_fp = alias if get_file_extension(alias) == ".md" else alias + ".md"
    return slugify_file_path(FilePath(mock_fp))


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)
