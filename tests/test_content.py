"""Tests for content parsing."""

from pathlib import Path

from rockery.core.content import is_markdown, parse_content, parse_content_file
from rockery.core.types import FilePath


class TestParseContent:
    """Tests for parse_content()."""

    def test__no_frontmatter__uses_file_stem_as_title(self) -> None:
        """Fall back to the file name for the title."""
        page = parse_content(FilePath("notes/My Note.md"), "Hello")

        assert page.title == "My Note"
        assert page.slug == "notes/My-Note"
        assert page.body == "Hello"
        assert page.frontmatter == {}

    def test__frontmatter__sets_title_and_body(self) -> None:
        """Read title from frontmatter and strip it from the body."""
        text = "---\ntitle: Guide\n---\n# Heading\n"

        page = parse_content(FilePath("guide.md"), text)

        assert page.title == "Guide"
        assert page.body.strip() == "# Heading"

    def test__tags__are_slugified_and_deduplicated(self) -> None:
        """Slugify tags, accepting the singular key and duplicates."""
        text = "---\ntag: [Project Notes/Q&A, Project Notes/Q&A, draft ideas]\n---\n"

        page = parse_content(FilePath("a.md"), text)

        assert page.tags == ["Project-Notes/Q-and-A", "draft-ideas"]

    def test__comma_separated_tags__are_split(self) -> None:
        """Accept tags as a comma separated string."""
        page = parse_content(FilePath("a.md"), "---\ntags: one, two\n---\n")

        assert page.tags == ["one", "two"]

    def test__aliases_and_permalink__become_slugs(self) -> None:
        """Slugify aliases and append the permalink."""
        text = "---\naliases:\n  - Old Name\n  - other/page.md\npermalink: short\n---\n"

        page = parse_content(FilePath("notes/new.md"), text)

        assert page.aliases == ["Old-Name", "other/page", "short"]
        assert page.slugs == ["notes/new", "Old-Name", "other/page", "short"]

    def test__draft_flag__accepts_strings(self) -> None:
        """Parse draft flags given as strings."""
        assert parse_content(FilePath("a.md"), "---\ndraft: 'true'\n---\n").draft
        assert not parse_content(FilePath("a.md"), "---\ndraft: 'no'\n---\n").draft
        assert parse_content(FilePath("a.md"), "---\ndraft: true\n---\n").draft

    def test__invalid_frontmatter__is_ignored(self) -> None:
        """Treat unparsable frontmatter as absent."""
        text = "---\ntitle: [unclosed\n---\nBody\n"

        page = parse_content(FilePath("broken.md"), text)

        assert page.title == "broken"
        assert page.frontmatter == {}


class TestParseContentFile:
    """Tests for parse_content_file()."""

    def test__file__is_read_relative_to_content_dir(self, content_dir: Path) -> None:
        """Derive the file path from the content directory."""
        source = content_dir / "sub" / "_index.md"
        source.parent.mkdir()
        source.write_text("---\ntitle: Section\n---\nText\n")

        page = parse_content_file(content_dir, source)

        assert page.file_path == "sub/_index.md"
        assert page.slug == "sub/index"
        assert page.source_path == source


class TestIsMarkdown:
    """Tests for is_markdown()."""

    def test__extension__decides(self) -> None:
        """Only .md files are markdown."""
        assert is_markdown("a/b.md")
        assert not is_markdown("a/b.png")
