"""Content pipeline: turns the content directory into the output tree.

The build orchestrator treats a pipeline as an opaque unit with three
operations: a full build, a partial build for a batch of changed files and
disposal of held resources.
"""

import importlib
import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from fnmatch import fnmatch
from html import escape
from pathlib import Path
from typing import Protocol

from rockery.config import Config
from rockery.core.content import ContentPage, is_markdown, parse_content_file, to_file_path
from rockery.core.links import TransformOptions
from rockery.core.markdown import page_key, render_markdown
from rockery.core.registry import SlugRegistry
from rockery.core.slugs import all_segment_prefixes, resolve_relative, slugify_file_path
from rockery.core.types import FilePath, FullSlug

logger = logging.getLogger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1.0" />
<title>{title}</title>
</head>
<body data-slug="{slug}">
<nav><a href="{root}">{site_title}</a></nav>
<article>
<h1>{title}</h1>
{content}
</article>
{scripts}
</body>
</html>
"""

REDIRECT_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<title>{title}</title>
<link rel="canonical" href="{url}" />
<meta http-equiv="refresh" content="0; url={url}" />
</head>
</html>
"""

LIVE_RELOAD_SCRIPT = """<script>
(function () {{
  const proto = location.protocol === "https:" ? "wss:" : "ws:";
  const socket = new WebSocket(proto + "//" + location.host + "{path}");
  socket.addEventListener("message", () => document.location.reload());
}})();
</script>"""


class ChangeType(StrEnum):
    """Kind of filesystem change."""

    ADD = "add"
    CHANGE = "change"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A changed content file, relative to the content directory."""

    type: ChangeType
    path: FilePath


class ContentPipeline(Protocol):
    """Opaque unit the orchestrator runs on every rebuild."""

    def build_all(self) -> list[Path]:
        """Process all content and emit every output file."""
        ...

    def build_changed(self, changes: list[ChangeEvent]) -> list[Path] | None:
        """Process only changed files. Returns None when a full build is required."""
        ...

    def dispose(self) -> None:
        """Release resources held by the pipeline."""
        ...


@dataclass
class BuildContext:
    """State shared by all stages of one pipeline instance."""

    config: Config
    registry: SlugRegistry = field(default_factory=SlugRegistry)
    live_reload_path: str | None = None

    @property
    def content_dir(self) -> Path:
        return self.config.build.content_dir

    @property
    def output_dir(self) -> Path:
        return self.config.build.output_dir

    @property
    def transform_options(self) -> TransformOptions:
        return TransformOptions(
            strategy=self.config.site.link_resolution,
            all_slugs=self.registry,
        )

    def is_ignored(self, file_path: str) -> bool:
        """Check a content-relative path against the configured ignore patterns."""
        for pattern in self.config.site.ignore_patterns:
            if fnmatch(file_path, pattern) or fnmatch(file_path, f"{pattern}/*"):
                return True
        return False


class SitePipeline:
    """Default pipeline: markdown pages, assets, alias redirects, tag pages, 404 page."""

    def __init__(self, ctx: BuildContext) -> None:
        self._ctx = ctx
        self._pages: dict[FilePath, ContentPage] = {}
        self._assets: set[FilePath] = set()
        self._links: dict[FullSlug, set[str]] = {}
        self._fragments: dict[FullSlug, str] = {}
        self._rendering: set[FullSlug] = set()
        self._by_key: dict[str, ContentPage] = {}
        self._built = False

    @property
    def ctx(self) -> BuildContext:
        return self._ctx

    @property
    def pages(self) -> list[ContentPage]:
        return list(self._pages.values())

    def build_all(self) -> list[Path]:
        """Rebuild the whole site from scratch.

        Returns:
            Paths of all emitted files
        """
        start = time.perf_counter()
        content_dir = self._ctx.content_dir
        output_dir = self._ctx.output_dir

        self._pages.clear()
        self._assets.clear()
        self._links.clear()

        files = self._discover(content_dir)
        logger.info(f"Found {len(files)} input files in {content_dir}")

        for file_path in files:
            if is_markdown(file_path):
                page = parse_content_file(content_dir, content_dir / file_path)
                self._pages[file_path] = page
            else:
                self._assets.add(file_path)

        self._ctx.registry.reset(slugify_file_path(fp) for fp in files)
        for page in self._pages.values():
            self._register_page(page)

        if output_dir.exists():
            shutil.rmtree(output_dir)
        output_dir.mkdir(parents=True)

        self._start_pass()
        emitted: list[Path] = []
        for page in self._published():
            emitted.extend(self._emit_page(page))
        for file_path in sorted(self._assets):
            emitted.append(self._emit_asset(file_path))
        emitted.extend(self._emit_tag_pages())
        emitted.append(self._emit_not_found())
        self._built = True

        elapsed = time.perf_counter() - start
        logger.info(f"Emitted {len(emitted)} files to {output_dir} in {elapsed * 1000:.0f}ms")
        return emitted

    def build_changed(self, changes: list[ChangeEvent]) -> list[Path] | None:
        """Reprocess changed files and emit only affected output.

        Args:
            changes: Content changes since the last build

        Returns:
            Emitted paths, or None if no full build happened yet
        """
        if not self._built:
            return None

        start = time.perf_counter()
        content_dir = self._ctx.content_dir
        emitted: list[Path] = []
        affected: set[str] = set()
        changed_pages: list[ContentPage] = []
        tags_changed = False
        registry_size = len(self._ctx.registry)

        for change in changes:
            if self._ctx.is_ignored(change.path):
                continue

            if not is_markdown(change.path):
                emitted.extend(self._apply_asset_change(change))
                continue

            previous = self._pages.pop(change.path, None)
            if previous is not None:
                affected.update(page_key(slug) for slug in previous.slugs)
                self._links.pop(previous.slug, None)
                tags_changed = tags_changed or bool(previous.tags)
                if change.type is ChangeType.DELETE:
                    self._remove_page_output(previous)

            source_path = content_dir / change.path
            if change.type is ChangeType.DELETE or not source_path.is_file():
                continue

            page = parse_content_file(content_dir, source_path)
            if page.draft and previous is not None:
                self._remove_page_output(previous)
            self._pages[change.path] = page
            self._ctx.registry.add(page.slug)
            self._register_page(page)
            affected.update(page_key(slug) for slug in page.slugs)
            tags_changed = tags_changed or bool(page.tags) or (
                previous is not None and previous.tags != page.tags
            )
            changed_pages.append(page)

        self._start_pass()
        registry_grew = len(self._ctx.registry) > registry_size
        to_render: dict[FullSlug, ContentPage] = {}
        for page in self._published():
            if registry_grew or page in changed_pages or self._links.get(page.slug, set()) & affected:
                to_render[page.slug] = page
        for page in to_render.values():
            emitted.extend(self._emit_page(page))
        if tags_changed:
            emitted.extend(self._emit_tag_pages())

        elapsed = time.perf_counter() - start
        logger.info(
            f"Rebuilt {len(to_render)} pages from {len(changes)} changes "
            f"({len(emitted)} files) in {elapsed * 1000:.0f}ms",
        )
        return emitted

    def dispose(self) -> None:
        """Drop all cached content state."""
        logger.debug("Disposing content pipeline")
        self._pages.clear()
        self._assets.clear()
        self._links.clear()
        self._fragments.clear()
        self._by_key.clear()
        self._built = False

    def _discover(self, content_dir: Path) -> list[FilePath]:
        if not content_dir.is_dir():
            logger.warning(f"Content directory does not exist: {content_dir}")
            return []

        files: list[FilePath] = []
        for path in sorted(content_dir.rglob("*")):
            if not path.is_file():
                continue
            file_path = to_file_path(content_dir, path)
            if self._ctx.is_ignored(file_path):
                continue
            files.append(file_path)
        return files

    def _register_page(self, page: ContentPage) -> None:
        registry = self._ctx.registry
        registry.extend(page.aliases)
        for tag in page.tags:
            registry.extend(FullSlug(f"tags/{prefix}") for prefix in all_segment_prefixes(tag))
        if page.tags:
            registry.add(FullSlug("tags/index"))

    def _published(self) -> list[ContentPage]:
        return [page for page in self._pages.values() if not page.draft]

    def _start_pass(self) -> None:
        self._fragments.clear()
        self._rendering.clear()
        self._by_key = {}
        for page in self._published():
            for slug in page.slugs:
                self._by_key.setdefault(page_key(slug), page)

    def _fragment(self, page: ContentPage) -> str:
        cached = self._fragments.get(page.slug)
        if cached is not None:
            return cached

        self._rendering.add(page.slug)
        try:
            rendered = render_markdown(
                page.body,
                page.slug,
                self._ctx.transform_options,
                embed=self._resolve_embed,
            )
        finally:
            self._rendering.discard(page.slug)

        self._links[page.slug] = rendered.links
        self._fragments[page.slug] = rendered.html
        return rendered.html

    def _resolve_embed(self, key: str) -> tuple[FullSlug, str] | None:
        page = self._by_key.get(key)
        if page is None or page.slug in self._rendering:
            return None
        return page.slug, self._fragment(page)

    def _emit_page(self, page: ContentPage) -> list[Path]:
        content = self._fragment(page)
        emitted = [self._write(page.slug, self._render_document(page.slug, page.title, content))]
        for alias in page.aliases:
            if alias == page.slug or self._is_page_slug(alias):
                continue
            url = resolve_relative(alias, page.slug)
            html = REDIRECT_TEMPLATE.format(title=escape(page.title), url=escape(url))
            emitted.append(self._write(alias, html))
        return emitted

    def _is_page_slug(self, slug: FullSlug) -> bool:
        return any(page.slug == slug for page in self._pages.values())

    def _emit_asset(self, file_path: FilePath) -> Path:
        dest = self._ctx.output_dir / slugify_file_path(file_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self._ctx.content_dir / file_path, dest)
        return dest

    def _apply_asset_change(self, change: ChangeEvent) -> list[Path]:
        if change.type is ChangeType.DELETE:
            self._assets.discard(change.path)
            dest = self._ctx.output_dir / slugify_file_path(change.path)
            dest.unlink(missing_ok=True)
            return []

        if not (self._ctx.content_dir / change.path).is_file():
            return []
        self._assets.add(change.path)
        self._ctx.registry.add(slugify_file_path(change.path))
        return [self._emit_asset(change.path)]

    def _remove_page_output(self, page: ContentPage) -> None:
        for slug in page.slugs:
            if slug == page.slug or not self._is_page_slug(slug):
                (self._ctx.output_dir / f"{slug}.html").unlink(missing_ok=True)

    def _emit_tag_pages(self) -> list[Path]:
        tagged: dict[str, list[ContentPage]] = {}
        for page in self._published():
            for tag in page.tags:
                for prefix in all_segment_prefixes(tag):
                    members = tagged.setdefault(prefix, [])
                    if page not in members:
                        members.append(page)

        if not tagged:
            return []

        emitted: list[Path] = []
        for tag, pages in sorted(tagged.items()):
            slug = FullSlug(f"tags/{tag}")
            items = "\n".join(
                f'<li><a href="{escape(resolve_relative(slug, page.slug))}">{escape(page.title)}</a></li>'
                for page in sorted(pages, key=lambda p: p.title.lower())
            )
            content = f'<ul class="tag-listing">\n{items}\n</ul>'
            emitted.append(self._write(slug, self._render_document(slug, f"Tag: {tag}", content)))

        index_slug = FullSlug("tags/index")
        items = "\n".join(
            f'<li><a href="{escape(resolve_relative(index_slug, FullSlug(f"tags/{tag}")))}">'
            f"{escape(tag)}</a> ({len(pages)})</li>"
            for tag, pages in sorted(tagged.items())
        )
        content = f'<ul class="tag-listing">\n{items}\n</ul>'
        emitted.append(self._write(index_slug, self._render_document(index_slug, "All Tags", content)))
        return emitted

    def _emit_not_found(self) -> Path:
        slug = FullSlug("404")
        content = "<p>Either this page is private or doesn't exist.</p>"
        return self._write(slug, self._render_document(slug, "404", content))

    def _render_document(self, slug: FullSlug, title: str, content: str) -> str:
        scripts = ""
        if self._ctx.live_reload_path:
            scripts = LIVE_RELOAD_SCRIPT.format(path=self._ctx.live_reload_path)
        return PAGE_TEMPLATE.format(
            title=escape(title),
            slug=escape(slug),
            root=resolve_relative(slug, FullSlug("index")),
            site_title=escape(self._ctx.config.site.title),
            content=content,
            scripts=scripts,
        )

    def _write(self, slug: FullSlug, html: str) -> Path:
        dest = self._ctx.output_dir / f"{slug}.html"
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(html, encoding="utf-8")
        return dest


PipelineFactory = Callable[[BuildContext], ContentPipeline]


def load_pipeline(
    config: Config,
    *,
    live_reload_path: str | None = None,
    reload_module: bool = False,
) -> ContentPipeline:
    """Create the pipeline configured by ``build.pipeline``.

    Args:
        config: Application configuration
        live_reload_path: WebSocket path injected into pages, None to disable
        reload_module: Re-import the pipeline module to pick up code changes

    Returns:
        A fresh pipeline instance
    """
    ctx = BuildContext(config=config, live_reload_path=live_reload_path)
    if config.build.pipeline is None:
        return SitePipeline(ctx)

    module_name, _, attr = config.build.pipeline.partition(":")
    module = importlib.import_module(module_name)
    if reload_module:
        module = importlib.reload(module)
    factory: PipelineFactory = getattr(module, attr)
    logger.info(f"Using content pipeline {config.build.pipeline}")
    return factory(ctx)


class PipelineLoader:
    """Pipeline factory for the build orchestrator.

    The first call uses the given config; later calls (hard rebuilds) reload
    the configuration and the pipeline module so that tooling changes apply.
    """

    def __init__(
        self,
        config: Config,
        *,
        reload_config: Callable[[], Config] | None = None,
        live_reload_path: str | None = None,
    ) -> None:
        self._config = config
        self._reload_config = reload_config
        self._live_reload_path = live_reload_path
        self._loaded = False

    @property
    def config(self) -> Config:
        return self._config

    def __call__(self) -> ContentPipeline:
        if self._loaded and self._reload_config is not None:
            self._config = self._reload_config()
        pipeline = load_pipeline(
            self._config,
            live_reload_path=self._live_reload_path,
            reload_module=self._loaded,
        )
        self._loaded = True
        return pipeline
