"""Configuration management for Rockery.

Supports TOML configuration format with auto-discovery.
"""

import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

from rockery.core.links import LinkStrategy

CONFIG_FILENAME = "rockery.toml"
CACHE_DIRNAME = ".rockery-cache"

DEFAULT_IGNORE_PATTERNS = ["private", "templates", ".obsidian"]
DEFAULT_WATCH_PATTERNS = [CONFIG_FILENAME, "**/*.py"]


@dataclass
class SiteConfig:
    """Site-wide settings."""

    title: str = "Rockery"
    link_resolution: LinkStrategy = LinkStrategy.SHORTEST
    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))


@dataclass
class BuildConfig:
    """Build input/output configuration."""

    content_dir: Path = field(default_factory=lambda: Path("content"))
    output_dir: Path = field(default_factory=lambda: Path("public"))
    pipeline: str | None = None


@dataclass
class ServerConfig:
    """Dev server configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    base_dir: str = ""


@dataclass
class LiveReloadConfig:
    """Live reload configuration."""

    enabled: bool = True
    watch_patterns: list[str] | None = None


@dataclass
class Config:
    """Application configuration."""

    site: SiteConfig
    build: BuildConfig
    server: ServerConfig
    live_reload: LiveReloadConfig
    config_path: Path | None = None

    @property
    def root_dir(self) -> Path:
        """Project root: the config file's directory, or cwd without one."""
        if self.config_path is not None:
            return self.config_path.parent
        return Path.cwd()

    @property
    def tooling_patterns(self) -> list[str]:
        """Glob patterns whose changes require a hard rebuild."""
        return self.live_reload.watch_patterns or list(DEFAULT_WATCH_PATTERNS)

    @classmethod
    def load(cls, config_path: Path | None = None) -> "Config":
        """Load configuration from file.

        If config_path is provided, loads from that file.
        Otherwise, searches for rockery.toml in current directory and parents.

        Args:
            config_path: Optional explicit path to config file

        Returns:
            Config instance with defaults for missing sections

        Raises:
            FileNotFoundError: If explicit config_path doesn't exist
            ValueError: If configuration is invalid
        """
        if config_path is not None:
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return cls._load_from_file(config_path)

        discovered_path = cls._discover_config()
        if discovered_path is None:
            return cls._default()

        return cls._load_from_file(discovered_path)

    @classmethod
    def _discover_config(cls) -> Path | None:
        """Search for config file in current directory and parents.

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        while True:
            candidate = current / CONFIG_FILENAME
            if candidate.exists():
                return candidate
            parent = current.parent
            if parent == current:
                return None
            current = parent

    @classmethod
    def _default(cls) -> "Config":
        """Create config with all defaults, paths relative to cwd."""
        cwd = Path.cwd()
        return cls(
            site=SiteConfig(),
            build=BuildConfig(content_dir=cwd / "content", output_dir=cwd / "public"),
            server=ServerConfig(),
            live_reload=LiveReloadConfig(),
        )

    @classmethod
    def _load_from_file(cls, path: Path) -> "Config":
        """Load configuration from a specific file.

        Args:
            path: Path to TOML configuration file

        Returns:
            Config instance

        Raises:
            ValueError: If configuration is invalid
        """
        with path.open("rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ValueError(f"Invalid TOML in {path}: {e}") from e

        config_dir = path.parent

        return cls(
            site=cls._parse_site(data.get("site")),
            build=cls._parse_build(data.get("build"), config_dir),
            server=cls._parse_server(data.get("server")),
            live_reload=cls._parse_live_reload(data.get("live_reload")),
            config_path=path,
        )

    @classmethod
    def _parse_site(cls, data: object) -> SiteConfig:
        """Parse site configuration section.

        Args:
            data: Raw site section data

        Returns:
            SiteConfig instance
        """
        if data is None:
            return SiteConfig()

        if not isinstance(data, dict):
            raise ValueError("site section must be a dictionary")

        title = data.get("title", "Rockery")
        if not isinstance(title, str):
            raise ValueError("site.title must be a string")

        link_resolution = data.get("link_resolution", LinkStrategy.SHORTEST.value)
        try:
            strategy = LinkStrategy(link_resolution)
        except ValueError:
            choices = ", ".join(s.value for s in LinkStrategy)
            raise ValueError(f"site.link_resolution must be one of: {choices}") from None

        ignore_patterns = _parse_string_list(
            data.get("ignore_patterns", DEFAULT_IGNORE_PATTERNS),
            "site.ignore_patterns",
        )

        return SiteConfig(
            title=title,
            link_resolution=strategy,
            ignore_patterns=ignore_patterns,
        )

    @classmethod
    def _parse_build(cls, data: object, config_dir: Path) -> BuildConfig:
        """Parse build configuration section.

        Args:
            data: Raw build section data
            config_dir: Directory containing config file (for relative paths)

        Returns:
            BuildConfig instance
        """
        if data is None:
            return BuildConfig(
                content_dir=config_dir / "content",
                output_dir=config_dir / "public",
            )

        if not isinstance(data, dict):
            raise ValueError("build section must be a dictionary")

        content_dir = data.get("content_dir", "content")
        if not isinstance(content_dir, str):
            raise ValueError("build.content_dir must be a string")

        output_dir = data.get("output_dir", "public")
        if not isinstance(output_dir, str):
            raise ValueError("build.output_dir must be a string")

        pipeline = data.get("pipeline")
        if pipeline is not None:
            if not isinstance(pipeline, str) or ":" not in pipeline:
                raise ValueError('build.pipeline must be a "module:attribute" string')

        return BuildConfig(
            content_dir=config_dir / content_dir,
            output_dir=config_dir / output_dir,
            pipeline=pipeline,
        )

    @classmethod
    def _parse_server(cls, data: object) -> ServerConfig:
        """Parse server configuration section.

        Args:
            data: Raw server section data

        Returns:
            ServerConfig instance
        """
        if data is None:
            return ServerConfig()

        if not isinstance(data, dict):
            raise ValueError("server section must be a dictionary")

        host = data.get("host", "127.0.0.1")
        if not isinstance(host, str):
            raise ValueError("server.host must be a string")

        port = data.get("port", 8080)
        if not isinstance(port, int) or isinstance(port, bool):
            raise ValueError("server.port must be an integer")

        base_dir = data.get("base_dir", "")
        if not isinstance(base_dir, str):
            raise ValueError("server.base_dir must be a string")

        return ServerConfig(host=host, port=port, base_dir=normalize_base_dir(base_dir))

    @classmethod
    def _parse_live_reload(cls, data: object) -> LiveReloadConfig:
        """Parse live_reload configuration section.

        Args:
            data: Raw live_reload section data

        Returns:
            LiveReloadConfig instance
        """
        if data is None:
            return LiveReloadConfig()

        if not isinstance(data, dict):
            raise ValueError("live_reload section must be a dictionary")

        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ValueError("live_reload.enabled must be a boolean")

        watch_patterns_raw = data.get("watch_patterns")
        watch_patterns: list[str] | None = None
        if watch_patterns_raw is not None:
            watch_patterns = _parse_string_list(watch_patterns_raw, "live_reload.watch_patterns")

        return LiveReloadConfig(enabled=enabled, watch_patterns=watch_patterns)

    def with_overrides(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        base_dir: str | None = None,
        content_dir: Path | None = None,
        output_dir: Path | None = None,
        link_resolution: LinkStrategy | None = None,
        live_reload_enabled: bool | None = None,
    ) -> "Config":
        """Create a new Config with CLI overrides applied.

        Only non-None values override the existing config. The original Config
        is not modified.

        Args:
            host: Override server.host
            port: Override server.port
            base_dir: Override server.base_dir
            content_dir: Override build.content_dir
            output_dir: Override build.output_dir
            link_resolution: Override site.link_resolution
            live_reload_enabled: Override live_reload.enabled

        Returns:
            New Config instance with overrides applied
        """
        server = self.server
        if host is not None or port is not None or base_dir is not None:
            server = replace(
                self.server,
                host=host if host is not None else self.server.host,
                port=port if port is not None else self.server.port,
                base_dir=normalize_base_dir(base_dir) if base_dir is not None else self.server.base_dir,
            )

        build = self.build
        if content_dir is not None or output_dir is not None:
            build = replace(
                self.build,
                content_dir=content_dir if content_dir is not None else self.build.content_dir,
                output_dir=output_dir if output_dir is not None else self.build.output_dir,
            )

        site = self.site
        if link_resolution is not None:
            site = replace(self.site, link_resolution=link_resolution)

        live_reload = self.live_reload
        if live_reload_enabled is not None:
            live_reload = replace(self.live_reload, enabled=live_reload_enabled)

        return replace(
            self,
            site=site,
            build=build,
            server=server,
            live_reload=live_reload,
        )


def normalize_base_dir(base_dir: str) -> str:
    """Normalize a URL prefix to ``/prefix`` form ("" for no prefix)."""
    base_dir = base_dir.strip().rstrip("/")
    if base_dir and not base_dir.startswith("/"):
        base_dir = "/" + base_dir
    return base_dir


def _parse_string_list(value: object, name: str) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"{name} items must be strings")
        items.append(item)
    return items
