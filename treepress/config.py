"""Configuration loading for Treepress.

Two layers of configuration exist:

- ``SiteConfig``: global settings read once from ``site.yaml`` at the project
  root, merged over ``DEFAULT_CONFIG`` and any command-line overrides.
- ``PageConfig``: per-page settings read from the optional ``config`` file in a
  page directory (``key = value`` lines), with defaults derived from the site
  configuration and the page directory itself.

Both are frozen dataclasses. Per-page overrides produce a new value; nothing
mutates shared configuration after startup.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml

from .utils import parse_bool, parse_timestamp, titleize

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "site.yaml"
PAGE_CONFIG_FILENAME = "config"

DEFAULT_CONFIG: dict[str, Any] = {
    "sitename": "Treepress site",
    "scheme": "https",
    "domain": "localhost",
    "baseurl": None,
    "basepath": "",
    "author_name": "",
    "author_email": "",
    "layout": "default.html",
    "view": "default.html",
    "date_format": "%Y-%m-%d",
    "image_pattern": r"png|jpe?g|gif|tiff",
    "sort": "date/desc",
    "log_level": "warning",
    "tag_feed": True,
    "markdown_command": "",
    "jobs": 1,
    "content_dir": "pages",
    "templates_dir": "templates",
    "build_dir": "build",
    "output_dir": "public",
    "deploy_target": "",
    "deploy_command": "rsync",
    "port": 4000,
}

PAGE_CONFIG_KEYS = frozenset(
    {"title", "layout", "view", "date", "keywords", "description", "sort", "feed", "cover"}
)

_CONFIG_LINE_RE = re.compile(r"^\s*(?P<key>[A-Za-z_][\w-]*)\s*(?P<op>[:?+]?=)\s*(?P<value>.*?)\s*$")
_WHITESPACE_RE = re.compile(r"\s+")


class ConfigError(Exception):
    """Error raised for unreadable or invalid configuration.

    Attributes:
        source_path: File the bad value came from, when known.
        message: Human-readable error message.
    """

    def __init__(self, message: str, source_path: Path | None = None):
        self.source_path = source_path
        self.message = message
        prefix = f"{source_path}: " if source_path else ""
        super().__init__(f"{prefix}{message}")


@dataclass(frozen=True)
class SortSpec:
    """Listing order for a page's children: ``title`` or ``date``, ``asc`` or ``desc``."""

    field: str = "date"
    order: str = "desc"

    @classmethod
    def parse(cls, text: str) -> SortSpec:
        """Parse a ``field/order`` specification such as ``title/asc``.

        The order part is optional and defaults to ascending.

        Raises:
            ValueError: If the field or order is not recognised.
        """
        field, _, order = str(text).strip().lower().partition("/")
        order = order or "asc"
        if field not in ("title", "date"):
            raise ValueError(f"unknown sort field {field!r} (expected title or date)")
        if order not in ("asc", "desc"):
            raise ValueError(f"unknown sort order {order!r} (expected asc or desc)")
        return cls(field=field, order=order)

    @property
    def reverse(self) -> bool:
        return self.order == "desc"

    def __str__(self) -> str:
        return f"{self.field}/{self.order}"


@dataclass(frozen=True)
class SiteConfig:
    """Resolved global configuration.

    Attributes:
        project_root: Directory holding ``site.yaml``, content and templates.
        sitename: Human-readable site name (``{{sitename}}``).
        baseurl: Scheme and domain the site is published under (``{{baseurl}}``).
        basepath: Path prefix the site is mounted at, ``""`` or ``/prefix``.
        date_format: strftime pattern for ``{{date}}``.
        image_pattern: Regex alternation of image file extensions.
        sort: Default listing order for pages without their own ``sort``.
        tag_feed: Whether tag indexes get an Atom feed.
        markdown_command: External markdown converter; empty for the built-in one.
        jobs: Number of worker threads for independent page subtrees.
    """

    project_root: Path
    sitename: str
    scheme: str
    domain: str
    baseurl: str
    basepath: str
    author_name: str
    author_email: str
    layout: str
    view: str
    date_format: str
    image_pattern: str
    sort: SortSpec
    log_level: str
    tag_feed: bool
    markdown_command: str
    jobs: int
    content_dir: Path
    templates_dir: Path
    build_dir: Path
    output_dir: Path
    deploy_target: str
    deploy_command: str
    port: int

    @classmethod
    def from_mapping(cls, project_root: Path, raw: dict[str, Any]) -> SiteConfig:
        """Build a SiteConfig from merged raw values.

        Raises:
            ConfigError: If a value has the wrong shape.
        """
        for key in sorted(set(raw) - set(DEFAULT_CONFIG)):
            logger.debug("Ignoring unknown site configuration key %r", key)

        def text(key: str) -> str:
            value = raw.get(key)
            return "" if value is None else str(value).strip()

        def directory(key: str) -> Path:
            value = Path(text(key) or str(DEFAULT_CONFIG[key]))
            return value if value.is_absolute() else project_root / value

        try:
            sort = SortSpec.parse(text("sort") or "date/desc")
            jobs = int(_or_default(raw.get("jobs"), DEFAULT_CONFIG["jobs"]))
            port = int(_or_default(raw.get("port"), DEFAULT_CONFIG["port"]))
            tag_feed = parse_bool(raw.get("tag_feed", True))
        except ValueError as exc:
            raise ConfigError(str(exc), project_root / CONFIG_FILENAME) from exc
        if jobs < 1:
            raise ConfigError("jobs must be at least 1", project_root / CONFIG_FILENAME)

        image_pattern = text("image_pattern") or DEFAULT_CONFIG["image_pattern"]
        try:
            re.compile(image_pattern)
        except re.error as exc:
            raise ConfigError(
                f"invalid image_pattern {image_pattern!r}: {exc}",
                project_root / CONFIG_FILENAME,
            ) from exc

        scheme = text("scheme") or "https"
        domain = text("domain") or "localhost"
        baseurl = (text("baseurl") or f"{scheme}://{domain}").rstrip("/")

        return cls(
            project_root=project_root,
            sitename=text("sitename"),
            scheme=scheme,
            domain=domain,
            baseurl=baseurl,
            basepath=normalize_basepath(text("basepath")),
            author_name=text("author_name"),
            author_email=text("author_email"),
            layout=text("layout") or "default.html",
            view=text("view") or "default.html",
            date_format=text("date_format") or "%Y-%m-%d",
            image_pattern=image_pattern,
            sort=sort,
            log_level=text("log_level") or "warning",
            tag_feed=tag_feed,
            markdown_command=text("markdown_command"),
            jobs=jobs,
            content_dir=directory("content_dir"),
            templates_dir=directory("templates_dir"),
            build_dir=directory("build_dir"),
            output_dir=directory("output_dir"),
            deploy_target=text("deploy_target"),
            deploy_command=text("deploy_command") or "rsync",
            port=port,
        )

    @cached_property
    def image_re(self) -> re.Pattern:
        return re.compile(rf"\.(?:{self.image_pattern})$", re.IGNORECASE)

    def render_settings(self) -> dict[str, str]:
        """Settings that influence rendered output, for artifact fingerprints."""
        return {
            "sitename": self.sitename,
            "baseurl": self.baseurl,
            "basepath": self.basepath,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "date_format": self.date_format,
        }


@dataclass(frozen=True)
class PageConfig:
    """Resolved per-page configuration.

    Attributes:
        title: Page title, plain text.
        layout: Layout template name.
        view: View template name used for this page's listing entries.
        timestamp: Page date as epoch seconds (UTC).
        keywords: Keyword list.
        description: Whitespace-collapsed description, plain text.
        sort: Listing order for this page's children.
        feed: Whether the page publishes an Atom feed of its children.
        cover: Configured cover image path, ``""`` when not configured.
    """

    title: str
    layout: str
    view: str
    timestamp: int
    keywords: tuple[str, ...] = ()
    description: str = ""
    sort: SortSpec = SortSpec()
    feed: bool = False
    cover: str = ""

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["sort"] = str(self.sort)
        data["keywords"] = list(self.keywords)
        return data


def _or_default(value: Any, default: Any) -> Any:
    return default if value is None or value == "" else value


def normalize_basepath(value: str) -> str:
    """Normalise a base path to ``""`` or ``/segment[/segment]`` without a trailing slash."""
    stripped = value.strip().strip("/")
    return f"/{stripped}" if stripped else ""


def sanitize(value: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", value).strip()


def load_site_config(
    project_root: Path, overrides: dict[str, Any] | None = None
) -> SiteConfig:
    """Load site configuration from site.yaml.

    Args:
        project_root: Root directory of the project.
        overrides: Values taking precedence over the file (``None`` values are ignored).

    Returns:
        The resolved SiteConfig.

    Raises:
        ConfigError: If the file is not a YAML mapping or holds invalid values.
    """
    config_path = project_root / CONFIG_FILENAME
    raw = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"invalid YAML: {exc}", config_path) from exc
        if not isinstance(loaded, dict):
            raise ConfigError("expected a mapping of settings", config_path)
        raw.update(loaded)
    if overrides:
        raw.update({k: v for k, v in overrides.items() if v is not None})
    return SiteConfig.from_mapping(project_root, raw)


def parse_config_text(text: str) -> dict[str, str]:
    """Parse ``key = value`` lines.

    ``=`` and ``:=`` assign, ``?=`` assigns only when the key is still unset
    and ``+=`` appends to the current value with a single space. ``#`` starts
    a comment line, blank lines are skipped and matching surrounding quotes
    are removed.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _CONFIG_LINE_RE.match(line)
        if not match:
            logger.warning("Ignoring malformed configuration line: %r", line)
            continue
        key = match.group("key").lower()
        value = match.group("value")
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        operator = match.group("op")
        if operator == "?=" and key in values:
            continue
        if operator == "+=" and values.get(key):
            value = f"{values[key]} {value}" if value else values[key]
        values[key] = value
    return values


def read_config_file(path: Path) -> dict[str, str]:
    """Read a page ``config`` file; a missing file is an empty configuration."""
    if not path.is_file():
        return {}
    return parse_config_text(path.read_text(encoding="utf-8"))


def resolve_page_config(
    page_dir: Path, site: SiteConfig, raw: dict[str, str] | None = None
) -> PageConfig:
    """Apply defaults to a page's raw configuration.

    Args:
        page_dir: The page directory (used for title and date defaults).
        site: Global configuration providing layout/view/sort defaults.
        raw: Raw values; read from ``page_dir/config`` when omitted.

    Raises:
        ConfigError: If a date, sort or feed value cannot be interpreted.
    """
    config_path = page_dir / PAGE_CONFIG_FILENAME
    if raw is None:
        raw = read_config_file(config_path)
    for key in sorted(set(raw) - PAGE_CONFIG_KEYS):
        logger.warning("%s: unknown page configuration key %r", config_path, key)

    try:
        timestamp = (
            parse_timestamp(raw["date"])
            if raw.get("date", "").strip()
            else int(page_dir.stat().st_mtime)
        )
        sort = SortSpec.parse(raw["sort"]) if raw.get("sort", "").strip() else site.sort
        feed = parse_bool(raw.get("feed", ""))
    except ValueError as exc:
        raise ConfigError(str(exc), config_path) from exc

    keywords = tuple(
        sanitize(word) for word in raw.get("keywords", "").split(",") if word.strip()
    )
    return PageConfig(
        title=sanitize(raw.get("title", "")) or titleize(page_dir.name),
        layout=raw.get("layout", "").strip() or site.layout,
        view=raw.get("view", "").strip() or site.view,
        timestamp=timestamp,
        keywords=keywords,
        description=sanitize(raw.get("description", "")),
        sort=sort,
        feed=feed,
        cover=raw.get("cover", "").strip(),
    )
