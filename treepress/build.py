"""Site building for Treepress.

This module ties the components together. A build:

1. loads ``site.yaml`` and scans the content tree;
2. resolves every page's configuration;
3. builds the page tree bottom-up through ``PageBuildEngine``;
4. once the whole tree is current, groups pages by tag and builds the tag
   indexes;
5. publishes documents, feeds and page files into the output tree.

Every step is incremental, so running a build twice without source changes
rebuilds and rewrites nothing.

Key functions:
- build_site: Main function to build the entire site.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .artifacts import ArtifactStore, BuildError, BuildStats
from .collections import TagCollection
from .config import SiteConfig, load_site_config
from .content import Page, load_page_configs, scan_pages
from .engine import PageBuildEngine
from .protocols import MarkdownConverter
from .publish import Publisher
from .renderers import create_converter
from .tags import TagIndexBuilder, collect_tags
from .templates import TemplateStore

__all__ = ["BuildError", "BuildResult", "build_site"]

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        site: Configuration the site was built with.
        root: Root page of the scanned tree.
        tags: Tag groupings.
        output_dir: Directory the site was published into.
        stats: Rebuilt and skipped artifact counts.
        published: Number of output files written.
    """

    site: SiteConfig
    root: Page
    tags: TagCollection
    output_dir: Path
    stats: BuildStats
    published: int

    @property
    def page_count(self) -> int:
        return sum(1 for _ in self.root.walk())


def build_site(
    project_root: Path,
    overrides: dict[str, Any] | None = None,
    converter: MarkdownConverter | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        overrides: Configuration values taking precedence over ``site.yaml``.
        converter: Markdown converter; chosen from the configuration when omitted.

    Returns:
        BuildResult describing the built tree and what was done.

    Raises:
        ConfigError: If the configuration is invalid.
        ScanError: If the content tree is inconsistent.
        BuildError: If an artifact of any page or tag index fails.
    """
    started = time.monotonic()
    site = load_site_config(project_root, overrides)
    root = scan_pages(site)
    configs = load_page_configs(root, site)

    store = ArtifactStore(site.build_dir)
    stats = BuildStats()
    templates = TemplateStore(site.templates_dir)
    engine = PageBuildEngine(
        site,
        configs,
        templates,
        converter or create_converter(site),
        store,
        stats,
    )
    engine.build(root)

    tags = collect_tags(root, store, engine.metadata)
    TagIndexBuilder(site, configs, templates, store, stats).build(root, tags)

    published = Publisher(site, site.build_dir, site.output_dir).publish(root, tags)
    logger.info(
        "Built %s: %d artifact(s) rebuilt, %d current, %d file(s) published in %.2fs",
        site.sitename,
        len(stats.rebuilt),
        stats.skipped,
        published,
        time.monotonic() - started,
    )
    return BuildResult(
        site=site,
        root=root,
        tags=tags,
        output_dir=site.output_dir,
        stats=stats,
        published=published,
    )
