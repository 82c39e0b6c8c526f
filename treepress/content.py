"""Page tree scanning for Treepress.

This module discovers pages under the content root. Every directory is a page
(except hidden directories and the reserved ``assets`` directory); its files
are sorted into roles: markdown and HTML bodies, images, scripts, styles, the
icon, the cover and the optional ``config`` and ``tags`` files.

Key classes:
- Page: A node of the content tree with its discovered files.
- PageTreeScanner: Walks the content root and builds the Page tree.

Functions:
- scan_pages: Convenience wrapper around PageTreeScanner.
- load_page_configs: Resolve every page's PageConfig in one top-down pass.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from .config import PAGE_CONFIG_FILENAME, PageConfig, SiteConfig, resolve_page_config

logger = logging.getLogger(__name__)

RESERVED_DIR = "assets"
TAGS_FILENAME = "tags"
TAG_INDEX_PREFIX = "tags"

_ICON_RE = re.compile(r"^favicon\.[^.]+$", re.IGNORECASE)
_COVER_RE = re.compile(r"^cover\.[^.]+$", re.IGNORECASE)


class ScanError(Exception):
    """Structural problem in the content tree.

    Attributes:
        source_path: Directory where the problem was found.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


@dataclass(eq=False)
class Page:
    """A content page: one directory of the content tree.

    Attributes:
        source_dir: The page directory.
        path: Site path of the page, ``/`` for the root or ``/a/b/``.
        parent: Enclosing page, None for the root.
        children: Child pages in discovery (sorted name) order.
        markdown: Markdown body files.
        html: Raw HTML body files.
        images: Image files shown at the top of the content.
        scripts: ``*.js`` files, inherited by descendants.
        styles: ``*.css`` files, inherited by descendants.
        icon: ``favicon.*`` file, if any.
        cover: ``cover.*`` file, if any.
        assets_dir: Reserved ``assets/`` directory, if any.
    """

    source_dir: Path
    path: str
    parent: Page | None = None
    children: list[Page] = field(default_factory=list)
    markdown: list[Path] = field(default_factory=list)
    html: list[Path] = field(default_factory=list)
    images: list[Path] = field(default_factory=list)
    scripts: list[Path] = field(default_factory=list)
    styles: list[Path] = field(default_factory=list)
    icon: Path | None = None
    cover: Path | None = None
    assets_dir: Path | None = None

    @property
    def name(self) -> str:
        return self.source_dir.name

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def config_file(self) -> Path:
        return self.source_dir / PAGE_CONFIG_FILENAME

    @property
    def tags_file(self) -> Path:
        return self.source_dir / TAGS_FILENAME

    @property
    def build_key(self) -> str:
        """Relative directory of the page in the build and output trees (``""`` for the root)."""
        return self.path.strip("/")

    @property
    def body_files(self) -> list[Path]:
        """Markdown and HTML bodies in listing order."""
        return sorted(self.markdown + self.html, key=lambda p: p.name)

    def ancestors(self) -> list[Page]:
        """Ancestors from the root down to the parent."""
        chain: list[Page] = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        chain.reverse()
        return chain

    def walk(self) -> Iterator[Page]:
        """Yield this page and all descendants, parents before children."""
        yield self
        for child in self.children:
            yield from child.walk()

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Page({self.path!r}, {len(self.children)} children)"


class PageTreeScanner:
    """Walks the content root and builds the Page tree.

    Attributes:
        content_dir: Root of the content tree; it is the root page.
        image_re: Compiled pattern matching image filenames.
    """

    def __init__(self, content_dir: Path, image_re: re.Pattern):
        self.content_dir = content_dir
        self.image_re = image_re

    def scan(self) -> Page:
        """Scan the content tree.

        Returns:
            The root Page.

        Raises:
            ScanError: If the content root is missing or the tree is inconsistent.
        """
        if not self.content_dir.is_dir():
            raise ScanError(self.content_dir, "content directory not found")
        root = self._scan_dir(self.content_dir, "/", None)
        for child in root.children:
            if child.name == TAG_INDEX_PREFIX:
                raise ScanError(
                    child.source_dir,
                    f"a top-level page named {TAG_INDEX_PREFIX!r} collides with the tag index",
                )
        return root

    def _scan_dir(self, directory: Path, path: str, parent: Page | None) -> Page:
        page = Page(source_dir=directory, path=path, parent=parent)
        subdirs: list[Path] = []
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                if entry.name == RESERVED_DIR:
                    page.assets_dir = entry
                else:
                    subdirs.append(entry)
                continue
            self._classify(page, entry)

        seen: dict[str, Path] = {}
        for subdir in subdirs:
            folded = subdir.name.casefold()
            if folded in seen:
                raise ScanError(
                    directory,
                    f"sibling pages {seen[folded].name!r} and {subdir.name!r} differ only by case",
                )
            seen[folded] = subdir
            page.children.append(self._scan_dir(subdir, f"{path}{subdir.name}/", page))
        logger.debug("Scanned %s (%d children)", path, len(page.children))
        return page

    def _classify(self, page: Page, entry: Path) -> None:
        name = entry.name
        suffix = entry.suffix.lower()
        if name in (PAGE_CONFIG_FILENAME, TAGS_FILENAME):
            return
        if _ICON_RE.match(name):
            page.icon = entry
        elif _COVER_RE.match(name) and self.image_re.search(name):
            page.cover = entry
        elif suffix == ".md":
            page.markdown.append(entry)
        elif suffix == ".html":
            page.html.append(entry)
        elif suffix == ".js":
            page.scripts.append(entry)
        elif suffix == ".css":
            page.styles.append(entry)
        elif self.image_re.search(name):
            page.images.append(entry)


def scan_pages(site: SiteConfig) -> Page:
    """Scan the configured content directory and return the root page."""
    return PageTreeScanner(site.content_dir, site.image_re).scan()


def load_page_configs(root: Page, site: SiteConfig) -> dict[str, PageConfig]:
    """Resolve every page's configuration, keyed by page path.

    Resolution is cheap and independent per page, so it runs once for the whole
    tree before any artifact is built; breadcrumbs and head inheritance read
    ancestors' settings from here.
    """
    return {page.path: resolve_page_config(page.source_dir, site) for page in root.walk()}
