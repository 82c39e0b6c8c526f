"""Publication of built pages into the output tree.

The output tree mirrors site paths: the page ``/blog/post/`` is published as
``public/blog/post/index.html`` next to its images, scripts, styles, icon,
cover and reserved ``assets/`` files. Tag indexes land under ``public/tags/``.

Files are only rewritten when their bytes differ, through a temporary file
and a rename, so an unchanged site leaves the output tree untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from .artifacts import DOCUMENT_ARTIFACT, FEED_ARTIFACT
from .collections import TagCollection
from .config import SiteConfig
from .content import TAG_INDEX_PREFIX, Page
from .utils import remove_tree, write_if_changed

logger = logging.getLogger(__name__)


class Publisher:
    """Copies documents, feeds and page files into the output tree.

    Attributes:
        site: Global configuration.
        build_dir: Build area holding the documents.
        output_dir: Publication root.
    """

    def __init__(self, site: SiteConfig, build_dir: Path, output_dir: Path):
        self.site = site
        self.build_dir = build_dir
        self.output_dir = output_dir

    def publish(self, root: Page, tags: TagCollection) -> int:
        """Publish every page and tag index.

        Args:
            root: Root page of the built tree.
            tags: Tag groupings from the same build.

        Returns:
            Number of files written.
        """
        written = 0
        for page in root.walk():
            written += self._publish_page(page)
        written += self._publish_tags(tags)
        if written:
            logger.info("Published %d file(s) into %s", written, self.output_dir)
        else:
            logger.info("Output %s is up to date", self.output_dir)
        return written

    def _publish_page(self, page: Page) -> int:
        source = self.build_dir / page.build_key
        target = self.output_dir / page.build_key
        written = self._copy(source / DOCUMENT_ARTIFACT, target / DOCUMENT_ARTIFACT)
        written += self._copy_optional(source / FEED_ARTIFACT, target / FEED_ARTIFACT)
        for path in _page_files(page):
            written += self._copy(path, target / path.name)
        if page.assets_dir is not None:
            for path in sorted(page.assets_dir.rglob("*")):
                if path.is_file():
                    written += self._copy(path, target / path.relative_to(page.source_dir))
        return written

    def _publish_tags(self, tags: TagCollection) -> int:
        source = self.build_dir / TAG_INDEX_PREFIX
        target = self.output_dir / TAG_INDEX_PREFIX
        if not tags:
            remove_tree(target)
            return 0
        if target.is_dir():
            for entry in sorted(target.iterdir()):
                if entry.is_dir() and entry.name not in tags:
                    remove_tree(entry)
        written = self._copy(source / DOCUMENT_ARTIFACT, target / DOCUMENT_ARTIFACT)
        for slug in tags:
            written += self._copy(source / slug / DOCUMENT_ARTIFACT, target / slug / DOCUMENT_ARTIFACT)
            written += self._copy_optional(source / slug / FEED_ARTIFACT, target / slug / FEED_ARTIFACT)
        return written

    def _copy_optional(self, source: Path, target: Path) -> int:
        """Copy ``source`` if it exists, otherwise remove a stale ``target``."""
        if source.is_file():
            return self._copy(source, target)
        if target.is_file():
            logger.info("Removing %s", target)
            target.unlink()
        return 0

    def _copy(self, source: Path, target: Path) -> int:
        if write_if_changed(target, source.read_bytes()):
            logger.debug("Wrote %s", target)
            return 1
        return 0


def _page_files(page: Page) -> Iterator[Path]:
    yield from page.images
    yield from page.scripts
    yield from page.styles
    if page.icon is not None:
        yield page.icon
    if page.cover is not None:
        yield page.cover


def clean(site: SiteConfig) -> list[Path]:
    """Remove the build area and the output tree.

    Returns:
        The directories that existed and were removed.
    """
    removed = []
    for directory in (site.build_dir, site.output_dir):
        if remove_tree(directory):
            logger.info("Removed %s", directory)
            removed.append(directory)
    return removed
