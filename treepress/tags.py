"""Tag indexes for Treepress.

Pages declare tags in a ``tags`` file, one label per line. Each label is
normalised to a slug; every slug gets an index page under ``/tags/<slug>/``
listing the declaring pages, and ``/tags/`` lists every tag.

Tag indexes can only be computed once the whole page tree has been built,
since membership spans the tree. They live in the build area under
``tags/<slug>/`` and follow the same incremental rules as page artifacts: an
index whose membership snapshot did not change is skipped.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from .artifacts import (
    CONTENT_ARTIFACT,
    DECLARED_TAGS_ARTIFACT,
    DOCUMENT_ARTIFACT,
    FEED_ARTIFACT,
    LISTING_ARTIFACT,
    ArtifactRules,
    ArtifactStore,
    BuildStats,
    Fingerprint,
)
from .collections import RecordCollection, Tag, TagCollection
from .config import PageConfig, SiteConfig, SortSpec
from .content import TAG_INDEX_PREFIX, Page
from .feeds import AtomFeedGenerator, feed_entries, feed_info
from .fragments import document_values, entry_values, render_breadcrumbs, render_head
from .html_utils import site_url
from .metadata import MetadataRecord, MetadataStore
from .templates import Template, TemplateStore, render_document, render_listing
from .utils import remove_tree, slugify

logger = logging.getLogger(__name__)

TAG_INDEX_PATH = f"/{TAG_INDEX_PREFIX}/"


def parse_tags(text: str) -> list[tuple[str, str]]:
    """Parse a tags file into ``(slug, label)`` pairs.

    Blank lines and labels without any alphanumeric character are ignored.
    A slug declared twice keeps its first label.

    Args:
        text: Contents of a ``tags`` file.

    Returns:
        Pairs in declaration order.
    """
    pairs: list[tuple[str, str]] = []
    seen: set[str] = set()
    for line in text.splitlines():
        label = " ".join(line.split())
        slug = slugify(label)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        pairs.append((slug, label))
    return pairs


def collect_tags(root: Page, store: ArtifactStore, metadata: MetadataStore) -> TagCollection:
    """Group every built page by the tags it declared.

    Reads each page's ``tags.json`` and ``metadata.json`` from the build
    area, so it must run after the whole tree has been built.

    Args:
        root: Root page of the built tree.
        store: Artifact store holding the declarations.
        metadata: Metadata store holding the records.

    Returns:
        Tags keyed by slug. The label of a tag is the first spelling met in
        pre-order; members keep tree order.
    """
    tags: dict[str, Tag] = {}
    for page in root.walk():
        declared = json.loads(store.read(page.build_key, DECLARED_TAGS_ARTIFACT))
        if not declared:
            continue
        record = metadata.read(page.build_key)
        for slug, label in declared:
            tag = tags.setdefault(slug, Tag(slug, label))
            tag.records.append(record)
    return TagCollection(tags.values())


class TagIndexBuilder(ArtifactRules):
    """Builds the per-tag indexes and the index of all tags.

    Tag documents use the site's default layout and view, the root page's
    head assets, and a breadcrumb leading back to the root.

    Attributes:
        site: Global configuration.
        configs: Resolved page configurations (for the root title).
        templates: Layout and view templates.
    """

    def __init__(
        self,
        site: SiteConfig,
        configs: dict[str, PageConfig],
        templates: TemplateStore,
        store: ArtifactStore,
        stats: BuildStats | None = None,
    ):
        super().__init__(store, stats)
        self.site = site
        self.configs = configs
        self.templates = templates
        self.feed_generator = AtomFeedGenerator()

    def build(self, root: Page, tags: TagCollection) -> None:
        """Make every tag index current and drop indexes of vanished tags.

        Raises:
            BuildError: If a tag artifact fails.
        """
        tags_dir = self.store.dir_for(TAG_INDEX_PREFIX)
        if not tags:
            if remove_tree(tags_dir):
                logger.info("Removed tag indexes; no page declares tags")
            return

        self._prune(tags)
        for tag in tags.values():
            self._build_tag(root, tag)
        self._build_overview(root, tags)

    def _prune(self, tags: TagCollection) -> None:
        tags_dir = self.store.dir_for(TAG_INDEX_PREFIX)
        if not tags_dir.is_dir():
            return
        for entry in sorted(tags_dir.iterdir()):
            if entry.is_dir() and entry.name not in tags:
                logger.info("Removing index of vanished tag %s", entry.name)
                remove_tree(entry)

    def _build_tag(self, root: Page, tag: Tag) -> None:
        key = f"{TAG_INDEX_PREFIX}/{tag.slug}"
        title = f"Tag: {tag.label}"
        feed_href = (
            site_url(self.site.basepath, f"{tag.path}{FEED_ARTIFACT}") if self.site.tag_feed else ""
        )
        try:
            view = self._view(tag.path)
            listing = self._listing(
                key, tag.path, view, tag.pages.sorted_by(self.site.sort), tag.label
            )
            self._document(
                key,
                tag.path,
                root,
                title,
                max(record.timestamp for record in tag.records),
                listing,
                feed_href,
                tag.label,
            )
            if self.site.tag_feed:
                self._feed(key, tag, title)
            elif self.store.discard(key, FEED_ARTIFACT):
                logger.info("Removed feed of %s", tag.path)
        finally:
            self.store.flush(key)

    def _build_overview(self, root: Page, tags: TagCollection) -> None:
        records = [
            MetadataRecord(
                title=tag.label,
                timestamp=max(record.timestamp for record in tag.records),
                description=_count_label(len(tag.records)),
                path=tag.path,
            )
            for tag in tags.values()
        ]
        try:
            view = self._view(TAG_INDEX_PATH)
            listing = self._listing(
                TAG_INDEX_PREFIX,
                TAG_INDEX_PATH,
                view,
                RecordCollection(records).sorted_by(SortSpec("title", "asc")),
            )
            self._document(
                TAG_INDEX_PREFIX,
                TAG_INDEX_PATH,
                root,
                "Tags",
                max(record.timestamp for record in records),
                listing,
            )
        finally:
            self.store.flush(TAG_INDEX_PREFIX)

    def _view(self, owner: str) -> Template:
        with self.failure_context(owner, LISTING_ARTIFACT):
            return self.templates.view(self.site.view)

    def _listing(
        self,
        key: str,
        owner: str,
        view: Template,
        records: Iterable[MetadataRecord],
        tag: str = "",
    ) -> str:
        records = list(records)
        fingerprint = (
            Fingerprint("tag-listing")
            .add_value("view", [view.name, view.digest])
            .add_value("site", self.site.render_settings())
            .add_value("tag", tag)
            .add_value("members", [record.to_json() for record in records])
        )
        return self.produce(
            key,
            owner,
            LISTING_ARTIFACT,
            fingerprint,
            lambda: render_listing(
                view, (entry_values(self.site, record, tag=tag) for record in records)
            ),
        )

    def _document(
        self,
        key: str,
        owner: str,
        root: Page,
        title: str,
        timestamp: int,
        listing: str,
        feed_href: str = "",
        tag: str = "",
    ) -> str:
        with self.failure_context(owner, DOCUMENT_ARTIFACT):
            layout = self.templates.layout(self.site.layout)
            root_title = self.configs[root.path].title
            fragments = {
                "head": render_head([root], self.site.basepath, feed_href, title),
                "breadcrumbs": render_breadcrumbs([(root_title, root.path)], self.site.basepath),
                "tags": "",
                "content": "",
                "pages": listing,
            }
            values = document_values(
                self.site,
                owner,
                title,
                timestamp,
                keywords=(tag,) if tag else (),
                description=title,
                tag=tag,
            )
            fingerprint = (
                Fingerprint("tag-document")
                .add_value("layout", [layout.name, layout.digest])
                .add_value("values", values)
            )
            for name in sorted(fragments):
                fingerprint.add_text(f"fragment:{name}", fragments[name])
            return self.produce(
                key,
                owner,
                DOCUMENT_ARTIFACT,
                fingerprint,
                lambda: render_document(layout, values, fragments),
            )

    def _feed(self, key: str, tag: Tag, title: str) -> None:
        with self.failure_context(tag.path, FEED_ARTIFACT):
            contents = {
                record.path: self.store.read(record.path.strip("/"), CONTENT_ARTIFACT)
                for record in tag.records
            }
            fingerprint = (
                Fingerprint("tag-feed")
                .add_value("title", title)
                .add_value("site", self.site.render_settings())
                .add_value("members", [record.to_json() for record in tag.records])
                .add_value("contents", contents)
            )
            info = feed_info(self.site, title, tag.path)
            self.produce(
                key,
                tag.path,
                FEED_ARTIFACT,
                fingerprint,
                lambda: self.feed_generator.generate(
                    info, feed_entries(self.site, tag.pages.latest(), contents)
                ),
            )


def _count_label(count: int) -> str:
    return f"{count} page" if count == 1 else f"{count} pages"
