"""Incremental page build engine for Treepress.

``PageBuildEngine.build(page)`` makes every artifact of a page current:

1. each child page is built first (leaves before parents), yielding the
   children's metadata records;
2. the page's own artifacts are then produced in dependency order::

       md/<file>.html  (one per markdown file)
       content.html    <- images, md/*.html, raw HTML bodies
       head.html       <- scripts/styles/icon of the ancestor chain, feed flag
       breadcrumbs.html<- ancestors' titles and paths
       tags.json       <- tags file
       tags.html       <- tags.json
       metadata.json   <- page config, breadcrumbs.html, cover
       pages.html      <- children's metadata.json, view template, sort spec
       index.html      <- layout, scalar values, the five fragments
       feed.atom       <- children's metadata.json and content.html

Each artifact is recomputed only when the fingerprint of its inputs changed
(see ``artifacts``). Parents only ever read their children's metadata records
and, for feeds, content fragments.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor

from .artifacts import (
    BADGES_ARTIFACT,
    BREADCRUMBS_ARTIFACT,
    CONTENT_ARTIFACT,
    DECLARED_TAGS_ARTIFACT,
    DOCUMENT_ARTIFACT,
    FEED_ARTIFACT,
    HEAD_ARTIFACT,
    LISTING_ARTIFACT,
    MD_PREFIX,
    ArtifactRules,
    ArtifactStore,
    BuildError,
    BuildStats,
    Fingerprint,
)
from .collections import RecordCollection
from .config import PageConfig, SiteConfig
from .content import Page
from .feeds import AtomFeedGenerator, feed_entries, feed_info
from .fragments import (
    cover_src,
    entry_values,
    page_values,
    render_breadcrumbs,
    render_content,
    render_cover,
    render_head,
    render_tag_badges,
)
from .html_utils import site_url
from .metadata import METADATA_ARTIFACT, MetadataRecord, MetadataStore
from .protocols import MarkdownConverter
from .tags import parse_tags
from .templates import TemplateStore, render_document, render_listing

__all__ = ["BuildError", "PageBuildEngine"]

logger = logging.getLogger(__name__)


class PageBuildEngine(ArtifactRules):
    """Builds the artifacts of a page tree incrementally.

    Attributes:
        site: Global configuration.
        configs: Resolved PageConfig of every page, keyed by page path.
        templates: Layout and view templates.
        converter: Markdown converter.
        metadata: Reader for children's metadata records.
    """

    def __init__(
        self,
        site: SiteConfig,
        configs: dict[str, PageConfig],
        templates: TemplateStore,
        converter: MarkdownConverter,
        store: ArtifactStore,
        stats: BuildStats | None = None,
    ):
        super().__init__(store, stats)
        self.site = site
        self.configs = configs
        self.templates = templates
        self.converter = converter
        self.metadata = MetadataStore(store.build_dir)
        self.feed_generator = AtomFeedGenerator()

    def build(self, page: Page) -> MetadataRecord:
        """Make every artifact of ``page`` and its descendants current.

        Args:
            page: Page to build.

        Returns:
            The page's metadata record.

        Raises:
            BuildError: If any artifact of the page or a descendant fails.
        """
        children = self._build_children(page)
        return self._build_page(page, children)

    def _build_children(self, page: Page) -> list[MetadataRecord]:
        # Sibling subtrees share no artifacts, so the root's children may be
        # built on worker threads; deeper levels stay on the calling thread.
        if page.is_root and self.site.jobs > 1 and len(page.children) > 1:
            with ThreadPoolExecutor(max_workers=self.site.jobs) as pool:
                return list(pool.map(self.build, page.children))
        return [self.build(child) for child in page.children]

    def _build_page(self, page: Page, children: list[MetadataRecord]) -> MetadataRecord:
        config = self.configs[page.path]
        logger.info("Building %s", page.path)
        try:
            content = self._content(page, self._markdown(page))
            head = self._head(page, config)
            breadcrumbs = self._breadcrumbs(page)
            badges = self._badges(page, self._declared_tags(page))
            record_text = self._metadata(page, config, breadcrumbs)
            listing = self._listing(page, config, children)
            record = MetadataRecord.from_json(record_text)
            self._document(
                page,
                config,
                record,
                {
                    "head": head,
                    "breadcrumbs": breadcrumbs,
                    "tags": badges,
                    "content": content,
                    "pages": listing,
                },
            )
            self._feed(page, config, children)
        finally:
            self.store.flush(page.build_key)
        return record

    def _markdown(self, page: Page) -> list[str]:
        """Convert each markdown file; returns artifact names in body order."""
        key = page.build_key
        names: list[str] = []
        for source in page.markdown:
            name = f"{MD_PREFIX}{source.name}.html"
            names.append(name)
            with self.failure_context(page.path, name):
                fingerprint = (
                    Fingerprint("markdown")
                    .add_value("converter", self.converter.name)
                    .add_file("source", source)
                )
                self.produce(
                    key,
                    page.path,
                    name,
                    fingerprint,
                    lambda source=source: self.converter.convert(
                        source.read_text(encoding="utf-8"), source
                    ),
                )
        self.store.prune(key, MD_PREFIX, names)
        return names

    def _content(self, page: Page, markdown_names: list[str]) -> str:
        key = page.build_key
        with self.failure_context(page.path, CONTENT_ARTIFACT):
            converted = dict(zip((p.name for p in page.markdown), markdown_names))
            bodies: list[tuple[str, str]] = []
            for source in page.body_files:
                if source.name in converted:
                    bodies.append((source.name, self.store.read(key, converted[source.name])))
                else:
                    bodies.append((source.name, source.read_text(encoding="utf-8")))
            images = [image.name for image in page.images]
            fingerprint = (
                Fingerprint("content")
                .add_value("path", page.path)
                .add_value("basepath", self.site.basepath)
                .add_value("images", images)
                .add_value("bodies", [name for name, _ in bodies])
            )
            for name, text in bodies:
                fingerprint.add_text(f"body:{name}", text)
            return self.produce(
                key,
                page.path,
                CONTENT_ARTIFACT,
                fingerprint,
                lambda: render_content(
                    page.path, self.site.basepath, images, (text for _, text in bodies)
                ),
            )

    def _head(self, page: Page, config: PageConfig) -> str:
        chain = [*page.ancestors(), page]
        feed_href = (
            site_url(self.site.basepath, f"{page.path}{FEED_ARTIFACT}") if config.feed else ""
        )
        fingerprint = (
            Fingerprint("head")
            .add_value("basepath", self.site.basepath)
            .add_value(
                "assets",
                [
                    [
                        node.path,
                        [p.name for p in node.styles],
                        [p.name for p in node.scripts],
                        node.icon.name if node.icon else None,
                    ]
                    for node in chain
                ],
            )
            .add_value("feed", [feed_href, config.title])
        )
        return self.produce(
            page.build_key,
            page.path,
            HEAD_ARTIFACT,
            fingerprint,
            lambda: render_head(chain, self.site.basepath, feed_href, config.title),
        )

    def _breadcrumbs(self, page: Page) -> str:
        trail = [(self.configs[node.path].title, node.path) for node in page.ancestors()]
        fingerprint = (
            Fingerprint("breadcrumbs")
            .add_value("basepath", self.site.basepath)
            .add_value("trail", trail)
        )
        return self.produce(
            page.build_key,
            page.path,
            BREADCRUMBS_ARTIFACT,
            fingerprint,
            lambda: render_breadcrumbs(trail, self.site.basepath),
        )

    def _declared_tags(self, page: Page) -> list[tuple[str, str]]:
        fingerprint = Fingerprint("declared-tags").add_file("tags", page.tags_file)

        def render() -> str:
            text = (
                page.tags_file.read_text(encoding="utf-8") if page.tags_file.is_file() else ""
            )
            declared = [list(pair) for pair in parse_tags(text)]
            return json.dumps(declared, ensure_ascii=False) + "\n"

        text = self.produce(
            page.build_key, page.path, DECLARED_TAGS_ARTIFACT, fingerprint, render
        )
        return [(slug, label) for slug, label in json.loads(text)]

    def _badges(self, page: Page, declared: list[tuple[str, str]]) -> str:
        fingerprint = (
            Fingerprint("badges")
            .add_value("basepath", self.site.basepath)
            .add_value("declared", declared)
        )
        return self.produce(
            page.build_key,
            page.path,
            BADGES_ARTIFACT,
            fingerprint,
            lambda: render_tag_badges(declared, self.site.basepath),
        )

    def _metadata(self, page: Page, config: PageConfig, breadcrumbs: str) -> str:
        cover = cover_src(page, config, self.site.basepath)
        fingerprint = (
            Fingerprint("metadata")
            .add_value("path", page.path)
            .add_value("config", config.as_dict())
            .add_value("cover", cover)
            .add_text("breadcrumbs", breadcrumbs)
        )

        def render() -> str:
            record = MetadataRecord(
                title=config.title,
                timestamp=config.timestamp,
                description=config.description,
                path=page.path,
                breadcrumbs=breadcrumbs,
                cover=render_cover(cover, config.title),
            )
            return record.to_json()

        return self.produce(page.build_key, page.path, METADATA_ARTIFACT, fingerprint, render)

    def _listing(
        self, page: Page, config: PageConfig, children: list[MetadataRecord]
    ) -> str:
        with self.failure_context(page.path, LISTING_ARTIFACT):
            view = self.templates.view(config.view)
            fingerprint = (
                Fingerprint("listing")
                .add_value("view", [view.name, view.digest])
                .add_value("sort", str(config.sort))
                .add_value("site", self.site.render_settings())
                .add_value("children", [child.to_json() for child in children])
            )
            return self.produce(
                page.build_key,
                page.path,
                LISTING_ARTIFACT,
                fingerprint,
                lambda: render_listing(
                    view,
                    (
                        entry_values(self.site, record)
                        for record in RecordCollection(children).sorted_by(config.sort)
                    ),
                ),
            )

    def _document(
        self,
        page: Page,
        config: PageConfig,
        record: MetadataRecord,
        fragments: dict[str, str],
    ) -> str:
        with self.failure_context(page.path, DOCUMENT_ARTIFACT):
            layout = self.templates.layout(config.layout)
            values = page_values(self.site, page, config, record.cover)
            fingerprint = (
                Fingerprint("document")
                .add_value("layout", [layout.name, layout.digest])
                .add_value("values", values)
            )
            for name in sorted(fragments):
                fingerprint.add_text(f"fragment:{name}", fragments[name])
            return self.produce(
                page.build_key,
                page.path,
                DOCUMENT_ARTIFACT,
                fingerprint,
                lambda: render_document(layout, values, fragments),
            )

    def _feed(self, page: Page, config: PageConfig, children: list[MetadataRecord]) -> None:
        key = page.build_key
        if not config.feed:
            if self.store.discard(key, FEED_ARTIFACT):
                logger.info("Removed feed of %s", page.path)
            return
        with self.failure_context(page.path, FEED_ARTIFACT):
            contents = {
                child.path: self.store.read(child.build_key, CONTENT_ARTIFACT)
                for child in page.children
            }
            fingerprint = (
                Fingerprint("feed")
                .add_value("title", config.title)
                .add_value("site", self.site.render_settings())
                .add_value("children", [record.to_json() for record in children])
                .add_value("contents", contents)
            )
            info = feed_info(self.site, config.title, page.path)
            self.produce(
                key,
                page.path,
                FEED_ARTIFACT,
                fingerprint,
                lambda: self.feed_generator.generate(
                    info, feed_entries(self.site, RecordCollection(children).latest(), contents)
                ),
            )
