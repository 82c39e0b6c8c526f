"""Feed generation for Treepress.

This module produces the Atom documents published as ``feed.atom`` next to the
index of every feed-enabled page or tag. A feed lists the owner's children,
most recent first, with each child's rendered content fragment as the entry
body.

The module keeps the generator behind a small abstract base class so further
feed formats could be added without touching the build engine.

Classes:
    FeedInfo: Feed-level fields.
    FeedEntry: One listed child.
    FeedGenerator: Abstract base for feed generators.
    AtomFeedGenerator: Generates Atom 1.0 documents.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from .artifacts import FEED_ARTIFACT
from .config import SiteConfig
from .fragments import absolute_url
from .html_utils import escape_html
from .metadata import MetadataRecord
from .utils import isoformat_timestamp

ATOM_NS = "http://www.w3.org/2005/Atom"


@dataclass(frozen=True)
class FeedInfo:
    """Feed-level fields.

    Attributes:
        title: Feed title.
        url: Absolute URL of the owning page (``alternate`` link).
        self_url: Absolute URL of the feed document.
        root_url: Absolute URL of the site root.
        author_name: Default author name.
        author_email: Default author email.
    """

    title: str
    url: str
    self_url: str
    root_url: str
    author_name: str = ""
    author_email: str = ""

    @property
    def id(self) -> str:
        return self.self_url


@dataclass(frozen=True)
class FeedEntry:
    """One entry of a feed.

    Attributes:
        title: Entry title.
        url: Absolute URL of the child page, also its identifier.
        timestamp: Last-updated time as epoch seconds.
        summary: Plain-text description.
        content: HTML body (the child's content fragment).
    """

    title: str
    url: str
    timestamp: int
    summary: str = ""
    content: str = ""


class FeedGenerator(ABC):
    """Abstract base class for feed generators."""

    @abstractmethod
    def generate(
        self,
        feed: FeedInfo,
        entries: Iterable[FeedEntry],
        now: datetime | None = None,
    ) -> str:
        """Generate the feed document.

        Args:
            feed: Feed-level fields.
            entries: Entries to list; the generator orders them.
            now: Generation time, defaults to the current UTC time.

        Returns:
            Feed document text.
        """
        ...


class AtomFeedGenerator(FeedGenerator):
    """Generates Atom 1.0 feeds with entries ordered most recent first."""

    def generate(
        self,
        feed: FeedInfo,
        entries: Iterable[FeedEntry],
        now: datetime | None = None,
    ) -> str:
        generated = now or datetime.now(timezone.utc)
        updated = isoformat_timestamp(int(generated.timestamp()))
        ordered = sorted(entries, key=lambda e: (e.timestamp, e.url), reverse=True)

        lines = [
            '<?xml version="1.0" encoding="utf-8"?>',
            f'<feed xmlns="{ATOM_NS}">',
            f"  <title>{escape_html(feed.title)}</title>",
            f'  <link rel="self" type="application/atom+xml" href="{escape_html(feed.self_url)}" />',
            f'  <link rel="alternate" type="text/html" href="{escape_html(feed.url)}" />',
            f'  <link rel="related" href="{escape_html(feed.root_url)}" />',
            f"  <id>{escape_html(feed.id)}</id>",
            f"  <updated>{updated}</updated>",
            self._author(feed, indent="  "),
        ]
        for entry in ordered:
            lines.extend(
                [
                    "  <entry>",
                    f"    <title>{escape_html(entry.title)}</title>",
                    f'    <link rel="alternate" type="text/html" href="{escape_html(entry.url)}" />',
                    f"    <id>{escape_html(entry.url)}</id>",
                    f"    <updated>{isoformat_timestamp(entry.timestamp)}</updated>",
                    f"    <summary>{escape_html(entry.summary)}</summary>",
                    self._author(feed, indent="    "),
                    f'    <content type="html">{escape_html(entry.content)}</content>',
                    "  </entry>",
                ]
            )
        lines.append("</feed>")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _author(feed: FeedInfo, indent: str) -> str:
        name = feed.author_name or feed.title
        parts = [f"<name>{escape_html(name)}</name>"]
        if feed.author_email:
            parts.append(f"<email>{escape_html(feed.author_email)}</email>")
        return f"{indent}<author>{''.join(parts)}</author>"


def feed_info(site: SiteConfig, title: str, path: str) -> FeedInfo:
    """Feed-level fields for the page or tag index at ``path``."""
    return FeedInfo(
        title=title,
        url=absolute_url(site, path),
        self_url=absolute_url(site, f"{path}{FEED_ARTIFACT}"),
        root_url=absolute_url(site, "/"),
        author_name=site.author_name or site.sitename,
        author_email=site.author_email,
    )


def feed_entries(
    site: SiteConfig,
    records: Iterable[MetadataRecord],
    contents: Mapping[str, str],
) -> list[FeedEntry]:
    """Build feed entries from children's records and content fragments.

    Args:
        site: Site configuration (for absolute URLs).
        records: Metadata records of the listed pages.
        contents: Content fragment text keyed by page path.
    """
    return [
        FeedEntry(
            title=record.title,
            url=absolute_url(site, record.path),
            timestamp=record.timestamp,
            summary=record.description,
            content=contents.get(record.path, ""),
        )
        for record in records
    ]
