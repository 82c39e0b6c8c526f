"""Fragment rendering for Treepress.

Fragments are the pieces spliced into a layout: head links, breadcrumbs, tag
badges, the page content and the subpage listing. This module also builds the
scalar placeholder values for pages and listing entries.

All functions here are pure: they take already-resolved inputs and return
text. The build engine decides when to call them and caches the results as
artifacts.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .config import PageConfig, SiteConfig
from .content import Page
from .html_utils import auto_alt, escape_html, img_tag, join_url, rewrite_links, site_url
from .metadata import MetadataRecord
from .utils import format_timestamp

BREADCRUMB_SEPARATOR = " &rsaquo; "


def render_head(
    chain: Sequence[Page],
    basepath: str,
    feed_href: str = "",
    feed_title: str = "",
) -> str:
    """Render stylesheet, script, icon and feed links for a page.

    Assets are inherited: every page in ``chain`` (root first, the page itself
    last) contributes its styles and scripts in that order. Only the nearest
    ``favicon.*`` is linked.

    Args:
        chain: Ancestors from the root down to and including the page.
        basepath: Site base path.
        feed_href: Feed URL when the page publishes a feed.
        feed_title: Title of that feed.

    Returns:
        One link or script element per line.
    """
    lines: list[str] = []
    icon: str | None = None
    for node in chain:
        root = site_url(basepath, node.path)
        for style in node.styles:
            lines.append(f'<link rel="stylesheet" href="{escape_html(root + style.name)}" />')
        for script in node.scripts:
            lines.append(f'<script src="{escape_html(root + script.name)}"></script>')
        if node.icon is not None:
            icon = root + node.icon.name
    if icon is not None:
        lines.append(f'<link rel="icon" href="{escape_html(icon)}" />')
    if feed_href:
        lines.append(
            '<link rel="alternate" type="application/atom+xml" '
            f'title="{escape_html(feed_title)}" href="{escape_html(feed_href)}" />'
        )
    return "".join(f"{line}\n" for line in lines)


def render_breadcrumbs(trail: Iterable[tuple[str, str]], basepath: str) -> str:
    """Render the chain of ancestor links, ending just before the page.

    Args:
        trail: ``(title, site path)`` pairs from the root down to the parent.
        basepath: Site base path.

    Returns:
        A ``<nav>`` element on one line, or ``""`` for the root page.
    """
    links = [
        f'<a href="{escape_html(site_url(basepath, path))}">{escape_html(title)}</a>'
        for title, path in trail
    ]
    if not links:
        return ""
    return f'<nav class="breadcrumbs">{BREADCRUMB_SEPARATOR.join(links)}</nav>\n'


def render_tag_badges(declared: Iterable[tuple[str, str]], basepath: str) -> str:
    """Render badges linking to the tag indexes of the given ``(slug, label)`` pairs."""
    items = [
        f'<li><a class="tag" href="{escape_html(site_url(basepath, f"/tags/{slug}/"))}">'
        f"{escape_html(label)}</a></li>"
        for slug, label in declared
    ]
    if not items:
        return ""
    return '<ul class="tags">\n' + "".join(f"{item}\n" for item in items) + "</ul>\n"


def render_content(
    page_path: str,
    basepath: str,
    images: Iterable[str],
    bodies: Iterable[str],
) -> str:
    """Compose a page's content fragment.

    Images come first, one auto-alt ``<img>`` per file, followed by the
    rendered markdown and raw HTML bodies in order. Page-relative (``./``) and
    site-relative (``/``) links are then rewritten.

    Args:
        page_path: Site path of the page.
        basepath: Site base path.
        images: Image filenames in the page directory.
        bodies: Rendered body texts in listing order.

    Returns:
        The content HTML, ``""`` when the page has no content files.
    """
    parts = [img_tag(f"./{name}", auto_alt(name)) + "\n" for name in images]
    for body in bodies:
        parts.append(body if body.endswith("\n") or not body else body + "\n")
    return rewrite_links("".join(parts), page_path, basepath)


def cover_src(page: Page, config: PageConfig, basepath: str) -> str:
    """Resolve the cover image URL of a page, ``""`` when it has none.

    A configured ``cover`` wins over a ``cover.*`` file. Configured values are
    resolved like content links: ``/x`` against the base path, ``./x`` and
    bare names against the page path; absolute URLs are kept.
    """
    page_root = site_url(basepath, page.path)
    if config.cover:
        value = config.cover
        if value.startswith(("http://", "https://", "//")):
            return value
        if value.startswith("/"):
            return f"{basepath}{value}"
        return page_root + value.removeprefix("./")
    if page.cover is not None:
        return page_root + page.cover.name
    return ""


def render_cover(src: str, title: str) -> str:
    """Render the cover ``<img>`` tag, or ``""`` without a cover."""
    if not src:
        return ""
    return img_tag(src, title, css_class="cover")


def absolute_url(site: SiteConfig, path: str) -> str:
    """Absolute URL of a site path: base URL + base path + path."""
    return join_url(site.baseurl, site_url(site.basepath, path))


def common_values(site: SiteConfig) -> dict[str, str]:
    """Scalar values shared by every page and entry."""
    return {
        "sitename": escape_html(site.sitename),
        "baseurl": escape_html(site.baseurl),
        "authorname": escape_html(site.author_name),
        "authoremail": escape_html(site.author_email),
    }


def document_values(
    site: SiteConfig,
    path: str,
    title: str,
    timestamp: int,
    keywords: Iterable[str] = (),
    description: str = "",
    cover: str = "",
    tag: str = "",
) -> dict[str, str]:
    """Scalar placeholder values for a document rendered through a layout.

    Text values are HTML-escaped; ``cover`` is HTML already.
    """
    values = common_values(site)
    values.update(
        {
            "title": escape_html(title),
            "keywords": escape_html(", ".join(keywords)),
            "description": escape_html(description),
            "date": escape_html(format_timestamp(timestamp, site.date_format)),
            "cover": cover,
            "path": escape_html(site_url(site.basepath, path)),
            "id": escape_html(absolute_url(site, path)),
            "tag": escape_html(tag),
        }
    )
    return values


def page_values(site: SiteConfig, page: Page, config: PageConfig, cover: str) -> dict[str, str]:
    """Scalar placeholder values for a content page."""
    return document_values(
        site,
        page.path,
        config.title,
        config.timestamp,
        keywords=config.keywords,
        description=config.description,
        cover=cover,
    )


def entry_values(site: SiteConfig, record: MetadataRecord, tag: str = "") -> dict[str, str]:
    """Placeholder values for one listing entry rendered through a view.

    Besides the scalar vocabulary, the entry's own breadcrumb HTML is
    available as ``{{breadcrumbs}}``.
    """
    values = document_values(
        site,
        record.path,
        record.title,
        record.timestamp,
        description=record.description,
        cover=record.cover,
        tag=tag,
    )
    values["breadcrumbs"] = record.breadcrumbs.rstrip("\n")
    return values
