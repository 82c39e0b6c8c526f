"""HTML utility functions for Treepress.

This module provides HTML manipulation utilities including escaping,
URL joining and the page-relative link rewriting applied to content.

Following the Single Responsibility Principle, this module focuses
exclusively on HTML string manipulation.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_url: Join a base URL with a path.
    site_url: Root a site path at the configured base path.
    rewrite_links: Rewrite ``./`` and ``/`` rooted src/href values.
    img_tag: Build an ``<img>`` element.
    auto_alt: Derive alt text from an image filename.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from markupsafe import escape

# Plain href and src attributes; data-src or xlink:href are left alone
_URL_ATTR_RE = re.compile(
    r"(?P<prefix>(?<=\s)(?:href|src)=(?P<quote>[\"']))(?P<url>[^\"']*)(?P=quote)"
)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts ``&``, ``<``, ``>``, ``"`` and ``'`` to entities; the result is
    also safe inside XML text and attribute values.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&#34;XSS&#34;)&lt;/script&gt;'
    """
    return str(escape(text))


def join_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Examples:
        >>> join_url('https://example.com/', '/about/')
        'https://example.com/about/'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def site_url(basepath: str, path: str) -> str:
    """Root a site path (``/blog/``) at the base path (``/sub``)."""
    return join_url(basepath, path) if basepath else path


def rewrite_links(html: str, page_path: str, basepath: str) -> str:
    """Rewrite page-relative and site-relative links in rendered content.

    Values of ``src`` and ``href`` attributes that start with ``./`` are
    rooted at the page's published path; values that start with a single
    ``/`` are rooted at the site base path. Anything else (absolute URLs,
    protocol-relative ``//`` URLs, anchors, bare relative paths) is left alone.

    Args:
        html: Rendered HTML.
        page_path: The page's site path, e.g. ``/blog/post1/``.
        basepath: The site base path, e.g. ``""`` or ``/sub``.

    Returns:
        HTML with rewritten attribute values.

    Examples:
        >>> rewrite_links('<img src="./img.png">', '/blog/post1/', '')
        '<img src="/blog/post1/img.png">'

        >>> rewrite_links('<a href="/about">About</a>', '/blog/', '/sub')
        '<a href="/sub/about">About</a>'
    """
    page_root = site_url(basepath, page_path)

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if url.startswith("./"):
            rewritten = page_root.rstrip("/") + "/" + url[2:]
        elif url.startswith("/") and not url.startswith("//"):
            rewritten = f"{basepath}{url}"
        else:
            return match.group(0)
        quote = match.group("quote")
        return f"{match.group('prefix')}{rewritten}{quote}"

    return _URL_ATTR_RE.sub(repl, html)


def img_tag(src: str, alt: str, css_class: str | None = None) -> str:
    """Build a self-closing image element with escaped attributes."""
    class_attr = f' class="{escape_html(css_class)}"' if css_class else ""
    return f'<img{class_attr} src="{escape_html(src)}" alt="{escape_html(alt)}" />'


def auto_alt(filename: str) -> str:
    """Derive alt text from an image filename.

    Examples:
        >>> auto_alt("sunset_over-lake.jpg")
        'sunset over lake'
    """
    stem = PurePosixPath(filename).stem
    return " ".join(re.split(r"[\s\-_]+", stem)).strip()
