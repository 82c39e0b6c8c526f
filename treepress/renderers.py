"""Markdown converters for Treepress.

This module contains implementations of the MarkdownConverter protocol.
The build engine converts each markdown file of a page separately and caches
the result as its own artifact.

Key classes:
- MistuneConverter: In-process conversion with mistune and Pygments highlighting.
- CommandConverter: Pipes markdown through an external program such as ``cmark``.

Functions:
- create_converter: Pick the converter configured for a site.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from pathlib import Path

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .config import SiteConfig
from .executable_utils import find_executable
from .html_utils import escape_html

logger = logging.getLogger(__name__)


class ConverterError(Exception):
    """Error raised when a markdown file cannot be converted.

    Attributes:
        source_path: The markdown file.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading anchors and syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with a unique auto-generated ID.

        Args:
            text: Heading text content.
            level: Heading level (1-6).
            **attrs: Additional attributes.

        Returns:
            HTML heading tag with id attribute.
        """
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        language = info.split()[0] if info and info.strip() else ""
        if language:
            try:
                lexer = get_lexer_by_name(language, stripall=True)
            except ClassNotFound:
                logger.debug("No Pygments lexer for %r; emitting plain code block", language)
            else:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        lang_class = f' class="language-{escape_html(language)}"' if language else ""
        return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


class MistuneConverter:
    """Converts markdown in-process with mistune.

    Raw HTML inside markdown is passed through; authors are trusted.
    """

    plugins = ("strikethrough", "footnotes", "table", "url")

    @property
    def name(self) -> str:
        return f"mistune-{mistune.__version__}"

    def convert(self, text: str, source: Path) -> str:
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(), plugins=list(self.plugins)
        )
        return markdown(text)


class CommandConverter:
    """Converts markdown by piping it through an external program.

    The program receives the markdown on stdin and must print HTML on stdout,
    which is how ``cmark`` and ``commonmark`` behave. One process runs per file.

    Attributes:
        command: Command line, e.g. ``cmark --unsafe``.
        project_root: Used to find npm-installed converters.
    """

    def __init__(self, command: str, project_root: Path | None = None):
        self.command = command
        self.project_root = project_root
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("empty markdown command")

    @property
    def name(self) -> str:
        return f"command:{self.command}"

    def convert(self, text: str, source: Path) -> str:
        executable = find_executable(self._argv[0], self.project_root)
        if executable is None:
            raise ConverterError(source, f"markdown converter {self._argv[0]!r} not found")
        try:
            result = subprocess.run(
                [executable, *self._argv[1:]],
                input=text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                check=False,
            )
        except OSError as exc:
            raise ConverterError(source, f"could not run {self._argv[0]!r}: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip() or f"exit status {result.returncode}"
            raise ConverterError(source, f"{self._argv[0]} failed: {detail}")
        return result.stdout


def create_converter(site: SiteConfig) -> MistuneConverter | CommandConverter:
    """Return the converter configured for the site."""
    if site.markdown_command:
        return CommandConverter(site.markdown_command, site.project_root)
    return MistuneConverter()
