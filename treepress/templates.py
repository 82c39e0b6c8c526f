"""Template store and placeholder substitution for Treepress.

Templates are flat text files with ``{{name}}`` placeholders from a closed
vocabulary; there are no conditionals, loops or filters. Two roles exist:

- layout: wraps a whole page (``templates/layout/<name>``)
- view: renders one entry of a listing (``templates/view/<name>``)

Rendering happens in two steps. Scalar placeholders are replaced in a single
pass, so substituted values are never scanned again. Then every line holding a
fragment placeholder is replaced by the fragment's full text ("read and
splice"); fragment text is inserted verbatim, so content containing literal
``{{...}}`` survives untouched.

Key classes:
- Template: A named, immutable template text.
- TemplateStore: Resolves layout and view names, falling back to built-ins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .utils import hash_text

logger = logging.getLogger(__name__)

__all__ = [
    "FRAGMENT_PLACEHOLDERS",
    "SCALAR_PLACEHOLDERS",
    "Template",
    "TemplateNotFoundError",
    "TemplateStore",
    "render_document",
    "render_listing",
    "splice",
    "substitute",
]

LAYOUT = "layout"
VIEW = "view"

SCALAR_PLACEHOLDERS = frozenset(
    {
        "sitename",
        "title",
        "keywords",
        "description",
        "date",
        "cover",
        "path",
        "baseurl",
        "id",
        "authorname",
        "authoremail",
        "tag",
    }
)
FRAGMENT_PLACEHOLDERS = ("head", "breadcrumbs", "tags", "content", "pages")

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")
_FRAGMENT_RE = re.compile(r"\{\{(" + "|".join(FRAGMENT_PLACEHOLDERS) + r")\}\}")

DEFAULT_LAYOUT = """\
<!DOCTYPE html>
<html>
<head>
	<title>{{title}} - {{sitename}}</title>
	<meta charset="utf-8" />
	<meta name="viewport" content="width=device-width" />
	<meta name="Robots" content="All"/>
	<meta name="Title" content="{{title}}"/>
	<meta name="Keywords" content="{{keywords}}"/>
	<meta name="Description" content="{{description}}"/>
	<meta name="Author" content="{{authorname}}"/>
	<link rel="canonical" href="{{id}}" />
	{{head}}
</head>
<body>
	<header>
		{{breadcrumbs}}
		<h1>{{title}}</h1>
		<time>{{date}}</time>
	</header>
	{{cover}}
	<section class="tags">
		{{tags}}
	</section>
	<section class="content">
		{{content}}
	</section>
	<section class="subpages">
		{{pages}}
	</section>
</body>
</html>
"""

DEFAULT_VIEW = """\
<li>
	<a href="{{path}}">{{title}}</a>
	<time>{{date}}</time>
	<p>{{description}}</p>
</li>
"""

BUILTIN_TEMPLATES = {
    (LAYOUT, "default.html"): DEFAULT_LAYOUT,
    (VIEW, "default.html"): DEFAULT_VIEW,
}


class TemplateNotFoundError(Exception):
    """Error raised when a page names a template that does not exist.

    Attributes:
        role: ``layout`` or ``view``.
        name: The template name that was requested.
        searched_path: Where the template was expected.
    """

    def __init__(self, role: str, name: str, searched_path: Path):
        self.role = role
        self.name = name
        self.searched_path = searched_path
        super().__init__(f"{role} template {name!r} not found (expected {searched_path})")


@dataclass(frozen=True)
class Template:
    """A named template text.

    Attributes:
        name: Template name, e.g. ``default.html``.
        role: ``layout`` or ``view``.
        text: Template source.
        origin: File the template was read from; None for built-ins.
    """

    name: str
    role: str
    text: str
    origin: Path | None = None

    @property
    def digest(self) -> str:
        return hash_text(self.text)


class TemplateStore:
    """Resolves layout and view templates by name.

    Customised templates live under ``<templates_dir>/<role>/<name>``. A name
    without a file falls back to the built-in template of the same name; any
    other missing name is an error.

    Attributes:
        templates_dir: Root of the template tree.
    """

    def __init__(self, templates_dir: Path):
        self.templates_dir = templates_dir
        self._cache: dict[tuple[str, str], Template] = {}
        self._warned: set[tuple[str, str]] = set()

    def layout(self, name: str) -> Template:
        return self._get(LAYOUT, name)

    def view(self, name: str) -> Template:
        return self._get(VIEW, name)

    def _get(self, role: str, name: str) -> Template:
        key = (role, name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        template = self._load(role, name)
        self._check_vocabulary(template)
        self._cache[key] = template
        return template

    def _load(self, role: str, name: str) -> Template:
        path = self.templates_dir / role / name
        if path.is_file():
            return Template(name, role, path.read_text(encoding="utf-8"), path)
        builtin = BUILTIN_TEMPLATES.get((role, name))
        if builtin is not None:
            logger.debug("Using built-in %s template %r", role, name)
            return Template(name, role, builtin)
        raise TemplateNotFoundError(role, name, path)

    def _check_vocabulary(self, template: Template) -> None:
        allowed = SCALAR_PLACEHOLDERS | set(FRAGMENT_PLACEHOLDERS)
        for token in sorted(set(_PLACEHOLDER_RE.findall(template.text)) - allowed):
            key = (template.role, token)
            if key in self._warned:
                continue
            self._warned.add(key)
            logger.warning(
                "%s template %r uses unknown placeholder {{%s}}; it will be left as is",
                template.role,
                template.name,
                token,
            )

    def write_defaults(self) -> list[Path]:
        """Write the built-in templates into the template tree.

        Existing files are never overwritten.

        Returns:
            Paths of the files that were created.
        """
        created: list[Path] = []
        for (role, name), text in BUILTIN_TEMPLATES.items():
            target = self.templates_dir / role / name
            if target.exists():
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
            created.append(target)
        return created


def substitute(text: str, values: Mapping[str, str]) -> str:
    """Replace scalar placeholders in one pass.

    Placeholders missing from ``values`` (fragment placeholders and unknown
    names) are left untouched.
    """

    def repl(match: re.Match) -> str:
        value = values.get(match.group(1))
        return match.group(0) if value is None else value

    return _PLACEHOLDER_RE.sub(repl, text)


def splice(text: str, fragments: Mapping[str, str]) -> str:
    """Replace each line holding a fragment placeholder with the fragment text.

    The whole line is dropped, including any other text on it. A line with
    several fragment placeholders receives the fragments in order. Fragments
    missing from ``fragments`` leave their line untouched.
    """
    return "".join(_splice_line(line, fragments) for line in text.splitlines(keepends=True))


def _fragment_names(line: str, fragments: Mapping[str, str]) -> list[str]:
    return [name for name in _FRAGMENT_RE.findall(line) if name in fragments]


def _splice_line(line: str, fragments: Mapping[str, str]) -> str:
    names = _fragment_names(line, fragments)
    if not names:
        return line
    output: list[str] = []
    for name in names:
        fragment = fragments[name]
        if fragment and not fragment.endswith("\n"):
            fragment += "\n"
        output.append(fragment)
    return "".join(output)


def render_document(
    template: Template, values: Mapping[str, str], fragments: Mapping[str, str]
) -> str:
    """Render a layout.

    Fragment lines are located in the template text itself; every other line
    gets scalar substitution. Substituted values are never scanned again, so
    a title reading ``{{content}}`` stays text.
    """
    output: list[str] = []
    for line in template.text.splitlines(keepends=True):
        if _fragment_names(line, fragments):
            output.append(_splice_line(line, fragments))
        else:
            output.append(substitute(line, values))
    return "".join(output)


def render_listing(view: Template, entries: Iterable[Mapping[str, str]]) -> str:
    """Render a list of entries through a view template inside ``<ul class="pages">``.

    An empty listing still produces the (empty) list markup.
    """
    items: list[str] = []
    for entry in entries:
        item = substitute(view.text, entry)
        if not item.endswith("\n"):
            item += "\n"
        items.append(item)
    return '<ul class="pages">\n' + "".join(items) + "</ul>\n"
