import logging

import pytest

from treepress.templates import (
    DEFAULT_LAYOUT,
    Template,
    TemplateNotFoundError,
    TemplateStore,
    render_document,
    render_listing,
    splice,
    substitute,
)


def test_substitute_is_a_single_pass():
    text = "<title>{{title}} - {{sitename}}</title>{{unknown}}"
    out = substitute(text, {"title": "{{sitename}}", "sitename": "Site"})
    assert out == "<title>{{sitename}} - Site</title>{{unknown}}"


def test_splice_replaces_whole_lines():
    text = "<body>\n  <main>{{content}}</main>\n</body>\n"
    assert splice(text, {"content": "<p>x</p>"}) == "<body>\n<p>x</p>\n</body>\n"


def test_splice_empty_fragment_drops_line():
    text = "a\n\t{{tags}}\nb\n"
    assert splice(text, {"tags": ""}) == "a\nb\n"


def test_splice_keeps_fragment_text_verbatim():
    text = "{{content}}\n{{pages}}\n"
    fragments = {"content": "literal {{title}} and {{pages}}\n", "pages": "<ul></ul>\n"}
    assert splice(text, fragments) == "literal {{title}} and {{pages}}\n<ul></ul>\n"


def test_splice_leaves_unknown_fragments():
    assert splice("{{head}}\n", {}) == "{{head}}\n"


def test_render_document_leaves_fragment_text_alone():
    layout = Template("l", "layout", "<h1>{{title}}</h1>\n{{content}}\n")
    out = render_document(layout, {"title": "T"}, {"content": "{{title}}\n"})
    assert out == "<h1>T</h1>\n{{title}}\n"


def test_render_document_values_holding_fragment_tokens_stay_text():
    layout = Template(
        "l",
        "layout",
        "<title>{{title}}</title>\n<h1>{{title}}</h1>\n<meta content=\"{{description}}\"/>\n"
        "{{content}}\n",
    )
    values = {"title": "About {{content}} tokens", "description": "see {{pages}}"}
    out = render_document(layout, values, {"content": "<p>BODY</p>\n", "pages": "<ul></ul>\n"})
    assert out == (
        "<title>About {{content}} tokens</title>\n"
        "<h1>About {{content}} tokens</h1>\n"
        '<meta content="see {{pages}}"/>\n'
        "<p>BODY</p>\n"
    )


def test_render_listing():
    view = Template("v", "view", "<li>{{title}}</li>")
    assert render_listing(view, [{"title": "A"}, {"title": "B"}]) == (
        '<ul class="pages">\n<li>A</li>\n<li>B</li>\n</ul>\n'
    )
    assert render_listing(view, []) == '<ul class="pages">\n</ul>\n'


def test_store_falls_back_to_builtin(tmp_path):
    store = TemplateStore(tmp_path / "templates")
    layout = store.layout("default.html")
    assert layout.text == DEFAULT_LAYOUT
    assert layout.origin is None
    assert store.layout("default.html") is layout


def test_store_prefers_custom_templates(tmp_path):
    templates = tmp_path / "templates"
    (templates / "view").mkdir(parents=True)
    (templates / "view" / "default.html").write_text("<li>{{title}}</li>\n", encoding="utf-8")
    view = TemplateStore(templates).view("default.html")
    assert view.text == "<li>{{title}}</li>\n"
    assert view.origin == templates / "view" / "default.html"
    assert view.digest != TemplateStore(tmp_path / "none").view("default.html").digest


def test_store_missing_template_is_an_error(tmp_path):
    store = TemplateStore(tmp_path / "templates")
    with pytest.raises(TemplateNotFoundError) as excinfo:
        store.layout("fancy.html")
    assert excinfo.value.searched_path == tmp_path / "templates" / "layout" / "fancy.html"


def test_store_warns_about_unknown_placeholders(tmp_path, caplog):
    templates = tmp_path / "templates"
    (templates / "layout").mkdir(parents=True)
    (templates / "layout" / "odd.html").write_text("{{title}} {{subtitle}}\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        TemplateStore(templates).layout("odd.html")
    assert "{{subtitle}}" in caplog.text


def test_write_defaults_never_overwrites(tmp_path):
    templates = tmp_path / "templates"
    (templates / "layout").mkdir(parents=True)
    custom = templates / "layout" / "default.html"
    custom.write_text("custom", encoding="utf-8")

    created = TemplateStore(templates).write_defaults()
    assert created == [templates / "view" / "default.html"]
    assert custom.read_text(encoding="utf-8") == "custom"
