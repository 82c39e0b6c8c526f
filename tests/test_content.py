import re

import pytest

from treepress.config import load_site_config
from treepress.content import Page, PageTreeScanner, ScanError, load_page_configs, scan_pages

IMAGE_RE = re.compile(r"\.(?:png|jpe?g|gif|tiff)$", re.IGNORECASE)


def make_tree(root):
    root.mkdir(parents=True, exist_ok=True)
    for name in [
        "index.md",
        "extra.html",
        "photo.JPG",
        "favicon.ico",
        "cover.png",
        "style.css",
        "app.js",
        "config",
        "tags",
        "notes.txt",
    ]:
        (root / name).write_text("x", encoding="utf-8")
    (root / ".hidden").mkdir()
    (root / "assets" / "css").mkdir(parents=True)
    (root / "b" / "deep").mkdir(parents=True)
    (root / "a").mkdir()
    (root / "a" / "a.md").write_text("# A", encoding="utf-8")


def test_scanner_classifies_files(tmp_path):
    content = tmp_path / "pages"
    make_tree(content)
    root = PageTreeScanner(content, IMAGE_RE).scan()

    assert root.path == "/"
    assert root.is_root
    assert [p.name for p in root.markdown] == ["index.md"]
    assert [p.name for p in root.html] == ["extra.html"]
    assert [p.name for p in root.images] == ["photo.JPG"]
    assert [p.name for p in root.styles] == ["style.css"]
    assert [p.name for p in root.scripts] == ["app.js"]
    assert root.icon.name == "favicon.ico"
    assert root.cover.name == "cover.png"
    assert root.assets_dir == content / "assets"
    assert [p.name for p in root.body_files] == ["extra.html", "index.md"]


def test_scanner_cover_must_be_an_image(tmp_path):
    content = tmp_path / "pages"
    (content / "essay").mkdir(parents=True)
    (content / "essay" / "cover.md").write_text("# Cover story", encoding="utf-8")
    (content / "essay" / "cover.html").write_text("<p>x</p>", encoding="utf-8")
    root = PageTreeScanner(content, IMAGE_RE).scan()

    essay = root.children[0]
    assert essay.cover is None
    assert [p.name for p in essay.markdown] == ["cover.md"]
    assert [p.name for p in essay.html] == ["cover.html"]
    assert essay.images == []


def test_scanner_builds_sorted_tree(tmp_path):
    content = tmp_path / "pages"
    make_tree(content)
    root = PageTreeScanner(content, IMAGE_RE).scan()

    assert [child.path for child in root.children] == ["/a/", "/b/"]
    deep = root.children[1].children[0]
    assert deep.path == "/b/deep/"
    assert deep.build_key == "b/deep"
    assert root.build_key == ""
    assert [p.path for p in deep.ancestors()] == ["/", "/b/"]
    assert [p.path for p in root.walk()] == ["/", "/a/", "/b/", "/b/deep/"]


def test_scanner_rejects_case_collisions(tmp_path):
    content = tmp_path / "pages"
    (content / "Blog").mkdir(parents=True)
    (content / "blog").mkdir()
    with pytest.raises(ScanError, match="differ only by case"):
        PageTreeScanner(content, IMAGE_RE).scan()


def test_scanner_rejects_top_level_tags_page(tmp_path):
    content = tmp_path / "pages"
    (content / "tags").mkdir(parents=True)
    with pytest.raises(ScanError, match="tag index"):
        PageTreeScanner(content, IMAGE_RE).scan()

    # Only the top level is reserved.
    (content / "tags").rmdir()
    (content / "blog" / "tags").mkdir(parents=True)
    root = PageTreeScanner(content, IMAGE_RE).scan()
    assert root.children[0].children[0].path == "/blog/tags/"


def test_scanner_requires_content_dir(tmp_path):
    with pytest.raises(ScanError, match="not found"):
        PageTreeScanner(tmp_path / "missing", IMAGE_RE).scan()


def test_page_paths():
    root = Page(source_dir=None, path="/")
    assert root.ancestors() == []
    assert list(root.walk()) == [root]


def test_load_page_configs_top_down(tmp_path):
    content = tmp_path / "pages"
    (content / "blog").mkdir(parents=True)
    (content / "config").write_text("title = Home\n", encoding="utf-8")
    (content / "blog" / "config").write_text("feed = 1\ndate = 2021-01-01\n", encoding="utf-8")
    site = load_site_config(tmp_path)
    root = scan_pages(site)

    configs = load_page_configs(root, site)
    assert configs["/"].title == "Home"
    assert configs["/blog/"].title == "Blog"
    assert configs["/blog/"].feed is True
    assert configs["/blog/"].timestamp == 1609459200
