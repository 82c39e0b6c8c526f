import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

from treepress.artifacts import _format_error_message
from treepress.build import BuildError, BuildResult, build_site
from treepress.config import ConfigError
from treepress.content import ScanError


def write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def create_project(project: Path) -> Path:
    pages = project / "pages"
    write(project / "site.yaml", "sitename: Test\ndomain: example.com\nauthor_name: Ann\n")
    write(pages / "config", "title = Home\ndate = 2020-01-01\ndescription = The home page\n")
    write(pages / "index.md", "# Hello\n\nWelcome! [About](/blog/) and ![pic](./logo.png)\n")
    write(pages / "style.css", "body { color: red; }")
    write(pages / "logo.png", "png")
    write(pages / "assets" / "fonts" / "a.woff", "font")
    write(pages / "blog" / "config", "title = Blog\ndate = 2020-06-01\nfeed = 1\n")
    write(pages / "blog" / "post1" / "config", "title = First\ndate = 2021-01-01\n")
    write(pages / "blog" / "post1" / "index.md", "First post body.\n")
    write(pages / "blog" / "post2" / "config", "title = Second\ndate = 2021-06-01\n")
    write(pages / "blog" / "post2" / "index.md", "Second post body.\n")
    return project


def test_build_site_end_to_end(tmp_path):
    project = create_project(tmp_path)
    result = build_site(project)

    assert isinstance(result, BuildResult)
    assert result.page_count == 4
    assert result.output_dir == project / "public"
    assert result.published > 0

    public = project / "public"
    home = (public / "index.html").read_text(encoding="utf-8")
    assert "<title>Home - Test</title>" in home
    assert '<meta name="Description" content="The home page"/>' in home
    assert '<link rel="stylesheet" href="/style.css" />' in home
    assert '<h1 id="hello">Hello</h1>' in home
    assert '<img src="/logo.png" alt="logo" />' in home
    assert '<a href="/blog/">Blog</a>' in home

    blog = (public / "blog" / "index.html").read_text(encoding="utf-8")
    assert blog.index(">Second<") < blog.index(">First<")
    assert '<link rel="stylesheet" href="/style.css" />' in blog
    assert 'href="/blog/feed.atom"' in blog

    feed = (public / "blog" / "feed.atom").read_text(encoding="utf-8")
    assert feed.index("https://example.com/blog/post2/") < feed.index("https://example.com/blog/post1/")
    assert "<name>Ann</name>" in feed

    post = (public / "blog" / "post1" / "index.html").read_text(encoding="utf-8")
    assert '<ul class="pages">\n</ul>' in post
    assert "<time>2021-01-01</time>" in post

    assert (public / "style.css").read_text(encoding="utf-8") == "body { color: red; }"
    assert (public / "logo.png").exists()
    assert (public / "assets" / "fonts" / "a.woff").exists()
    assert not (public / "tags").exists()
    assert not (public / "feed.atom").exists()


def test_rebuild_without_changes_writes_nothing(tmp_path):
    project = create_project(tmp_path)
    build_site(project)
    home = project / "public" / "index.html"
    os.utime(home, (1_000_000, 1_000_000))

    result = build_site(project)
    assert result.stats.rebuilt == []
    assert result.published == 0
    assert home.stat().st_mtime == 1_000_000


def test_basepath_prefixes_links(tmp_path):
    project = create_project(tmp_path)
    write(project / "site.yaml", "sitename: Test\ndomain: example.com\nbasepath: /sub\n")
    build_site(project)

    home = (project / "public" / "index.html").read_text(encoding="utf-8")
    assert '<link rel="stylesheet" href="/sub/style.css" />' in home
    assert '<a href="/sub/blog/">About</a>' in home
    assert '<img src="/sub/logo.png" alt="logo" />' in home
    assert '<link rel="canonical" href="https://example.com/sub/" />' in home


def test_jobs_override(tmp_path):
    project = create_project(tmp_path)
    result = build_site(project, overrides={"jobs": 3})
    assert result.site.jobs == 3
    assert (project / "public" / "blog" / "post2" / "index.html").exists()


def test_build_errors_propagate(tmp_path):
    project = create_project(tmp_path)
    write(project / "pages" / "blog" / "config", "layout = missing.html\n")
    with pytest.raises(BuildError) as excinfo:
        build_site(project)
    assert excinfo.value.page_path == "/blog/"
    assert "missing.html" in excinfo.value.message
    assert not (project / "public").exists()


def test_structural_and_config_errors(tmp_path):
    with pytest.raises(ScanError):
        build_site(tmp_path)

    write(tmp_path / "pages" / "index.md", "x")
    write(tmp_path / "site.yaml", "sort: sideways\n")
    with pytest.raises(ConfigError):
        build_site(tmp_path)


class FrozenDatetime(datetime):
    @classmethod
    def now(cls, tz=None):
        return datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def frozen_clock(monkeypatch):
    monkeypatch.setattr("treepress.feeds.datetime", FrozenDatetime)


def snapshot(project: Path) -> dict[str, bytes]:
    files = {}
    for top in ("build", "public"):
        for path in sorted((project / top).rglob("*")):
            if path.is_file() and not path.name.endswith(".tmp"):
                files[str(path.relative_to(project))] = path.read_bytes()
    return files


def test_build_interrupted_before_state_flush_converges(tmp_path, monkeypatch, frozen_clock):
    project = create_project(tmp_path)
    build_site(project)
    expected = snapshot(project)

    post = project / "pages" / "blog" / "post1" / "index.md"
    original = post.read_text(encoding="utf-8")
    post.write_text("Edited post body.\n", encoding="utf-8")
    with monkeypatch.context() as m:
        m.setattr("treepress.artifacts.ArtifactStore.flush", lambda self, key: None)
        build_site(project)
    edited = (project / "build" / "blog" / "post1" / "index.html").read_text(encoding="utf-8")
    assert "Edited post body." in edited

    post.write_text(original, encoding="utf-8")
    build_site(project)
    assert snapshot(project) == expected


def test_corrupt_state_files_are_rebuilt(tmp_path, frozen_clock):
    project = create_project(tmp_path)
    build_site(project)
    expected = snapshot(project)

    (project / "build" / ".state.json").write_text("{not json", encoding="utf-8")
    (project / "build" / "blog" / ".state.json").write_text("{not json", encoding="utf-8")
    result = build_site(project)

    assert result.stats.rebuilt
    assert result.published == 0
    assert snapshot(project) == expected


def test_leftover_temporary_files_do_not_affect_output(tmp_path, frozen_clock):
    project = create_project(tmp_path)
    build_site(project)
    expected = snapshot(project)

    write(project / "build" / "blog" / "post1" / ".content.html.abc.tmp", "partial")
    write(project / "public" / "blog" / ".index.html.abc.tmp", "partial")
    result = build_site(project)

    assert result.stats.rebuilt == []
    assert result.published == 0
    assert snapshot(project) == expected


def test_page_without_content_or_children(tmp_path):
    project = create_project(tmp_path)
    write(project / "pages" / "empty" / "config", "title = Empty\n")
    build_site(project)

    page = (project / "public" / "empty" / "index.html").read_text(encoding="utf-8")
    assert "<h1>Empty</h1>" in page
    assert '<section class="content">\n\t</section>' in page
    assert '<ul class="pages">\n</ul>' in page


def test_format_error_message():
    assert _format_error_message(FileNotFoundError("x.md")) == "Missing file: x.md"
    assert _format_error_message(ValueError("bad")) == "ValueError: bad"
