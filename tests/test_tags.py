from pathlib import Path

from treepress.build import build_site
from treepress.tags import parse_tags


class FakeConverter:
    name = "fake"

    def convert(self, text, source):
        return f"<p>{text.strip()}</p>\n"


def write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def make_tagged_site(project: Path) -> Path:
    pages = project / "pages"
    write(pages / "config", "title = Home\ndate = 2020-01-01\n")
    write(pages / "blog" / "config", "title = Blog\ndate = 2020-06-01\n")
    write(pages / "blog" / "post1" / "config", "title = First\ndate = 2021-01-01\n")
    write(pages / "blog" / "post1" / "index.md", "one")
    write(pages / "blog" / "post1" / "tags", "Python\nMy Tag!\n\n")
    write(pages / "blog" / "post2" / "config", "title = Second\ndate = 2021-06-01\n")
    write(pages / "blog" / "post2" / "index.md", "two")
    write(pages / "blog" / "post2" / "tags", "python\nCafé\n")
    return project


def test_parse_tags():
    assert parse_tags("My Tag!\n\n  Café \nmy-tag\n!!!\n") == [
        ("my-tag", "My Tag!"),
        ("cafe", "Café"),
    ]
    assert parse_tags("") == []


def test_tag_indexes_group_pages(tmp_path):
    project = make_tagged_site(tmp_path)
    result = build_site(project, converter=FakeConverter())

    assert list(result.tags) == ["cafe", "my-tag", "python"]
    python = result.tags["python"]
    assert python.label == "Python"
    assert [r.title for r in python.records] == ["First", "Second"]

    index = (project / "public" / "tags" / "python" / "index.html").read_text(encoding="utf-8")
    assert "<title>Tag: Python - Treepress site</title>" in index
    assert index.index(">Second<") < index.index(">First<")
    assert '<nav class="breadcrumbs"><a href="/">Home</a></nav>' in index
    assert 'href="/tags/python/feed.atom"' in index

    feed = (project / "public" / "tags" / "python" / "feed.atom").read_text(encoding="utf-8")
    assert feed.index("<title>Second</title>") < feed.index("<title>First</title>")

    overview = (project / "public" / "tags" / "index.html").read_text(encoding="utf-8")
    assert overview.index(">Café<") < overview.index(">My Tag!<") < overview.index(">Python<")
    assert "2 pages" in overview
    assert "1 page<" in overview


def test_pages_link_to_their_tags(tmp_path):
    project = make_tagged_site(tmp_path)
    build_site(project, converter=FakeConverter())
    post = (project / "public" / "blog" / "post1" / "index.html").read_text(encoding="utf-8")
    assert '<a class="tag" href="/tags/python/">Python</a>' in post
    assert '<a class="tag" href="/tags/my-tag/">My Tag!</a>' in post


def test_unchanged_tags_are_skipped(tmp_path):
    project = make_tagged_site(tmp_path)
    build_site(project, converter=FakeConverter())

    write(project / "pages" / "blog" / "post1" / "index.md", "one, edited")
    result = build_site(project, converter=FakeConverter())
    rebuilt = result.stats.rebuilt
    assert "/tags/cafe/:index.html" not in rebuilt
    assert "/tags/python/:pages.html" not in rebuilt
    # Feeds carry the content of their members.
    assert "/tags/python/:feed.atom" in rebuilt
    assert "/tags/cafe/:feed.atom" not in rebuilt


def test_vanished_tags_are_removed(tmp_path):
    project = make_tagged_site(tmp_path)
    build_site(project, converter=FakeConverter())
    assert (project / "build" / "tags" / "cafe").is_dir()

    write(project / "pages" / "blog" / "post2" / "tags", "python\n")
    result = build_site(project, converter=FakeConverter())
    assert "cafe" not in result.tags
    assert not (project / "build" / "tags" / "cafe").exists()
    assert not (project / "public" / "tags" / "cafe").exists()
    assert (project / "public" / "tags" / "python" / "index.html").exists()

    (project / "pages" / "blog" / "post1" / "tags").unlink()
    (project / "pages" / "blog" / "post2" / "tags").unlink()
    result = build_site(project, converter=FakeConverter())
    assert len(result.tags) == 0
    assert not (project / "build" / "tags").exists()
    assert not (project / "public" / "tags").exists()


def test_tag_feeds_can_be_disabled(tmp_path):
    project = make_tagged_site(tmp_path)
    (project / "site.yaml").write_text("tag_feed: false\n", encoding="utf-8")
    build_site(project, converter=FakeConverter())
    assert (project / "public" / "tags" / "python" / "index.html").exists()
    assert not (project / "public" / "tags" / "python" / "feed.atom").exists()
    index = (project / "public" / "tags" / "python" / "index.html").read_text(encoding="utf-8")
    assert "application/atom+xml" not in index
