from pathlib import Path

import questionary
from click.testing import CliRunner

from treepress.cli import cli


class Answer:
    def __init__(self, value):
        self.value = value

    def ask(self):
        return self.value


def test_cli_new_scaffolds_project(tmp_path):
    runner = CliRunner()
    target = tmp_path / "my_site"
    result = runner.invoke(cli, ["new", str(target)])
    assert result.exit_code == 0
    assert (target / "site.yaml").read_text(encoding="utf-8").startswith("sitename: My site\n")
    assert (target / "pages" / "config").exists()
    assert (target / "pages" / "index.md").exists()
    assert (target / "templates" / "layout" / "default.html").exists()
    assert (target / "templates" / "view" / "default.html").exists()

    result = runner.invoke(cli, ["new", str(target)])
    assert result.exit_code != 0
    assert "non-empty" in result.output


def test_cli_build_new_project(tmp_path, monkeypatch):
    runner = CliRunner()
    project = tmp_path / "site"
    runner.invoke(cli, ["new", str(project)])
    monkeypatch.chdir(project)

    result = runner.invoke(cli, ["build", "--jobs", "2"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 1 pages and 0 tags" in result.output
    home = (project / "public" / "index.html").read_text(encoding="utf-8")
    assert "<title>Home - Site</title>" in home

    result = runner.invoke(cli, ["build"], catch_exceptions=False)
    assert "(0 artifacts rebuilt, 0 files published)" in result.output


def test_cli_build_reports_failures(tmp_path, monkeypatch):
    runner = CliRunner()
    project = tmp_path / "site"
    runner.invoke(cli, ["new", str(project)])
    (project / "pages" / "config").write_text("layout = fancy.html\n", encoding="utf-8")
    monkeypatch.chdir(project)

    result = runner.invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "Page: /" in result.output
    assert "Artifact: index.html" in result.output


def test_cli_reports_invalid_config(tmp_path, monkeypatch):
    (tmp_path / "site.yaml").write_text("jobs: lots\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Invalid configuration:" in result.output


def test_cli_clean(tmp_path, monkeypatch):
    (tmp_path / "build").mkdir()
    (tmp_path / "public").mkdir()
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    result = runner.invoke(cli, ["clean"])
    assert result.exit_code == 0
    assert "Removed" in result.output
    assert not (tmp_path / "build").exists()
    result = runner.invoke(cli, ["clean"])
    assert "Nothing to clean" in result.output


def test_cli_serve_and_watch(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    called = {}

    class DummyServer:
        def __init__(self, root, http_port=None, ws_port=None):
            called["root"] = root
            called["port"] = http_port
            called["ws_port"] = ws_port

        def start(self):
            called["mode"] = "serve"

        def watch(self):
            called["mode"] = "watch"

    monkeypatch.setattr("treepress.server.DevServer", DummyServer)
    runner = CliRunner()

    result = runner.invoke(cli, ["serve", "--port", "5050", "--ws-port", "5051"], catch_exceptions=False)
    assert result.exit_code == 0
    assert Path(called.pop("root")).resolve() == tmp_path.resolve()
    assert called == {"port": 5050, "ws_port": 5051, "mode": "serve"}

    result = runner.invoke(cli, ["watch"], catch_exceptions=False)
    assert result.exit_code == 0
    assert called["mode"] == "watch"


def test_cli_deploy(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    result = runner.invoke(cli, ["deploy"])
    assert result.exit_code == 1
    assert "Deploy failed:" in result.output

    (tmp_path / "site.yaml").write_text("deploy_target: host:/srv/\n", encoding="utf-8")
    seen = {}

    def fake_deploy(site, output_dir, dry_run=False):
        seen["dry_run"] = dry_run
        return "ok\n"

    monkeypatch.setattr("treepress.deploy.deploy", fake_deploy)
    result = runner.invoke(cli, ["deploy", "--dry-run"], catch_exceptions=False)
    assert result.exit_code == 0
    assert seen["dry_run"] is True
    assert "Deployed" in result.output


def test_cli_page_creates_directory(monkeypatch, tmp_path):
    (tmp_path / "pages" / "blog").mkdir(parents=True)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(questionary, "select", lambda *a, **k: Answer("/blog/"))
    monkeypatch.setattr(questionary, "text", lambda *a, **k: Answer("  My  New Post "))
    monkeypatch.setattr(questionary, "confirm", lambda *a, **k: Answer(True))

    result = CliRunner().invoke(cli, ["page"], catch_exceptions=False)
    assert result.exit_code == 0
    target = tmp_path / "pages" / "blog" / "my-new-post"
    config = (target / "config").read_text(encoding="utf-8")
    assert config.startswith("title = My New Post\ndate = ")
    assert "feed = 1" in config
    assert (target / "index.md").read_text(encoding="utf-8") == "# My New Post\n\n"

    result = CliRunner().invoke(cli, ["page"])
    assert result.exit_code != 0
    assert "already exists" in result.output


def test_cli_page_abort(monkeypatch, tmp_path):
    (tmp_path / "pages").mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(questionary, "select", lambda *a, **k: Answer(None))
    result = CliRunner().invoke(cli, ["page"])
    assert result.exit_code == 1
    assert not any(Path(tmp_path / "pages").iterdir())


def test_module_main_entrypoint():
    from treepress.__main__ import main

    assert callable(main)
