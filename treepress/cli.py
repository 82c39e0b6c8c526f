"""Command-line interface for Treepress.

This module defines the CLI commands using the Click framework.

Commands:
- new: Scaffold a new Treepress project.
- build: Build the site incrementally and publish it.
- clean: Remove the build area and the output directory.
- watch: Rebuild on every source change.
- serve: Run the development server with live reload.
- deploy: Synchronise the output directory to the deploy target.
- page: Create a new page interactively.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    PAGE_CONFIG_FILENAME,
    ConfigError,
    SiteConfig,
    load_site_config,
)
from .content import ScanError, scan_pages
from .renderers import ConverterError
from .templates import TemplateNotFoundError, TemplateStore
from .utils import slugify, titleize

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_ROOT_CONFIG = """\
title = Home
description = Welcome to {sitename}
"""

_ROOT_MARKDOWN = """\
# Welcome

This page lives in `pages/index.md`. Every directory below `pages/` is a page.
"""


def _configure_logging(verbosity: int, quiet: bool, default_level: str) -> None:
    """Configure the ``treepress`` logger.

    ``-v`` selects info and ``-vv`` debug; ``--quiet`` only shows errors;
    otherwise the ``log_level`` from ``site.yaml`` applies.
    """
    if quiet:
        level = logging.ERROR
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = _LEVELS.get(default_level.lower(), logging.WARNING)

    app_logger = logging.getLogger("treepress")
    app_logger.setLevel(level)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    app_logger.addHandler(handler)


def _fail(title: str, *details: str) -> None:
    click.echo(click.style(title, fg="red", bold=True), err=True)
    for detail in details:
        click.echo(click.style(f"  {detail}", fg="yellow"), err=True)
    raise SystemExit(1)


def _load_site(ctx: click.Context, overrides: dict | None = None) -> SiteConfig:
    project_root = Path.cwd()
    try:
        site = load_site_config(project_root, overrides)
    except ConfigError as exc:
        _configure_logging(ctx.obj["verbose"], ctx.obj["quiet"], DEFAULT_CONFIG["log_level"])
        _fail("Invalid configuration:", str(exc))
    _configure_logging(ctx.obj["verbose"], ctx.obj["quiet"], site.log_level)
    return site


@click.group()
@click.version_option(version=__version__, prog_name="treepress")
@click.option("-v", "--verbose", count=True, help="Log progress (-vv for debug output)")
@click.option("-q", "--quiet", is_flag=True, help="Only report errors")
@click.pass_context
def cli(ctx: click.Context, verbose: int, quiet: bool):
    """Treepress static site generator."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


@cli.command()
@click.argument("name")
def new(name: str):
    """Scaffold a new Treepress project."""
    target = Path(name).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target}"
        )
    _scaffold(target)
    click.echo(f"New Treepress site created at {target}")


@cli.command()
@click.option(
    "--jobs",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Build independent page subtrees in parallel",
)
@click.option("-v", "--verbose", count=True, help="Log progress (-vv for debug output)")
@click.pass_context
def build(ctx: click.Context, jobs: int | None, verbose: int):
    """Build the site and publish it into the output directory."""
    ctx.obj["verbose"] += verbose
    overrides = {"jobs": jobs} if jobs is not None else None
    site = _load_site(ctx, overrides)
    from .build import build_site

    result = _run_build(lambda: build_site(site.project_root, overrides))
    click.echo(
        f"Built {result.page_count} pages and {len(result.tags)} tags into {result.output_dir} "
        f"({len(result.stats.rebuilt)} artifacts rebuilt, {result.published} files published)"
    )


@cli.command()
@click.pass_context
def clean(ctx: click.Context):
    """Remove the build area and the output directory."""
    site = _load_site(ctx)
    from .publish import clean as clean_site

    removed = clean_site(site)
    if not removed:
        click.echo("Nothing to clean")
    for directory in removed:
        click.echo(f"Removed {directory}")


@cli.command()
@click.pass_context
def watch(ctx: click.Context):
    """Rebuild the site whenever a source file changes."""
    site = _load_site(ctx)
    from .server import DevServer

    server = DevServer(site.project_root)
    _run_build(server.watch)


@cli.command()
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides site.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (defaults to port + 1)",
)
@click.pass_context
def serve(ctx: click.Context, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    site = _load_site(ctx)
    from .server import DevServer

    server = DevServer(site.project_root, http_port=port, ws_port=ws_port)
    _run_build(server.start)


def _run_build(run):
    """Call ``run`` and report build failures the way the build command does."""
    from .build import BuildError

    try:
        return run()
    except BuildError as exc:
        _fail(
            "Build failed:",
            f"Page: {exc.page_path}",
            f"Artifact: {exc.artifact}",
            f"Error: {exc.message}",
        )
    except ScanError as exc:
        _fail("Build failed:", f"Directory: {exc.source_path}", f"Error: {exc.message}")
    except (ConfigError, ConverterError, TemplateNotFoundError) as exc:
        _fail("Build failed:", str(exc))


@cli.command()
@click.option("--dry-run", is_flag=True, help="Only show what would be transferred")
@click.pass_context
def deploy(ctx: click.Context, dry_run: bool):
    """Synchronise the output directory to the deploy target."""
    site = _load_site(ctx)
    from .deploy import DeployError, deploy as deploy_site

    try:
        output = deploy_site(site, site.output_dir, dry_run=dry_run)
    except DeployError as exc:
        _fail("Deploy failed:", str(exc))
    if output:
        click.echo(output.rstrip("\n"))
    click.echo(f"Deployed {site.output_dir} to {site.deploy_target}")


@cli.command()
@click.pass_context
def page(ctx: click.Context):
    """Create a new page interactively."""
    site = _load_site(ctx)
    try:
        root = scan_pages(site)
    except ScanError as exc:
        raise click.ClickException(str(exc)) from exc

    parents = [node.path for node in root.walk()]
    parent_path = questionary.select(
        "Parent page:",
        choices=parents,
        style=_questionary_style(),
    ).ask()
    if parent_path is None:
        raise click.Abort()

    title = questionary.text(
        "Title:",
        validate=lambda x: len(slugify(x)) > 0 or "Title needs at least one letter or digit",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = " ".join(title.split())

    feed = questionary.confirm(
        "Publish a feed of its subpages?",
        default=False,
        style=_questionary_style(),
    ).ask()
    if feed is None:
        raise click.Abort()

    parent_dir = site.content_dir / parent_path.strip("/")
    target = parent_dir / slugify(title)
    if target.exists():
        raise click.ClickException(
            f"Page already exists: {target.relative_to(site.project_root)}"
        )
    casefolded = {child.name.casefold() for child in parent_dir.iterdir() if child.is_dir()}
    if target.name.casefold() in casefolded:
        raise click.ClickException(f"A sibling page differing only by case exists: {target.name}")
    if parent_path == "/" and target.name == "tags":
        raise click.ClickException("A top-level page cannot be named 'tags'")

    target.mkdir(parents=True)
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    lines = [f"title = {title}", f"date = {today}"]
    if feed:
        lines.append("feed = 1")
    (target / PAGE_CONFIG_FILENAME).write_text("\n".join(lines) + "\n", encoding="utf-8")
    (target / "index.md").write_text(f"# {title}\n\n", encoding="utf-8")
    click.echo(f"Created {target.relative_to(site.project_root)}")


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Create the directory structure and files for a new Treepress project.

    Args:
        root: Root directory for the new project.
    """
    sitename = titleize(root.name)
    pages_dir = root / DEFAULT_CONFIG["content_dir"]
    pages_dir.mkdir(parents=True, exist_ok=True)
    site_yaml = {
        "sitename": sitename,
        "scheme": "https",
        "domain": "localhost",
        "basepath": "",
        "author_name": "",
        "author_email": "",
        "sort": DEFAULT_CONFIG["sort"],
        "tag_feed": True,
    }
    (root / CONFIG_FILENAME).write_text(
        yaml.safe_dump(site_yaml, sort_keys=False, allow_unicode=True), encoding="utf-8"
    )
    (pages_dir / PAGE_CONFIG_FILENAME).write_text(
        _ROOT_CONFIG.format(sitename=sitename), encoding="utf-8"
    )
    (pages_dir / "index.md").write_text(_ROOT_MARKDOWN, encoding="utf-8")
    TemplateStore(root / DEFAULT_CONFIG["templates_dir"]).write_defaults()
