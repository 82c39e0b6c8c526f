"""Deployment of the published output tree.

The output tree is synchronised to ``deploy_target`` (an rsync destination
such as ``user@host:/var/www/site/``) with the configured deploy command.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

from .config import SiteConfig
from .executable_utils import find_executable

logger = logging.getLogger(__name__)


class DeployError(Exception):
    """Error raised when the site cannot be deployed."""


def deploy_command(site: SiteConfig, output_dir: Path, dry_run: bool = False) -> list[str]:
    """Build the argument list that synchronises ``output_dir`` to the target.

    Raises:
        DeployError: If no target is configured or the command is not installed.
    """
    if not site.deploy_target:
        raise DeployError("No deploy_target configured in site.yaml")
    parts = shlex.split(site.deploy_command)
    if not parts:
        raise DeployError("deploy_command is empty")
    executable = find_executable(parts[0], site.project_root)
    if executable is None:
        raise DeployError(f"Deploy command not found: {parts[0]}")

    args = [executable, *parts[1:]]
    if Path(executable).name == "rsync":
        args.extend(["--archive", "--compress", "--delete", "--verbose"])
        if dry_run:
            args.append("--dry-run")
    # Trailing slash: copy the directory's contents, not the directory itself.
    args.extend([f"{output_dir}/", site.deploy_target])
    return args


def deploy(site: SiteConfig, output_dir: Path, dry_run: bool = False) -> str:
    """Synchronise the output tree to the deploy target.

    Args:
        site: Site configuration naming the command and the target.
        output_dir: Published output tree.
        dry_run: Ask rsync to only report what would change.

    Returns:
        The command's standard output.

    Raises:
        DeployError: If the output is missing, the command cannot be found
            or it exits with a non-zero status.
    """
    if not output_dir.is_dir():
        raise DeployError(f"Nothing to deploy: {output_dir} does not exist; run a build first")
    args = deploy_command(site, output_dir, dry_run)
    logger.info("Deploying: %s", shlex.join(args))
    try:
        completed = subprocess.run(args, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise DeployError(f"Could not run {args[0]}: {exc}") from exc
    if completed.returncode != 0:
        detail = completed.stderr.strip() or f"exit status {completed.returncode}"
        raise DeployError(f"{Path(args[0]).name} failed: {detail}")
    return completed.stdout
