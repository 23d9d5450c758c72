from __future__ import annotations

import subprocess  # noqa: S404
from shutil import which
from typing import TYPE_CHECKING

from codebase_flattener.config import VCS_DIR
from codebase_flattener.exceptions import GitCommandError
from codebase_flattener.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


def run_git(args: Sequence[str], cwd: Path) -> str:
    """Run a git command in `cwd` and return its stripped standard output.

    Args:
        args (Sequence[str]): git arguments, without the leading "git"
        cwd (Path): working directory for the command

    Raises:
        GitCommandError: if git is missing or exits with a non-zero status.

    Returns:
        str: the command's standard output, stripped
    """
    command = " ".join(["git", *args])
    git = which("git")
    if git is None:
        raise GitCommandError(command=command, returncode=127, stdout="", stderr="git executable not found")
    try:
        out = subprocess.run(  # noqa: S603
            [git, *args],
            cwd=str(cwd),
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
            capture_output=True,
            check=False,
        )
    except OSError as e:
        raise GitCommandError(command=command, returncode=-1, stdout="", stderr=str(e)) from e
    if out.returncode != 0:
        raise GitCommandError(
            command=command,
            returncode=out.returncode,
            stdout=out.stdout,
            stderr=out.stderr,
        )
    return out.stdout.strip()


def is_repo(root: Path) -> bool:
    """Check whether `root` is the top of a git working tree.

    Args:
        root (Path): the selection root

    Returns:
        bool: True if a `.git` entry exists directly under `root`
    """
    return (root / VCS_DIR).exists()


def branch_and_commit(root: Path) -> tuple[str | None, str | None]:
    """Look up the current branch name and commit hash.

    Failures are logged and reported as None, never raised.

    Args:
        root (Path): the selection root

    Returns:
        tuple[str | None, str | None]: (branch, commit)
    """
    if not is_repo(root):
        return None, None
    values: list[str | None] = []
    for args in (["rev-parse", "--abbrev-ref", "HEAD"], ["rev-parse", "HEAD"]):
        try:
            values.append(run_git(args, root) or None)
        except GitCommandError as e:
            logger.warning("git lookup failed", command=e.command, returncode=e.returncode, error=str(e))
            values.append(None)
    return values[0], values[1]


def tracked_files(root: Path) -> list[str]:
    """List the files tracked by git under `root`, as reported by `git ls-files`.

    Failures are logged and reported as an empty list, never raised.

    Args:
        root (Path): the selection root

    Returns:
        list[str]: tracked paths relative to `root`, in git's order, without duplicates
    """
    try:
        out = run_git(["ls-files", "-z"], root)
    except GitCommandError as e:
        logger.warning("git ls-files failed", command=e.command, returncode=e.returncode, error=str(e))
        return []
    return list(dict.fromkeys(p for p in out.split("\x00") if p))
