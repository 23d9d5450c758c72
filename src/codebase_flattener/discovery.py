from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from codebase_flattener import vcs
from codebase_flattener.config import VCS_DIR
from codebase_flattener.logging import logger
from codebase_flattener.matching import to_posix

if TYPE_CHECKING:
    from collections.abc import Iterable

    from codebase_flattener.matching import PathMatcher


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return to_posix(str(path.relative_to(root)))
    except ValueError:
        return to_posix(str(path))


def walk_files(root: Path, *, follow_symlinks: bool = False) -> set[Path]:
    """Collect files by a depth-first walk of the filesystem under `root`.

    Regular files are always collected and `.git` directories are never
    entered. Symbolic links are only considered with `follow_symlinks`: a link
    to a file is collected under its own (link) path, a link to a directory is
    walked, and a broken link is skipped. A directory link pointing back to one
    of its own ancestors is not entered, so cycles end without making the
    result depend on directory entry order.

    Args:
        root (Path): the root directory to walk
        follow_symlinks (bool): whether to follow symbolic links

    Returns:
        set[Path]: absolute paths of the files found under `root`
    """
    results: set[Path] = set()
    # (directory, resolved directories on the path from root down to it)
    stack: list[tuple[Path, frozenset[Path]]] = [(root, frozenset({root.resolve()}))]
    while stack:
        directory, ancestors = stack.pop()
        try:
            with os.scandir(directory) as it:
                entries = list(it)
        except OSError as e:
            logger.warning("Skipping unreadable directory", path=str(directory), error=str(e))
            continue
        for entry in entries:
            p = Path(entry.path)
            if entry.is_symlink():
                if not follow_symlinks:
                    continue
                try:
                    st = p.stat()
                except OSError:
                    continue
                if stat.S_ISREG(st.st_mode):
                    results.add(p)
                elif stat.S_ISDIR(st.st_mode):
                    real = p.resolve()
                    if real not in ancestors:
                        stack.append((p, ancestors | {real}))
            elif entry.is_dir(follow_symlinks=False):
                if entry.name == VCS_DIR:
                    continue
                stack.append((p, (ancestors | {p.resolve()}) if follow_symlinks else ancestors))
            elif entry.is_file(follow_symlinks=False):
                results.add(p)
    return results


def git_ls_files(root: Path) -> set[Path]:
    """Get the tracked files of the git repository rooted at `root`.

    Args:
        root (Path): the root of the git working tree

    Returns:
        set[Path]: absolute paths of the tracked files (empty if git failed)
    """
    return {root / rel for rel in vcs.tracked_files(root)}


def discover(root: Path, *, honor_vcs: bool = True, follow_symlinks: bool = False) -> set[Path]:
    """Produce the candidate files for a run.

    With `honor_vcs` and a git working tree at `root`, the candidates are
    exactly the tracked files and nothing is walked. Otherwise the filesystem
    is walked.

    Args:
        root (Path): the absolute selection root
        honor_vcs (bool): use `git ls-files` when `root` is a git working tree
        follow_symlinks (bool): follow symbolic links during the walk

    Returns:
        set[Path]: unordered absolute candidate paths
    """
    if honor_vcs and vcs.is_repo(root):
        files = git_ls_files(root)
        if not files:
            logger.warning("No tracked files reported by git", root=str(root))
        logger.info("Discovered candidates", mode="manifest", root=str(root), candidates=len(files))
        return files
    files = walk_files(root, follow_symlinks=follow_symlinks)
    logger.info("Discovered candidates", mode="walk", root=str(root), candidates=len(files))
    return files


def select(
    candidates: Iterable[Path],
    root: Path,
    matcher: PathMatcher,
    *,
    skip: Iterable[Path] = (),
) -> list[tuple[Path, str]]:
    """Filter candidates and sort them into the selection manifest.

    The manifest is ordered by POSIX relative path using plain code point
    comparison, so it never depends on traversal order or on the host OS.

    Args:
        candidates (Iterable[Path]): absolute candidate paths
        root (Path): the selection root
        matcher (PathMatcher): include/exclude predicate
        skip (Iterable[Path]): absolute paths never selected (e.g. the output file)

    Returns:
        list[tuple[Path, str]]: (absolute path, relative POSIX path) pairs in manifest order
    """
    skipped = {relpath(p, root) for p in skip}
    by_rel: dict[str, Path] = {}
    for p in candidates:
        rel = relpath(p, root)
        if rel in skipped or not matcher.included(rel):
            continue
        by_rel.setdefault(rel, p)
    return [(by_rel[rel], rel) for rel in sorted(by_rel)]
