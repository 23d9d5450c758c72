from __future__ import annotations

import inspect
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from codebase_flattener import discovery
from codebase_flattener.discovery import discover, relpath, select, walk_files
from codebase_flattener.matching import PathMatcher

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pytest_mock import MockerFixture

needs_symlinks = pytest.mark.skipif(os.name == "nt", reason="symlinks need privileges on Windows")


def _touch(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.unit
def test_relpath_uses_posix_separators(tmp_path: Path) -> None:
    assert relpath(tmp_path / "a" / "b.txt", tmp_path) == "a/b.txt"


@pytest.mark.unit
def test_walk_files_collects_nested_files_and_skips_git(tmp_path: Path) -> None:
    a = _touch(tmp_path / "a.txt")
    b = _touch(tmp_path / "src" / "pkg" / "b.py")
    _touch(tmp_path / ".git" / "HEAD")
    _touch(tmp_path / "vendor" / ".git" / "config")

    assert walk_files(tmp_path) == {a, b}


@pytest.mark.unit
@needs_symlinks
def test_walk_files_ignores_symlinks_by_default(tmp_path: Path) -> None:
    target = _touch(tmp_path / "real" / "f.txt")
    (tmp_path / "link.txt").symlink_to(target)
    (tmp_path / "linkdir").symlink_to(tmp_path / "real", target_is_directory=True)

    assert walk_files(tmp_path) == {target}


@pytest.mark.unit
@needs_symlinks
def test_walk_files_follows_symlinks_when_asked(tmp_path: Path) -> None:
    outside = _touch(tmp_path / "outside" / "shared.txt")
    root = tmp_path / "root"
    own = _touch(root / "own.txt")
    (root / "link.txt").symlink_to(outside)
    (root / "linkdir").symlink_to(outside.parent, target_is_directory=True)
    (root / "broken").symlink_to(root / "missing.txt")

    found = walk_files(root, follow_symlinks=True)

    assert found == {own, root / "link.txt", root / "linkdir" / "shared.txt"}


@pytest.mark.unit
@needs_symlinks
def test_walk_files_terminates_on_symlink_cycles(tmp_path: Path) -> None:
    f = _touch(tmp_path / "d" / "f.txt")
    (tmp_path / "d" / "loop").symlink_to(tmp_path / "d", target_is_directory=True)

    assert walk_files(tmp_path, follow_symlinks=True) == {f}


@pytest.mark.unit
def test_select_sorts_by_posix_relative_path(tmp_path: Path) -> None:
    files = [tmp_path / "b" / "x", tmp_path / "a" / "z", tmp_path / "a" / "y"]

    manifest = select(files, tmp_path, PathMatcher())

    assert [rel for _, rel in manifest] == ["a/y", "a/z", "b/x"]


@pytest.mark.unit
def test_select_is_case_sensitive_and_deduplicates(tmp_path: Path) -> None:
    files = [tmp_path / "a.txt", tmp_path / "B.txt", tmp_path / "a.txt"]

    manifest = select(files, tmp_path, PathMatcher())

    assert [rel for _, rel in manifest] == ["B.txt", "a.txt"]


@pytest.mark.unit
def test_select_applies_matcher_and_skip(tmp_path: Path) -> None:
    files = [tmp_path / "src" / "a.py", tmp_path / "src" / "a.bin", tmp_path / "out.xml"]

    manifest = select(
        files,
        tmp_path,
        PathMatcher(excludes=["**/*.bin"]),
        skip=[tmp_path / "out.xml"],
    )

    assert manifest == [(tmp_path / "src" / "a.py", "src/a.py")]


@pytest.mark.unit
def test_discover_uses_tracked_files_in_git_repository(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / ".git").mkdir()
    _touch(tmp_path / "untracked.txt")
    mocker.patch.object(discovery.vcs, "tracked_files", return_value=["a.txt", "src/b.py"])
    walk = mocker.patch.object(discovery, "walk_files")

    found = discover(tmp_path, honor_vcs=True)

    assert found == {tmp_path / "a.txt", tmp_path / "src" / "b.py"}
    walk.assert_not_called()


@pytest.mark.unit
def test_discover_walks_when_vcs_is_not_honored(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / ".git").mkdir()
    f = _touch(tmp_path / "untracked.txt")
    tracked = mocker.patch.object(discovery.vcs, "tracked_files")

    assert discover(tmp_path, honor_vcs=False) == {f}
    tracked.assert_not_called()


@pytest.mark.unit
def test_discover_walks_outside_git(tmp_path: Path) -> None:
    f = _touch(tmp_path / "a.txt")

    assert discover(tmp_path, honor_vcs=True) == {f}


@pytest.mark.unit
@needs_symlinks
@pytest.mark.parametrize("reverse", [False, True])
def test_walk_files_does_not_depend_on_entry_order(
    tmp_path: Path,
    mocker: MockerFixture,
    reverse: bool,  # noqa: FBT001
) -> None:
    _touch(tmp_path / "b" / "f.txt")
    (tmp_path / "a").symlink_to(tmp_path / "b", target_is_directory=True)
    real_scandir = os.scandir

    @contextmanager
    def ordered_scandir(path: Any) -> Iterator[Iterator[os.DirEntry[str]]]:  # noqa: ANN401
        with real_scandir(path) as it:
            entries = sorted(it, key=lambda e: e.name, reverse=reverse)
        yield iter(entries)

    mocker.patch.object(discovery.os, "scandir", side_effect=ordered_scandir)

    found = walk_files(tmp_path, follow_symlinks=True)

    assert sorted(relpath(p, tmp_path) for p in found) == ["a/f.txt", "b/f.txt"]


@pytest.mark.unit
@needs_symlinks
def test_walk_files_cuts_only_links_to_ancestors(tmp_path: Path) -> None:
    _touch(tmp_path / "x" / "f.txt")
    (tmp_path / "x" / "up").symlink_to(tmp_path, target_is_directory=True)
    (tmp_path / "y").symlink_to(tmp_path / "x", target_is_directory=True)

    found = walk_files(tmp_path, follow_symlinks=True)

    assert sorted(relpath(p, tmp_path) for p in found) == ["x/f.txt", "y/f.txt"]


@pytest.mark.unit
def test_walk_files_does_not_recurse_per_directory(tmp_path: Path) -> None:
    deep = tmp_path
    for _ in range(200):
        deep /= "d"
        deep.mkdir()
    leaf = _touch(deep / "leaf.txt")
    limit = sys.getrecursionlimit()
    # leave room for the walk itself, far less than one frame per level
    sys.setrecursionlimit(len(inspect.stack(0)) + 50)
    try:
        found = walk_files(tmp_path)
    finally:
        sys.setrecursionlimit(limit)

    assert found == {leaf}
