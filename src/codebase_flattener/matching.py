"""Include/exclude glob matching over POSIX relative paths.

The dialect is small:

- ``*`` matches any run of characters except ``/``;
- ``?`` matches exactly one character except ``/``;
- ``**`` as a whole segment matches zero or more segments, so ``**/*.md``
  matches both ``readme.md`` and ``docs/readme.md`` and ``src/**`` matches
  ``src/a/b.txt``;
- a trailing ``/`` is shorthand for ``/**``.

Everything else is literal.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    Matcher = Callable[[str], bool]
    PatternCompiler = Callable[[str], Matcher]

_GLOBSTAR = "**"


def to_posix(path: str) -> str:
    """Normalize host separators to forward slashes.

    Args:
        path (str): a relative path, possibly using backslashes

    Returns:
        str: the same path using "/" as separator
    """
    return path.replace("\\", "/")


def normalize_globs(globs: Iterable[str | None]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Strips whitespace, drops blank patterns, replaces backslashes with forward
    slashes and removes a leading "./".

    Args:
        globs (Iterable[str | None]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns, in their original order
    """
    out: list[str] = []
    for g in globs:
        g2 = to_posix((g or "").strip())
        g2 = g2.removeprefix("./")
        if not g2:
            continue
        out.append(g2)
    return out


def _translate_segment(segment: str) -> str:
    parts: list[str] = []
    i = 0
    while i < len(segment):
        ch = segment[i]
        if ch == "*":
            j = i
            while j < len(segment) and segment[j] == "*":
                j += 1
            # A "**" glued to other characters still crosses separators.
            parts.append(".*" if j - i > 1 else "[^/]*")
            i = j
            continue
        parts.append("[^/]" if ch == "?" else re.escape(ch))
        i += 1
    return "".join(parts)


def glob_to_regex(pattern: str) -> str:
    """Translate a glob pattern into an anchored regular expression source.

    Args:
        pattern (str): a normalized glob pattern

    Returns:
        str: a regular expression matching the whole relative path
    """
    if pattern.endswith("/"):
        pattern += _GLOBSTAR
    segments = pattern.split("/")
    out = ""
    for idx, seg in enumerate(segments):
        last = idx == len(segments) - 1
        if seg == _GLOBSTAR:
            if last:
                out = out[:-1] + "(?:/.*)?" if out.endswith("/") else out + ".*"
            else:
                out += "(?:.*/)?"
            continue
        out += _translate_segment(seg)
        if not last:
            out += "/"
    return rf"\A{out}\Z"


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Matcher:
    """Compile one glob pattern into a membership predicate.

    Args:
        pattern (str): a normalized glob pattern

    Returns:
        Matcher: a callable returning True when a POSIX relative path matches
    """
    regex = re.compile(glob_to_regex(pattern), re.DOTALL)
    return lambda rel: regex.match(rel) is not None


class PathMatcher:
    """Include/exclude predicate compiled from two ordered pattern lists.

    A path is included iff it matches at least one include pattern (an empty
    include list matches everything) and no exclude pattern.
    """

    def __init__(
        self,
        includes: Sequence[str] = (),
        excludes: Sequence[str] = (),
        *,
        compiler: PatternCompiler = compile_pattern,
    ) -> None:
        self.includes = tuple(normalize_globs(includes))
        self.excludes = tuple(normalize_globs(excludes))
        self._include = [compiler(p) for p in self.includes]
        self._exclude = [compiler(p) for p in self.excludes]

    def included(self, rel: str) -> bool:
        """Check whether a relative path passes the include/exclude filters.

        Args:
            rel (str): path relative to the selection root (any separator)

        Returns:
            bool: True if the path is selected
        """
        rp = to_posix(rel)
        if self._include and not any(m(rp) for m in self._include):
            return False
        return not any(m(rp) for m in self._exclude)

    __call__ = included

    def __repr__(self) -> str:
        return f"PathMatcher(includes={list(self.includes)!r}, excludes={list(self.excludes)!r})"
