"""codebase-flattener: snapshot a source tree into one Markdown or XML artifact.

It prefers `git ls-files` inside a git working tree (so ignored and untracked
files never leak into the artifact) and walks the filesystem otherwise, or
when `--no-honor-gitignore` is given. Files are filtered with include/exclude
globs, sorted by relative path, hashed, and written with their content: text
inline or in chunks, binaries as base64.

Usage
-----
Run `python -m codebase_flattener --help` for full options. Common examples:
    - XML snapshot of the current repository:
        codebase-flattener --out codebase.xml

    - Markdown snapshot of Python sources only:
        codebase-flattener --format md --include "src/**/*.py" --out snapshot.md

    - Settings from a config file, logging to a file:
        codebase-flattener --config flatten.json --log-file flatten.log
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING, Any

from codebase_flattener import __version__
from codebase_flattener.config import OutputFormat
from codebase_flattener.exceptions import FlattenerError
from codebase_flattener.flatten import flatten
from codebase_flattener.logging import logger, setup_logging
from codebase_flattener.settings import env_default, load_config_file, parse_csv, resolve_settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from codebase_flattener.settings import Settings


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="codebase-flattener",
        description="Flatten a source tree into a single Markdown or XML artifact.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--root", type=str, default=None, help="Root directory (default: cwd).")
    p.add_argument("--out", dest="output", type=str, default=None, help="Output file.")
    p.add_argument(
        "--include",
        type=str,
        default=None,
        help='POSIX globs to include, comma separated: "src/**,*.md".',
    )
    p.add_argument("--exclude", type=str, default=None, help="POSIX globs to exclude, comma separated.")
    p.add_argument(
        "--max-file-bytes",
        type=int,
        default=None,
        help="Binary files above are listed without payload (default 200000).",
    )
    p.add_argument(
        "--chunk-bytes",
        type=int,
        default=None,
        help="Text files above are split into chunks (default 50000, <= 0 disables).",
    )
    p.add_argument(
        "--follow-symlinks",
        action="store_true",
        default=None,
        help="Follow symlinks on filesystem walk.",
    )
    p.add_argument(
        "--no-honor-gitignore",
        dest="honor_gitignore",
        action="store_false",
        default=None,
        help="Do not use 'git ls-files' even in a repository.",
    )
    p.add_argument(
        "--format",
        type=str.lower,
        choices=[f.value for f in OutputFormat],
        default=None,
        help="Output format (default: xml).",
    )
    p.add_argument("--config", type=str, default=None, help="Optional JSON or YAML config file.")
    p.add_argument("--log-file", type=str, default=None, help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command line arguments and merge them with the optional config file.

    Args:
        argv (Sequence[str] | None): arguments, defaults to sys.argv[1:]

    Raises:
        InvalidSettingsError: if an option value fails validation.

    Returns:
        Settings: the resolved settings
    """
    args = build_parser().parse_args(argv)
    values: dict[str, Any] = vars(args)
    include = values.pop("include")
    exclude = values.pop("exclude")
    values["includes"] = parse_csv(include) if include is not None else None
    values["excludes"] = parse_csv(exclude) if exclude is not None else None

    config_path = values.get("config") or env_default("CONFIG") or None
    values["config"] = config_path
    values["log_file"] = values.get("log_file") or env_default("LOG_FILE") or None
    config = load_config_file(config_path) if config_path else {}
    return resolve_settings(values, config)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = parse_args(argv)
    except FlattenerError as e:
        logger.error("Invalid settings", error=str(e))  # noqa: TRY400
        return 1
    if settings.log_file:
        setup_logging(settings.log_file)

    try:
        result = flatten(settings)
    except FlattenerError as e:
        logger.error("Flatten failed", error=str(e))  # noqa: TRY400
        return 1

    print(result.output)  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
