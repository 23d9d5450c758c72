from __future__ import annotations

import base64
import re
from typing import TYPE_CHECKING

from codebase_flattener.config import ARTIFACT_VERSION, DIGEST_ALGORITHM, UNKNOWN_LANG, OutputFormat
from codebase_flattener.output_construction import ArtifactWriter

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from codebase_flattener.config import Chunk, FileRecord, RunMetadata

_BACKTICK_RUN = re.compile(r"`+")
_SLUG_DROP = re.compile(r"[^\w\- ]")
_MD_SPECIAL = re.compile(r"[\\`*_]")


def esc(s: object) -> str:
    """Neutralize angle brackets and line breaks in inline Markdown."""
    text = "" if s is None else str(s)
    text = text.replace("\r", " ").replace("\n", " ")
    return text.replace("<", "&lt;").replace(">", "&gt;")


def fence_for(text: str) -> str:
    """Pick a backtick fence longer than any backtick run inside `text`."""
    longest = max((len(m) for m in _BACKTICK_RUN.findall(text)), default=0)
    return "`" * max(3, longest + 1)


def slugify(heading: str) -> str:
    """GitHub-style anchor for a heading text, before de-duplication."""
    return _SLUG_DROP.sub("", heading.strip().lower()).replace(" ", "-")


def md_inline(s: object) -> str:
    """Escape a value so emphasis and code spans in it render literally."""
    return _MD_SPECIAL.sub(r"\\\g<0>", esc(s))


def link_label(s: str) -> str:
    return md_inline(s).replace("[", r"\[").replace("]", r"\]")


class MarkdownArtifactWriter(ArtifactWriter):
    """Render the artifact as a Markdown snapshot.

    Text is written in fenced blocks followed by exactly one extra newline
    before the closing fence, so dropping that newline recovers the content.
    The trailing index links every file section in emission order.
    """

    format = OutputFormat.MD

    def __init__(self, out_path: Path) -> None:
        super().__init__(out_path)
        self._slugs: dict[str, int] = {}
        self._anchors: list[str] = []
        self._lang = ""

    def _heading(self, level: int, text: str, label: str | None = None) -> str:
        """Write a heading and return its anchor.

        The anchor is computed from `text`, the heading as rendered, while
        `label` is the escaped source written in its place.
        """
        base = slugify(text)
        n = self._slugs.get(base, 0)
        self._slugs[base] = n + 1
        self._w(f"{'#' * level} {label if label is not None else text}\n\n")
        return base if n == 0 else f"{base}-{n}"

    def _fenced(self, text: str, info: str = "") -> None:
        fence = fence_for(text)
        self._w(f"{fence}{info}\n")
        self._w(text)
        self._w(f"\n{fence}\n\n")

    def _render_start(self, metadata: RunMetadata) -> None:
        self._heading(1, "Codebase Snapshot (Markdown)")
        self._w(f"- root: {esc(metadata.root)}\n")
        self._w(f"- generated_at: {esc(metadata.generated_at_iso)}\n")
        if metadata.branch:
            self._w(f"- branch: {esc(metadata.branch)}\n")
        if metadata.commit:
            self._w(f"- commit: {esc(metadata.commit)}\n")
        self._w(f"- version: {ARTIFACT_VERSION}\n\n")
        self._heading(2, "Config")
        self._w(f"- includes: {esc(', '.join(metadata.includes))}\n")
        self._w(f"- excludes: {esc(', '.join(metadata.excludes))}\n")
        self._w(f"- max_file_bytes: {metadata.max_file_bytes}\n")
        self._w(f"- chunk_bytes: {metadata.chunk_bytes}\n\n")
        self._w("---\n\n")
        self._heading(2, "Files")

    def _render_file_header(self, record: FileRecord) -> None:
        self._anchors.append(self._heading(3, record.path, md_inline(record.path)))
        self._lang = "" if record.lang == UNKNOWN_LANG else record.lang
        self._w(f"- lang: {esc(record.lang)}\n")
        self._w(f"- size_bytes: {record.size_bytes}\n")
        self._w(f"- sha256: {esc(record.sha256)}\n")
        self._w(f"- binary: {'true' if record.is_binary else 'false'}\n")
        self._w(f"- encoding: {esc(record.encoding)}\n\n")

    def _render_text(self, text: str) -> None:
        self._fenced(text, self._lang)

    def _render_chunks(self, chunks: Iterable[Chunk]) -> None:
        self._w("> This file is chunked for size. Combine chunks in order.\n\n")
        for c in chunks:
            self._heading(4, f"chunk {c.index} (offset {c.offset})")
            self._fenced(c.text, self._lang)

    def _render_binary(self, data: bytes) -> None:
        self._w(f"<details>\n<summary>binary content (base64, {len(data)} bytes)</summary>\n\n")
        self._fenced(base64.b64encode(data).decode("ascii"), "base64")
        self._w("</details>\n\n")

    def _render_error(self, message: str) -> None:
        self._w(f"> Error while reading file: {esc(message)}\n\n")

    def _render_end_file(self) -> None:
        self._lang = ""
        self._w("---\n\n")

    def _render_end(self, digest: str) -> None:
        self._heading(2, "Digest")
        self._w(f"- algo: {DIGEST_ALGORITHM}\n")
        self._w(f"- value: {esc(digest)}\n\n")
        self._heading(2, "Index")
        for path, anchor in zip(self.paths, self._anchors, strict=True):
            self._w(f"- [{link_label(path)}](#{anchor})\n")
        self._w("\n")
