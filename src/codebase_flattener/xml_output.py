from __future__ import annotations

import base64
import re
from typing import TYPE_CHECKING

from codebase_flattener.config import ARTIFACT_VERSION, DIGEST_ALGORITHM, OutputFormat
from codebase_flattener.output_construction import ArtifactWriter

if TYPE_CHECKING:
    from collections.abc import Iterable

    from codebase_flattener.config import Chunk, FileRecord, RunMetadata

CDATA_OPEN = "<![CDATA["
CDATA_CLOSE = "]]>"
# Closes the current section after "]]" and reopens one holding ">".
CDATA_SPLIT = "]]" + CDATA_CLOSE + CDATA_OPEN + ">"
CDATA_CR = CDATA_CLOSE + "&#13;" + CDATA_OPEN

# Characters XML 1.0 cannot carry, not even as character references.
_ILLEGAL_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def xml_text(s: object) -> str:
    """Escape a value for an element text position."""
    out = _ILLEGAL_XML_CHARS.sub("\ufffd", str(s))
    return out.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def xml_attr(s: object) -> str:
    """Escape a value for a double-quoted attribute position."""
    out = xml_text(s).replace('"', "&quot;").replace("'", "&apos;")
    return out.replace("\t", "&#9;").replace("\n", "&#10;").replace("\r", "&#13;")


def cdata(text: str) -> str:
    """Wrap text in a CDATA section, splitting it around every "]]>".

    Carriage returns are written as character references between sections,
    since parsers fold them into line feeds inside CDATA.

    Args:
        text (str): literal content

    Returns:
        str: one or more adjacent CDATA sections whose concatenated content is `text`
    """
    body = text.replace(CDATA_CLOSE, CDATA_SPLIT).replace("\r", CDATA_CR)
    return CDATA_OPEN + body + CDATA_CLOSE


def needs_base64(text: str) -> bool:
    """Check whether text holds characters that XML 1.0 cannot represent."""
    return _ILLEGAL_XML_CHARS.search(text) is not None


def literal(text: str) -> tuple[str, str]:
    """Render literal content and the extra attributes it needs.

    Text that XML can carry goes into CDATA. Text holding control characters
    XML forbids is stored as base64 of its UTF-8 bytes instead, flagged with
    an `encoding="base64"` attribute, so the document stays well-formed and
    the text stays recoverable.

    Args:
        text (str): literal content

    Returns:
        tuple[str, str]: (extra attributes, element body)
    """
    if needs_base64(text):
        return ' encoding="base64"', base64.b64encode(text.encode("utf-8")).decode("ascii")
    return "", cdata(text)


def _attrs(pairs: Iterable[tuple[str, object]]) -> str:
    return " ".join(f'{k}="{xml_attr(v)}"' for k, v in pairs)


class XmlArtifactWriter(ArtifactWriter):
    """Render the artifact as a `<codebase>` XML document."""

    format = OutputFormat.XML

    def _render_start(self, metadata: RunMetadata) -> None:
        pairs: list[tuple[str, object]] = [
            ("version", ARTIFACT_VERSION),
            ("root", metadata.root),
            ("generated_at", metadata.generated_at_iso),
        ]
        if metadata.branch:
            pairs.append(("branch", metadata.branch))
        if metadata.commit:
            pairs.append(("commit", metadata.commit))
        self._w('<?xml version="1.0" encoding="UTF-8"?>\n')
        self._w(f"<codebase {_attrs(pairs)}>\n")
        self._w("  <config>\n")
        self._w(f"    <includes>{xml_text(','.join(metadata.includes))}</includes>\n")
        self._w(f"    <excludes>{xml_text(','.join(metadata.excludes))}</excludes>\n")
        self._w(f"    <max_file_bytes>{metadata.max_file_bytes}</max_file_bytes>\n")
        self._w(f"    <chunk_bytes>{metadata.chunk_bytes}</chunk_bytes>\n")
        self._w("  </config>\n")

    def _render_file_header(self, record: FileRecord) -> None:
        pairs: list[tuple[str, object]] = [
            ("path", record.path),
            ("lang", record.lang),
            ("size_bytes", record.size_bytes),
            ("sha256", record.sha256),
            ("is_binary", "true" if record.is_binary else "false"),
            ("encoding", record.encoding),
        ]
        self._w(f"  <file {_attrs(pairs)}>\n")

    def _render_text(self, text: str) -> None:
        extra, body = literal(text)
        self._w(f"    <content{extra}>{body}</content>\n")

    def _render_chunks(self, chunks: Iterable[Chunk]) -> None:
        self._w("    <chunks>\n")
        for c in chunks:
            extra, body = literal(c.text)
            self._w(f'      <chunk index="{c.index}" offset="{c.offset}"{extra}>{body}</chunk>\n')
        self._w("    </chunks>\n")

    def _render_binary(self, data: bytes) -> None:
        self._w("    <content_base64>")
        self._w(base64.b64encode(data).decode("ascii"))
        self._w("</content_base64>\n")

    def _render_error(self, message: str) -> None:
        self._w(f"    <error>{xml_text(message)}</error>\n")

    def _render_end_file(self) -> None:
        self._w("  </file>\n")

    def _render_end(self, digest: str) -> None:
        self._w(f'  <digest algo="{DIGEST_ALGORITHM}">{xml_text(digest)}</digest>\n')
        self._w("</codebase>\n")
