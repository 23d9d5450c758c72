from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum, auto
from pathlib import Path
from typing import IO, TYPE_CHECKING, Self

from codebase_flattener.config import OutputFormat
from codebase_flattener.exceptions import OutputSetupError, UnsupportedFormatError, WriterStateError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from codebase_flattener.config import Chunk, FileRecord, RunMetadata


class WriterState(StrEnum):
    """Lifecycle of an artifact writer."""

    NOT_STARTED = auto()
    STARTED = auto()
    FILE_OPEN = auto()
    FILE_WITH_CONTENT = auto()
    FILE_CLOSED = auto()
    ENDED = auto()
    CLOSED = auto()


_BETWEEN_FILES = frozenset({WriterState.STARTED, WriterState.FILE_CLOSED})
_IN_FILE = frozenset({WriterState.FILE_OPEN, WriterState.FILE_WITH_CONTENT})


def describe_error(error: BaseException | str) -> str:
    """Render an error as "<ExceptionName>: <message>" for in-document annotations.

    Args:
        error (BaseException | str): the failure to describe

    Returns:
        str: a one-line description
    """
    if isinstance(error, str):
        return f"Error: {error}"
    return f"{type(error).__name__}: {error}"


class ArtifactWriter(ABC):
    """Streaming sink rendering the structural events of one artifact.

    Calls must follow the sequence::

        start_document
        (write_file_header
         [write_text_content | write_chunks | write_binary_payload]
         [write_error]
         end_file)*
        end_document
        close

    Subclasses only render; this class owns the output file and enforces the
    order, raising `WriterStateError` on any call made out of sequence.
    """

    format: OutputFormat

    def __init__(self, out_path: Path) -> None:
        self.out_path = Path(out_path)
        self.state = WriterState.NOT_STARTED
        self.paths: list[str] = []
        self._handle: IO[str] | None = None

    # ------------------------------ plumbing ------------------------------

    def _w(self, s: str) -> None:
        if self._handle is None:
            raise WriterStateError(operation="write", state=str(self.state))
        self._handle.write(s)

    def _require(self, operation: str, allowed: frozenset[WriterState] | WriterState) -> None:
        ok = self.state in allowed if isinstance(allowed, frozenset) else self.state == allowed
        if not ok:
            raise WriterStateError(operation=operation, state=str(self.state))

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------ contract ------------------------------

    def start_document(self, metadata: RunMetadata) -> None:
        """Open the output file and emit the document header.

        Raises:
            OutputSetupError: if the output file cannot be created.
        """
        self._require("start_document", WriterState.NOT_STARTED)
        try:
            self.out_path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.out_path.open("w", encoding="utf-8", errors="replace", newline="")
        except OSError as e:
            raise OutputSetupError(path=self.out_path, reason=str(e)) from e
        self._render_start(metadata)
        self.state = WriterState.STARTED

    def write_file_header(self, record: FileRecord) -> None:
        """Open a file entry."""
        self._require("write_file_header", _BETWEEN_FILES)
        self.paths.append(record.path)
        self._render_file_header(record)
        self.state = WriterState.FILE_OPEN

    def write_text_content(self, text: str) -> None:
        """Emit the whole decoded text of the current file as one block."""
        self._require("write_text_content", WriterState.FILE_OPEN)
        self._render_text(text)
        self.state = WriterState.FILE_WITH_CONTENT

    def write_chunks(self, chunks: Iterable[Chunk]) -> None:
        """Emit the current file's text as ordered chunks."""
        self._require("write_chunks", WriterState.FILE_OPEN)
        self._render_chunks(chunks)
        self.state = WriterState.FILE_WITH_CONTENT

    def write_binary_payload(self, data: bytes) -> None:
        """Emit the current file's raw bytes, base64 encoded."""
        self._require("write_binary_payload", WriterState.FILE_OPEN)
        self._render_binary(data)
        self.state = WriterState.FILE_WITH_CONTENT

    def write_error(self, error: BaseException | str) -> None:
        """Annotate the current file entry with a failure."""
        self._require("write_error", _IN_FILE)
        self._render_error(describe_error(error))
        self.state = WriterState.FILE_WITH_CONTENT

    def end_file(self) -> None:
        """Close the current file entry."""
        self._require("end_file", _IN_FILE)
        self._render_end_file()
        self.state = WriterState.FILE_CLOSED

    def end_document(self, digest: str) -> None:
        """Emit the aggregate digest and the document trailer."""
        self._require("end_document", _BETWEEN_FILES)
        self._render_end(digest)
        self.state = WriterState.ENDED

    def close(self) -> None:
        """Release the output file. Safe to call more than once, or before start."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self.state = WriterState.CLOSED

    # ------------------------------ rendering -----------------------------

    @abstractmethod
    def _render_start(self, metadata: RunMetadata) -> None: ...

    @abstractmethod
    def _render_file_header(self, record: FileRecord) -> None: ...

    @abstractmethod
    def _render_text(self, text: str) -> None: ...

    @abstractmethod
    def _render_chunks(self, chunks: Iterable[Chunk]) -> None: ...

    @abstractmethod
    def _render_binary(self, data: bytes) -> None: ...

    @abstractmethod
    def _render_error(self, message: str) -> None: ...

    @abstractmethod
    def _render_end_file(self) -> None: ...

    @abstractmethod
    def _render_end(self, digest: str) -> None: ...


def make_writer(fmt: str | OutputFormat, out_path: Path) -> ArtifactWriter:
    """Instantiate the writer for an output format.

    Args:
        fmt (str | OutputFormat): "xml" or "md"
        out_path (Path): where the artifact is written

    Raises:
        UnsupportedFormatError: for any other format.

    Returns:
        ArtifactWriter: a writer in the NOT_STARTED state
    """
    from codebase_flattener.markdown_output import MarkdownArtifactWriter  # noqa: PLC0415
    from codebase_flattener.xml_output import XmlArtifactWriter  # noqa: PLC0415

    key = str(fmt).strip().lower()
    if key == OutputFormat.XML:
        return XmlArtifactWriter(out_path)
    if key == OutputFormat.MD:
        return MarkdownArtifactWriter(out_path)
    raise UnsupportedFormatError(format=str(fmt))
