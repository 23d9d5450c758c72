from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum, auto
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, computed_field

ARTIFACT_VERSION = "1.0"
DIGEST_ALGORITHM = "sha256"

SAMPLE_BYTES = 4096
HASH_BLOCK_BYTES = 1024 * 1024
NON_TEXT_RATIO = 0.30

DEFAULT_MAX_FILE_BYTES = 200_000
DEFAULT_CHUNK_BYTES = 50_000
DEFAULT_OUTPUT = Path("turns/0001/artifacts/codebase.xml")

VCS_DIR = ".git"
UNKNOWN_LANG = "unknown"


class OutputFormat(StrEnum):
    """Supported artifact dialects."""

    XML = auto()
    MD = auto()


class Encoding(StrEnum):
    """Encoding label attached to every file entry."""

    UTF8 = "utf-8"
    BINARY = "binary"


EXT2LANG: dict[str, str] = {
    ".c": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".css": "css",
    ".go": "go",
    ".gradle": "gradle",
    ".h": "c-header",
    ".hpp": "cpp-header",
    ".html": "html",
    ".java": "java",
    ".js": "javascript",
    ".json": "json",
    ".jsx": "jsx",
    ".kt": "kotlin",
    ".md": "markdown",
    ".php": "php",
    ".properties": "properties",
    ".py": "python",
    ".rb": "ruby",
    ".sql": "sql",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".xml": "xml",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def classify_lang(rel: str) -> str:
    """Map a relative path to a language tag based on its extension.

    Args:
        rel (str): POSIX relative path of the file.

    Returns:
        str: the language tag, or "unknown" when the extension is not mapped.
    """
    return EXT2LANG.get(PurePosixPath(rel.lower()).suffix, UNKNOWN_LANG)


class FileRecord(BaseModel):
    """Metadata emitted in the header of every file entry.

    Attributes:
        path: Path relative to the selection root, with POSIX separators.
        lang: Language tag inferred from the extension.
        size_bytes: File size in bytes.
        sha256: SHA-256 hex digest of the contents (empty when unknown).
        is_binary: Result of the leading-bytes classifier.
        encoding: "utf-8" for text entries, "binary" otherwise.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="POSIX path relative to the selection root")
    lang: str = Field(UNKNOWN_LANG, description="Language tag")
    size_bytes: int = Field(0, ge=0, description="File size in bytes")
    sha256: str = Field("", description="SHA-256 hex digest (empty when unknown)")
    is_binary: bool = Field(default=False, description="Binary classification")
    encoding: Encoding = Field(Encoding.UTF8, description="Encoding label")

    @classmethod
    def unreadable(cls, rel: str) -> FileRecord:
        """Build the placeholder record used when a file fails before its header."""
        return cls(path=rel)


class Chunk(BaseModel):
    """A contiguous slice of a file's decoded text."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Zero-based chunk sequence number")
    offset: int = Field(..., ge=0, description="Code point offset into the decoded text")
    text: str = Field(..., description="Chunk text")


class RunMetadata(BaseModel):
    """Document-level metadata echoed in the artifact header."""

    model_config = ConfigDict(frozen=True)

    root: Path
    generated_at: datetime
    branch: str | None = None
    commit: str | None = None
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    chunk_bytes: int = DEFAULT_CHUNK_BYTES

    @computed_field
    @property
    def generated_at_iso(self) -> str:
        """UTC timestamp rendered with a trailing Z, millisecond precision."""
        stamp = self.generated_at.astimezone(UTC)
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FlattenResult(BaseModel):
    """Summary of one flatten run."""

    model_config = ConfigDict(frozen=True)

    output: Path
    format: OutputFormat
    files: int = Field(0, ge=0, description="Number of file entries emitted")
    errors: int = Field(0, ge=0, description="Number of entries carrying an error")
    digest: str = Field(..., description="Aggregate SHA-256 hex digest")
