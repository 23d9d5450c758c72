from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class FlattenerError(Exception):
    """Base exception for errors in the codebase_flattener package."""

    def __str__(self) -> str:
        return getattr(self, "message", "") or self.__class__.__name__


@dataclass(frozen=True)
class GitCommandError(FlattenerError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"`{self.command}` exited with status {self.returncode}: {detail}"


@dataclass(frozen=True)
class FileProcessingError(FlattenerError):
    """Raised when a selected file cannot be stat'd, sampled, hashed or read."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass(frozen=True)
class OutputSetupError(FlattenerError):
    """Raised when the output artifact cannot be created."""

    path: Path
    reason: str
    message: str = "Cannot create the output artifact."

    def __str__(self) -> str:
        return f"{self.message} path={self.path} reason={self.reason}"


@dataclass(frozen=True)
class InvalidRootError(FlattenerError):
    """Raised when the selection root is not a directory."""

    root: Path
    message: str = "The selection root is not a directory."

    def __str__(self) -> str:
        return f"{self.message} root={self.root}"


@dataclass(frozen=True)
class WriterStateError(FlattenerError):
    """Raised when an artifact writer operation is called out of order."""

    operation: str
    state: str

    def __str__(self) -> str:
        return f"`{self.operation}` is not allowed in writer state {self.state}"


@dataclass(frozen=True)
class InvalidChunkSizeError(FlattenerError):
    """Raised when text is chunked with a non-positive chunk size."""

    chunk_size: int
    message: str = "Chunk size must be a positive number of characters."

    def __str__(self) -> str:
        return f"{self.message} Got {self.chunk_size}."


@dataclass(frozen=True)
class UnsupportedFormatError(FlattenerError):
    """Raised when an unknown artifact format is requested."""

    format: str
    message: str = "Unsupported output format, expected 'md' or 'xml'."

    def __str__(self) -> str:
        return f"{self.message} Got {self.format!r}."


@dataclass(frozen=True)
class InvalidSettingsError(FlattenerError):
    """Raised when explicitly given settings fail validation."""

    errors: str
    message: str = "Invalid settings."

    def __str__(self) -> str:
        return f"{self.message} {self.errors}"
