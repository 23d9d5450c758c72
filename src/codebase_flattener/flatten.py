"""Selection-and-serialization pipeline.

discover -> filter -> sort -> for each file: stat, sample, classify, hash,
header, read, emit -> aggregate digest.
"""

from __future__ import annotations

import stat
from typing import TYPE_CHECKING

from codebase_flattener import vcs
from codebase_flattener.config import Encoding, FileRecord, FlattenResult, RunMetadata, classify_lang
from codebase_flattener.content import (
    AggregateDigest,
    chunk_text,
    is_binary_file,
    read_text,
    sha256_file,
)
from codebase_flattener.discovery import discover, select
from codebase_flattener.exceptions import FileProcessingError, FlattenerError, InvalidRootError
from codebase_flattener.logging import logger
from codebase_flattener.matching import PathMatcher
from codebase_flattener.output_construction import make_writer

if TYPE_CHECKING:
    from pathlib import Path

    from codebase_flattener.config import Chunk
    from codebase_flattener.output_construction import ArtifactWriter
    from codebase_flattener.settings import Settings

    Body = str | list[Chunk] | bytes | None


def inspect_file(path: Path, rel: str) -> FileRecord:
    """Stat, sample, classify and hash one selected file.

    Args:
        path (Path): absolute path of the file
        rel (str): POSIX path relative to the selection root

    Raises:
        FileProcessingError: if the path is not a regular file.
        OSError: if the file cannot be stat'd, sampled or hashed.

    Returns:
        FileRecord: the header metadata for the file entry
    """
    st = path.stat()
    if not stat.S_ISREG(st.st_mode):
        raise FileProcessingError(path=path, reason="not a regular file")
    is_binary = is_binary_file(path)
    return FileRecord(
        path=rel,
        lang=classify_lang(rel),
        size_bytes=st.st_size,
        sha256=sha256_file(path),
        is_binary=is_binary,
        encoding=Encoding.BINARY if is_binary else Encoding.UTF8,
    )


def load_body(path: Path, record: FileRecord, *, max_file_bytes: int, chunk_bytes: int) -> Body:
    """Read the content to emit for one file entry.

    - binary files within `max_file_bytes`: their raw bytes;
    - binary files above it: None (header only, not an error);
    - text files within `chunk_bytes` (or when `chunk_bytes <= 0`): the whole text;
    - larger text files: their chunks, whatever their size.

    Raises:
        OSError: if the file cannot be read.
    """
    if record.is_binary:
        if record.size_bytes > max_file_bytes:
            return None
        return path.read_bytes()
    text, lossless = read_text(path)
    if not lossless:
        logger.warning("Replaced invalid UTF-8 sequences", path=record.path)
    if chunk_bytes <= 0 or record.size_bytes <= chunk_bytes:
        return text
    return chunk_text(text, chunk_bytes)


def emit_body(writer: ArtifactWriter, body: Body) -> None:
    if body is None:
        return
    if isinstance(body, bytes):
        writer.write_binary_payload(body)
    elif isinstance(body, str):
        writer.write_text_content(body)
    else:
        writer.write_chunks(body)


def process_file(
    writer: ArtifactWriter,
    digest: AggregateDigest,
    path: Path,
    rel: str,
    *,
    max_file_bytes: int,
    chunk_bytes: int,
) -> bool:
    """Emit one complete file entry, recording failures inside the entry.

    Every entry opened here is closed here. A file contributes to the aggregate
    digest only when its entry carries no error.

    Returns:
        bool: True if the file was emitted without error
    """
    try:
        record = inspect_file(path, rel)
    except (OSError, FlattenerError) as e:
        logger.warning("Failed to inspect file", path=rel, error=str(e))
        writer.write_file_header(FileRecord.unreadable(rel))
        writer.write_error(e)
        writer.end_file()
        return False

    writer.write_file_header(record)
    try:
        body = load_body(path, record, max_file_bytes=max_file_bytes, chunk_bytes=chunk_bytes)
    except OSError as e:
        logger.warning("Failed to read file", path=rel, error=str(e))
        writer.write_error(e)
        writer.end_file()
        return False

    emit_body(writer, body)
    writer.end_file()
    digest.fold(record.sha256)
    return True


def flatten(
    settings: Settings,
    *,
    branch_commit: tuple[str | None, str | None] | None = None,
) -> FlattenResult:
    """Flatten `settings.root` into one artifact at `settings.output`.

    Per-file failures are annotated in the document and never abort the run.

    Args:
        settings (Settings): run configuration
        branch_commit (tuple[str | None, str | None] | None): already resolved
            (branch, commit); looked up with git when None

    Raises:
        InvalidRootError: if the root is not a directory.
        OutputSetupError: if the output file cannot be created.

    Returns:
        FlattenResult: summary of the run
    """
    root = settings.root.resolve()
    out = settings.output.resolve()
    if not root.is_dir():
        raise InvalidRootError(root=root)
    branch, commit = branch_commit if branch_commit is not None else vcs.branch_and_commit(root)
    matcher = PathMatcher(settings.includes, settings.excludes)
    metadata = RunMetadata(
        root=root,
        generated_at=settings.timestamp(),
        branch=branch,
        commit=commit,
        includes=tuple(settings.includes),
        excludes=tuple(settings.excludes),
        max_file_bytes=settings.max_file_bytes,
        chunk_bytes=settings.chunk_bytes,
    )
    logger.info("Flattening", root=str(root), output=str(out), format=str(settings.format))

    digest = AggregateDigest()
    errors = 0
    with make_writer(settings.format, out) as writer:
        writer.start_document(metadata)
        candidates = discover(
            root,
            honor_vcs=settings.honor_gitignore,
            follow_symlinks=settings.follow_symlinks,
        )
        manifest = select(candidates, root, matcher, skip=[out])
        for path, rel in manifest:
            ok = process_file(
                writer,
                digest,
                path,
                rel,
                max_file_bytes=settings.max_file_bytes,
                chunk_bytes=settings.chunk_bytes,
            )
            if not ok:
                errors += 1
        writer.end_document(digest.hexdigest())

    result = FlattenResult(
        output=out,
        format=writer.format,
        files=len(manifest),
        errors=errors,
        digest=digest.hexdigest(),
    )
    logger.info("Flatten complete", files=result.files, errors=result.errors, digest=result.digest)
    return result
