from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from codebase_flattener.config import HASH_BLOCK_BYTES, NON_TEXT_RATIO, SAMPLE_BYTES, Chunk
from codebase_flattener.exceptions import InvalidChunkSizeError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

# backspace, tab, line feed, form feed, carriage return, escape, printable ASCII
PRINTABLE_BYTES = frozenset({8, 9, 10, 12, 13, 27, *range(0x20, 0x7F)})


def sample_bytes(path: Path, size: int = SAMPLE_BYTES) -> bytes:
    """Read at most the first `size` bytes of a file.

    Args:
        path (Path): the file to sample
        size (int, optional): maximum number of bytes to read. Defaults to 4096.

    Returns:
        bytes: the leading bytes (shorter for small files, empty for empty files)
    """
    with path.open("rb") as f:
        return f.read(size)


def is_binary_sample(sample: bytes) -> bool:
    """Classify a leading-bytes sample as binary or text.

    A sample is binary if it contains a zero byte, or if more than 30% of its
    bytes fall outside the printable set. An empty sample is text.

    Args:
        sample (bytes): leading bytes of a file

    Returns:
        bool: True if the sample looks binary
    """
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    nontext = sum(1 for b in sample if b not in PRINTABLE_BYTES)
    return nontext / len(sample) > NON_TEXT_RATIO


def is_binary_file(path: Path) -> bool:
    """Classify a file from its first 4096 bytes."""
    return is_binary_sample(sample_bytes(path))


def sha256_file(path: Path, block_size: int = HASH_BLOCK_BYTES) -> str:
    """Compute and return the SHA-256 hex digest of a file.

    Reads the file in 1 MiB blocks to handle large files without excessive memory use.

    Args:
        path (Path): the file path to hash
        block_size (int, optional): bytes read per iteration. Defaults to 1 MiB.

    Returns:
        str: the lowercase SHA-256 hex digest of the file contents
    """
    h = hashlib.sha256()
    with path.open("rb") as f:
        for blk in iter(lambda: f.read(block_size), b""):
            h.update(blk)
    return h.hexdigest()


class AggregateDigest:
    """SHA-256 folded over per-file digests in manifest order.

    Each contribution is the raw 32-byte digest, not its hex spelling. One
    instance belongs to one run.
    """

    def __init__(self) -> None:
        self._hash = hashlib.sha256()

    def fold(self, hex_digest: str) -> None:
        """Add one file digest to the aggregate.

        Args:
            hex_digest (str): the file's SHA-256 hex digest
        """
        self._hash.update(bytes.fromhex(hex_digest))

    def hexdigest(self) -> str:
        """Return the aggregate digest of everything folded so far."""
        return self._hash.hexdigest()


def iter_chunks(text: str, chunk_size: int) -> Iterator[Chunk]:
    """Split text into consecutive fixed-size chunks.

    Chunk `i` covers code points `[i * chunk_size, (i + 1) * chunk_size)`
    clipped to the text length, so joining the chunk texts in order gives
    back `text`. Empty text yields nothing.

    Args:
        text (str): decoded file content
        chunk_size (int): chunk length in code points

    Raises:
        InvalidChunkSizeError: if `chunk_size` is not positive.

    Yields:
        Iterator[Chunk]: chunks in index order
    """
    if chunk_size <= 0:
        raise InvalidChunkSizeError(chunk_size=chunk_size)
    for index, offset in enumerate(range(0, len(text), chunk_size)):
        yield Chunk(index=index, offset=offset, text=text[offset : offset + chunk_size])


def chunk_text(text: str, chunk_size: int) -> list[Chunk]:
    """Eager variant of `iter_chunks`."""
    return list(iter_chunks(text, chunk_size))


def read_text(path: Path) -> tuple[str, bool]:
    """Read a whole file as UTF-8.

    Invalid byte sequences are replaced with U+FFFD rather than failing.

    Args:
        path (Path): the file to read

    Returns:
        tuple[str, bool]: the decoded text and whether it decoded losslessly
    """
    data = path.read_bytes()
    try:
        return data.decode("utf-8"), True
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace"), False
