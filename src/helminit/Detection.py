"""Compression and container format detection by magic bytes.

Detection only peeks at the stream, so the bytes it samples are still
there for the archive engine afterwards. The compression layer is always
unwrapped first; the container is detected on the decompressed bytes.
"""

import bz2
import gzip
import logging
import lzma
from typing import NamedTuple

from .Errors import UnsupportedFormatError
from .FileIO import PeekableStream

logger = logging.getLogger(__name__)

# Compression signatures, from Wikipedia
COMPRESSION_TYPES = {
    b"\x1f\x8b": "gz",
    b"\xfd7zXZ\x00": "xz",
    b"BZh": "bz2",
    b"\x28\xb5\x2f\xfd": "zst",
}

CODECS = {
    "gz": lambda f: gzip.GzipFile(fileobj=f, mode="rb"),
    "bz2": lambda f: bz2.BZ2File(f, mode="rb"),
    "xz": lambda f: lzma.LZMAFile(f, mode="rb"),
}

# Container signatures found at offset 0
SIGNATURES = {
    # zip
    b"PK\x03\x04": "zip",
    b"PK\x05\x06": "zip",  # Empty archive
    b"PK\x07\x08": "zip",  # Spanned archive
    # 7z
    b"7z\xbc\xaf\x27\x1c": "7z",
    # RAR
    b"Rar!\x1a\x07\x00": "rar",  # >= v1.50
    b"Rar!\x1a\x07\x01\x00": "rar",  # >= v5.00
}

TAR_BLOCK_SIZE = 512
TAR_MAGIC_OFFSET = 257
TAR_MAGICS = (
    b"ustar\x00\x30\x30",  # POSIX
    b"ustar\x20\x20\x00",  # GNU
)


class DetectedFormat(NamedTuple):
    """Result of format detection: codec name or None, and container name."""
    compression: str | None
    container: str


def detect_compression(stream: PeekableStream) -> str | None:
    """Return the compression codec of `stream`, or None if not compressed.

    Inconclusive detection is not an error; the stream is then treated as
    uncompressed.
    """
    magic_bytes = stream.peek(8)  # 8 bytes covers every signature
    for signature, compression in COMPRESSION_TYPES.items():
        if magic_bytes.startswith(signature):
            logger.debug("%s compression detected", compression)
            return compression
    logger.debug("No compression detected (signature %s)", magic_bytes.hex().upper())
    return None


def open_decompressed(stream: PeekableStream, compression: str | None) -> PeekableStream:
    """Wrap `stream` in the decompressor for `compression`.

    The returned stream is peekable again so the container can be detected.
    Closing it does not close `stream`.

    Raises:
        UnsupportedFormatError: If the codec was recognized but cannot be read.
    """
    if compression is None:
        return stream
    codec = CODECS.get(compression)
    if codec is None:
        raise UnsupportedFormatError(f"Unsupported compressor type: {compression}")
    return PeekableStream(codec(stream))


def _is_tar_header(block: bytes) -> bool:
    if len(block) < TAR_BLOCK_SIZE:
        return False
    if block[TAR_MAGIC_OFFSET:TAR_MAGIC_OFFSET + 8] in TAR_MAGICS:
        return True
    # Pre-POSIX (v7) headers carry no magic; fall back to the header checksum
    try:
        stored = int(block[148:156].strip(b"\x00 ") or b"-1", 8)
    except ValueError:
        return False
    computed = 8 * 0x20 + sum(block[:148]) + sum(block[156:TAR_BLOCK_SIZE])
    return stored == computed


def detect_container(stream: PeekableStream) -> str:
    """Return the container format of an already decompressed stream.

    Raises:
        UnsupportedFormatError: If no known container signature matches.
    """
    head = stream.peek(TAR_BLOCK_SIZE)
    for signature, container in SIGNATURES.items():
        if head.startswith(signature):
            return container
    if _is_tar_header(head):
        return "tar"
    raise UnsupportedFormatError(f"Unsupported archive type with signature: {head[:8].hex().upper()}")


def detect_format(source) -> tuple[PeekableStream, DetectedFormat]:
    """Detect both layers of `source` and unwrap its compression.

    Returns:
        The decompressed, peekable stream positioned at the start of the
        container, and the detected format. Closing the returned stream
        releases the decompressor; `source` must still be closed by the
        caller.
    """
    stream = source if isinstance(source, PeekableStream) else PeekableStream(source)
    compression = detect_compression(stream)
    decompressed = open_decompressed(stream, compression)
    try:
        container = detect_container(decompressed)
    except BaseException:
        if decompressed is not stream:
            decompressed.close()
        raise
    logger.info("Detected archive format: %s%s", container, f"+{compression}" if compression else "")
    return decompressed, DetectedFormat(compression, container)
