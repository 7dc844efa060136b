import logging
import lzma
import os
import tarfile
import tempfile
import zipfile
import zlib
from pathlib import Path
from typing import Callable

from .Detection import detect_format
from .Errors import BinaryNotFoundError, UnsupportedFormatError
from .Platform import TargetDescriptor
from .Protocols import ArchiveEngineProtocol, ArchiveEntry
from .TarArchive import TarArchiveEngine
from .ZipArchive import ZipArchiveEngine

logger = logging.getLogger(__name__)

ENGINES = {
    "tar": TarArchiveEngine,
    "zip": ZipArchiveEngine,
}

# Low-level errors a corrupt or truncated archive can surface while being read
ARCHIVE_ERRORS = (OSError, EOFError, tarfile.TarError, zipfile.BadZipFile, lzma.LZMAError, zlib.error)


def get_extractor(source) -> ArchiveEngineProtocol:
    """Detect the format of `source` and open a matching archive engine.

    The engine owns the decompressing stream it reads from; `source` itself
    is still closed by the caller.

    Raises:
        UnsupportedFormatError: If the compression or container cannot be read.
    """
    stream, detected = detect_format(source)
    try:
        engine = ENGINES.get(detected.container)
        if engine is None:
            raise UnsupportedFormatError(f"Unsupported archive type: {detected.container}")
        return engine(stream)
    except BaseException:
        stream.close()
        raise


def default_file_mode() -> int:
    """Return the mode a plain create would give a new file under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def extract_binary(extractor: ArchiveEngineProtocol, target: TargetDescriptor, destination: Path,
                   finalize: Callable[[Path], None] | None = None,
                   progress: Callable[[ArchiveEntry], Callable[[int], None] | None] | None = None) -> Path:
    """Extract the first entry matching `target` to `destination`.

    Entries are scanned in stream order and the scan stops at the first
    match. The content is written to a temporary file next to
    `destination`, passed to `finalize` (e.g. to make it executable) and
    only then renamed into place, so a failed extraction never leaves a
    partial file at `destination`.

    Args:
        progress: Called with the matching entry before it is copied; may
            return a callback that receives the number of bytes written.

    Raises:
        BinaryNotFoundError: If no non-empty entry matches `target`.
    """
    for entry in extractor.iter_entries():
        if entry.is_dir or not target.matches(entry.name):
            logger.debug("Skip archive entry with name: %s", entry.name)
            continue

        logger.debug("Use archive entry with name: %s", entry.name)
        fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=f".{destination.name}.", suffix=".part")
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            # mkstemp creates the file 0600
            os.chmod(tmp_path, default_file_mode())
            progress_callback = progress(entry) if progress is not None else None
            written = extractor.extract_to_disk(entry, tmp_path, progress_callback)
            if written == 0:
                raise BinaryNotFoundError(f"Archive entry {entry.name} is empty")
            if finalize is not None:
                finalize(tmp_path)
            os.replace(tmp_path, destination)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return destination

    raise BinaryNotFoundError(f"Unable to find {target.file_name} executable in archive")
