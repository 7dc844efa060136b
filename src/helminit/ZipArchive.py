"""ZIP archive engine adapter.

Provides a minimal adapter around the standard library `zipfile.ZipFile`
class to walk and extract members of a ZIP archive. zipfile needs to seek
to the central directory at the end of the archive, so the sequential
source is first spooled to an anonymous temporary file; memory use stays
bounded by the copy buffer, not the archive size.
"""

import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Iterator

from .FileIO import CHUNK_SIZE, PeekableStream, copy_to_file
from .Protocols import ArchiveEngineProtocol, ArchiveEntry

logger = logging.getLogger(__name__)


class ZipArchiveEngine(ArchiveEngineProtocol):
    """
    ZIP archive engine using the stdlib zipfile module.

    Attributes:
        stream (PeekableStream): The source stream of the ZIP archive.
        archive (zipfile.ZipFile): The ZipFile instance used to inspect and extract members.
    """

    def __init__(self, stream: PeekableStream) -> None:
        """
        Spool `stream` to disk and open it as a ZIP archive.

        Raises:
            zipfile.BadZipFile: If the stream does not contain a valid ZIP archive.
        """
        self.stream = stream
        self._spool = tempfile.TemporaryFile()
        try:
            shutil.copyfileobj(self.stream, self._spool, CHUNK_SIZE)
            self._spool.seek(0)
            logger.debug("Spooled zip archive to a temporary file")
            self.archive = zipfile.ZipFile(self._spool)
        except BaseException:
            self._spool.close()
            raise

    def iter_entries(self) -> Iterator[ArchiveEntry]:
        # infolist() keeps the central directory order, which mirrors the stream order
        for info in self.archive.infolist():
            yield ArchiveEntry(name=info.filename, is_dir=info.is_dir(), size=info.file_size, info=info)

    def extract_to_disk(self, entry: ArchiveEntry, target_path: Path, progress_callback=None) -> int:
        with self.archive.open(entry.info) as source:
            return copy_to_file(source, target_path, progress_callback)

    def close(self) -> None:
        try:
            self.archive.close()
        finally:
            self._spool.close()
            self.stream.close()
