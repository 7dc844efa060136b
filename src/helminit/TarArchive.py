import logging
import tarfile
from pathlib import Path
from typing import Iterator

from .FileIO import PeekableStream, copy_to_file
from .Protocols import ArchiveEngineProtocol, ArchiveEntry

logger = logging.getLogger(__name__)


class TarArchiveEngine(ArchiveEngineProtocol):
    """Tar engine reading the archive in stream mode ("r|").

    Stream mode never seeks, so the archive is consumed strictly front to
    back and only the current member's data is ever held. Compression has
    already been unwrapped by the time the stream reaches this engine.
    """

    def __init__(self, stream: PeekableStream) -> None:
        self.stream = stream
        self.archive = tarfile.open(fileobj=self.stream, mode="r|")

    def iter_entries(self) -> Iterator[ArchiveEntry]:
        for member in self.archive:
            if not (member.isfile() or member.isdir()):
                # Links and special files have no content of their own
                logger.debug("Skip non-regular tar member: %s", member.name)
                continue
            yield ArchiveEntry(name=member.name, is_dir=member.isdir(), size=member.size, info=member)

    def extract_to_disk(self, entry: ArchiveEntry, target_path: Path, progress_callback=None) -> int:
        source = self.archive.extractfile(entry.info)
        with source:
            return copy_to_file(source, target_path, progress_callback)

    def close(self) -> None:
        try:
            self.archive.close()
        finally:
            self.stream.close()
