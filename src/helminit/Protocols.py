"""Archive engine protocol definitions.

This module declares `ArchiveEntry`, the record an engine yields for each
member, and `ArchiveEngineProtocol`, the interface the tar and zip
adapters implement. Engines are read strictly front to back: entries come
out lazily in the archive's native order and there is no random access.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol


@dataclass(frozen=True)
class ArchiveEntry:
    """A member of an archive.

    Attributes:
        name (str): Path of the member inside the archive.
        is_dir (bool): Whether the member is a directory.
        size (int): Uncompressed size of the member in bytes.
        info (Any): The engine's native member record (TarInfo, ZipInfo).
    """
    name: str
    is_dir: bool
    size: int = 0
    info: Any = field(default=None, compare=False, repr=False)


class ArchiveEngineProtocol(Protocol):
    """Protocol describing the minimal archive engine interface."""

    def iter_entries(self) -> Iterator[ArchiveEntry]:
        """Yield the archive's members one at a time in stream order.

        Only the entry most recently yielded may be extracted; advancing
        the iterator discards whatever was not read of the previous one.
        """
        ...

    def extract_to_disk(self, entry: ArchiveEntry, target_path: Path,
                        progress_callback: Callable[[int], None] | None = None) -> int:
        """Stream the contents of `entry` into `target_path`.

        Args:
            entry (ArchiveEntry): The entry most recently yielded by `iter_entries`.
            target_path (Path): Destination file, created or truncated.
            progress_callback (callable|None): Optional callback called with the
                number of bytes written on each write().

        Returns:
            int: Number of bytes written.
        """
        ...

    def close(self) -> None:
        """Release the engine's resources, including the stream it reads from."""
        ...
