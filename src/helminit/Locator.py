import logging
from pathlib import Path

from .Platform import TargetDescriptor

logger = logging.getLogger(__name__)


def binary_path(directory: Path, target: TargetDescriptor) -> Path:
    """Return where the provisioned executable lives inside `directory`."""
    return Path(directory) / target.file_name


def find_installed_binary(directory: Path, target: TargetDescriptor) -> Path | None:
    """Return the already provisioned executable, or None if there is none.

    Only a regular file counts. This is an existence check only; the
    binary's version and integrity are not looked at.
    """
    path = binary_path(directory, target)
    if path.is_file():
        logger.info("Found helm executable at %s, skip download.", path)
        return path
    return None
