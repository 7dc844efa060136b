"""Provisioning of the helm binary and its client state.

Control flow: reuse an installed binary if there is one, otherwise
download, detect, extract and make executable; then ``helm init`` and one
``helm repo add`` per configured repository. Every step is blocking and
runs in order; the first fatal condition aborts the whole run.
"""

import logging
import shutil
from contextlib import ExitStack, closing
from functools import partial
from pathlib import Path
from typing import Any, Callable

from rich.progress import Progress

from .ArchiveEngine import ARCHIVE_ERRORS, extract_binary, get_extractor
from .Config import ProvisionConfig
from .Errors import BinaryNotFoundError, ProvisioningError, UnsupportedFormatError
from .FileIO import open_archive_source
from .HelmClient import HelmClient, runcmd
from .Locator import binary_path, find_installed_binary
from .Permissions import make_executable
from .Platform import Platform, TargetDescriptor, detect_platform
from .Protocols import ArchiveEntry

logger = logging.getLogger(__name__)


class HelmProvisioner:
    """
    Provision helm into the configured directory and initialize it.

    Args:
        config: Provisioning configuration
        platform: Host platform (auto-detected if None)
        opener: Opens an archive location for reading
        runner: Runs a helm command line, raising on non-zero exit
        progress: Rich progress display the extraction is reported to
    """

    def __init__(
        self,
        config: ProvisionConfig,
        platform: Platform | None = None,
        opener: Callable[[str], Any] = open_archive_source,
        runner: Callable[..., Any] = runcmd,
        progress: Progress | None = None,
    ):
        self.config = config
        self.platform = platform or detect_platform()
        self.target = TargetDescriptor(config.binary_name, self.platform)
        self.opener = opener
        self.runner = runner
        self.progress = progress

    def provision(self) -> Path | None:
        """Run every step; return the helm binary used, or None if skipped."""
        if self.config.skip or self.config.skip_init:
            logger.info("Skip init")
            return None

        logger.info("Initializing Helm...")
        self.ensure_output_directory()

        if self.config.use_local_binary:
            binary = self.find_local_binary()
            HelmClient(binary, runner=self.runner).verify()
            logger.info("Using local HELM binary [%s]", binary)
        else:
            binary = find_installed_binary(self.config.install_directory.absolute(), self.target)
            if binary is None:
                binary = self.download_and_unpack()

        client = HelmClient(binary, home=self.config.home_directory, runner=self.runner)
        client.init(skip_refresh=self.config.skip_refresh)
        self.register_repositories(client)
        return binary

    def ensure_output_directory(self) -> None:
        directory = self.config.output_directory.absolute()
        if directory.exists():
            return
        logger.info("Creating output directory...")
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProvisioningError(f"Unable to create output directory at {directory}") from e

    def find_local_binary(self) -> Path:
        if self.config.local_binary is not None:
            return self.config.local_binary
        found = shutil.which(self.target.file_name)
        if found is None:
            raise ProvisioningError(f"Unable to find local helm binary {self.target.file_name} on PATH")
        return Path(found)

    def download_and_unpack(self) -> Path:
        """Fetch the archive and install the helm executable from it.

        All streams opened along the way (source, decompressor, archive
        reader) are closed before returning, on success and on failure.
        """
        url = self.config.resolve_download_url()
        directory = self.config.install_directory.absolute()
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProvisioningError(f"Unable to create executable directory at {directory}") from e

        destination = binary_path(directory, self.target)
        logger.info("Downloading Helm ...")
        try:
            with ExitStack() as stack:
                source = stack.enter_context(closing(self.opener(url)))
                extractor = get_extractor(source)
                stack.callback(extractor.close)
                extract_binary(
                    extractor,
                    self.target,
                    destination,
                    finalize=partial(make_executable, platform=self.platform),
                    progress=self.track_extraction,
                )
        except (UnsupportedFormatError, BinaryNotFoundError) as e:
            raise type(e)(f"{e} downloaded from {url}") from e
        except ProvisioningError:
            raise
        except ARCHIVE_ERRORS as e:
            raise ProvisioningError(f"Unable to download and extract helm executable from {url}: {e}") from e

        logger.info("Helm executable installed at %s", destination)
        return destination

    def register_repositories(self, client: HelmClient) -> None:
        for repository in self.config.repositories:
            client.add_repository(repository, self.config.credentials_for(repository))

    def track_extraction(self, entry: ArchiveEntry) -> Callable[[int], None] | None:
        """Add a progress task for `entry`; return the callback advancing it."""
        if self.progress is None:
            return None
        task = self.progress.add_task(f"Extracting {entry.name}", total=entry.size or None)

        def progress_callback(bytes_written):
            self.progress.update(task, advance=bytes_written)

        return progress_callback
