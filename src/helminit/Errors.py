"""Exceptions raised while provisioning helm.

Every fatal condition is a `ProvisioningError` carrying a message that
names the directory, URL or repository involved. Non-fatal conditions
(undetectable compression, missing permission model) are logged instead.
"""


class ProvisioningError(Exception):
    """Base class for every condition that aborts provisioning."""


class UnsupportedFormatError(ProvisioningError):
    """The archive uses a container or codec that cannot be read."""


class BinaryNotFoundError(ProvisioningError):
    """No usable entry for the target executable exists in the archive."""


class DownloadError(ProvisioningError):
    """The archive source could not be fetched."""


class HelmCommandError(ProvisioningError):
    """A helm subprocess exited with a non-zero status.

    Attributes:
        returncode (int): Exit status reported by the subprocess.
    """

    def __init__(self, message: str, returncode: int) -> None:
        super().__init__(f"{message} (exit code {returncode})")
        self.returncode = returncode
