"""Host platform detection.

The platform is computed on demand by `detect_platform()` and passed
explicitly to whatever needs it (target naming, permission handling,
download URL resolution) instead of living in a module-level constant.
"""

import platform
from dataclasses import dataclass
from enum import Enum

from .Errors import ProvisioningError


class Platform(Enum):
    """Host families with different executable naming and permission models."""
    POSIX = "posix"
    WINDOWS = "windows"


# platform.machine() values -> helm release arch names
ARCH_MAPPINGS = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "i386": "386",
    "i686": "386",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}

# platform.system() values -> helm release os names
OS_MAPPINGS = {
    "Linux": "linux",
    "Darwin": "darwin",
    "Windows": "windows",
}


def detect_platform(system: str | None = None) -> Platform:
    """Return the platform family of the host, or of `system` if given."""
    system = system or platform.system()
    if system == "Windows":
        return Platform.WINDOWS
    return Platform.POSIX


def release_os_arch(system: str | None = None, machine: str | None = None) -> tuple[str, str]:
    """Map the host to the (os, arch) pair used in helm release file names.

    Raises:
        ProvisioningError: If the operating system or architecture has no helm build.
    """
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()

    if system not in OS_MAPPINGS:
        raise ProvisioningError(f"Unsupported operating system: {system}, no helm build available")
    if machine not in ARCH_MAPPINGS:
        raise ProvisioningError(f"Unsupported architecture: {machine}, no helm build available")

    return OS_MAPPINGS[system], ARCH_MAPPINGS[machine]


@dataclass(frozen=True)
class TargetDescriptor:
    """The executable we are looking for, named for a given platform."""
    base_name: str
    platform: Platform

    @property
    def file_name(self) -> str:
        if self.platform is Platform.WINDOWS:
            return f"{self.base_name}.exe"
        return self.base_name

    def matches(self, entry_name: str) -> bool:
        # Archive layouts vary by publisher (e.g. linux-amd64/helm), so only the suffix counts
        return entry_name.endswith(self.file_name)
