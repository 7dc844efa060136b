"""helminit package initializer.

This module provides the package-level public surface of `helminit`, which
provisions the helm binary for a build pipeline and initializes its client:

- __version__: Package version string.
- HelmProvisioner: Runs the whole download / extract / init / repo add flow.
- ProvisionConfig, Repository, Credentials: Configuration models.
- get_extractor, extract_binary: Format detection and single-binary extraction.
- make_executable: Platform-appropriate permission elevation.
- ProvisioningError: Base class of every fatal condition.
- cli: The CLI entrypoint function (click command) exposed for programmatic use.

Example:
    from helminit import HelmProvisioner, ProvisionConfig
    HelmProvisioner(ProvisionConfig(output_directory="target/helm")).provision()

"""

# Public version string
__version__ = "0.1.0"

from .ArchiveEngine import extract_binary, get_extractor
from .Config import Credentials, ProvisionConfig, Repository
from .Errors import ProvisioningError
from .Permissions import make_executable
from .Provisioner import HelmProvisioner

# Expose the CLI command object so callers can reuse or register it in other tools.
from .CLI import init as cli  # click CLI command

# Define the public API
__all__ = [
    "__version__",
    "HelmProvisioner",
    "ProvisionConfig",
    "Repository",
    "Credentials",
    "get_extractor",
    "extract_binary",
    "make_executable",
    "ProvisioningError",
    "cli",
]
