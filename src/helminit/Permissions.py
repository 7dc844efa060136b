"""Making an extracted file executable.

Two strategies sit behind the same `make_executable(path)` interface:

- `PosixPermissionStrategy` adds the owner-execute bit to the file mode.
- `AclPermissionStrategy` appends an "allow execute" entry for the current
  user to the file's ACL through ``icacls``; existing entries are kept.

`select_permission_strategy()` probes which model the host exposes. When
neither is available, or the filesystem rejects permission changes as
unsupported, the file is left as extracted and provisioning continues.
"""

import errno
import getpass
import logging
import os
import shutil
import stat
import subprocess
from pathlib import Path
from typing import Callable, Protocol

from .Platform import Platform, detect_platform

logger = logging.getLogger(__name__)

# errno values meaning "this filesystem has no permission bits"
UNSUPPORTED_ERRNOS = {errno.ENOTSUP, errno.EOPNOTSUPP, errno.ENOSYS}


class PermissionStrategy(Protocol):
    def make_executable(self, path: Path) -> None: ...


class PosixPermissionStrategy:
    """Set the owner-execute bit, preserving every other mode bit."""

    def make_executable(self, path: Path) -> None:
        try:
            mode = stat.S_IMODE(path.stat().st_mode)
            path.chmod(mode | stat.S_IXUSR)
        except NotImplementedError as e:
            logger.warning("Exec file permission is not set on %s: %s", path, e)
        except OSError as e:
            if e.errno not in UNSUPPORTED_ERRNOS:
                raise
            logger.warning("Exec file permission is not set on %s: %s", path, e)


def resolve_principal() -> str:
    """Return the current user as an ACL principal (``DOMAIN\\user`` when known)."""
    user = getpass.getuser()
    domain = os.environ.get("USERDOMAIN")
    return f"{domain}\\{user}" if domain else user


class AclPermissionStrategy:
    """Grant the current user execute rights by appending an ACL entry.

    ``icacls /grant`` adds an access-allowed entry and leaves the existing
    list untouched (``/grant:r`` would replace the user's entries instead).
    """

    def __init__(self, principal: str | None = None,
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
        self.principal = principal
        self.runner = runner

    def make_executable(self, path: Path) -> None:
        principal = self.principal or resolve_principal()
        command = ["icacls", str(path), "/grant", f"{principal}:(X)"]
        logger.debug("Granting execute permission on %s to %s", path, principal)
        try:
            self.runner(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except subprocess.CalledProcessError as e:
            raise OSError(f"Unable to grant execute permission on {path} to {principal}") from e


class NoopPermissionStrategy:
    def make_executable(self, path: Path) -> None:
        logger.debug("No permission model available, leaving %s as extracted", path)


def select_permission_strategy(platform: Platform) -> PermissionStrategy:
    """Pick the strategy for the permission model `platform` exposes."""
    if platform is Platform.POSIX:
        return PosixPermissionStrategy()
    if platform is Platform.WINDOWS and shutil.which("icacls"):
        return AclPermissionStrategy()
    return NoopPermissionStrategy()


def make_executable(path: Path, platform: Platform | None = None) -> None:
    """Ensure the current user may execute `path`."""
    select_permission_strategy(platform or detect_platform()).make_executable(path)
