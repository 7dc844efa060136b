"""Configuration models with Pydantic validation."""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from .Platform import Platform, detect_platform, release_os_arch

DEFAULT_DOWNLOAD_URL = "https://get.helm.sh/helm-v{version}-{os}-{arch}.{ext}"


class Credentials(BaseModel):
    """Username and secret used to access a chart repository."""

    username: str = Field(..., min_length=1)
    password: SecretStr


class Repository(BaseModel):
    """A chart repository to register with helm."""

    name: str = Field(..., min_length=1, description="Repository name")
    url: str = Field(..., min_length=1, description="Repository URL")
    username: Optional[str] = Field(None, description="Inline username")
    password: Optional[SecretStr] = Field(None, description="Inline password")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if any(c.isspace() for c in v):
            raise ValueError("Repository name must not contain whitespace")
        return v

    @model_validator(mode="after")
    def validate_credentials_pair(self) -> "Repository":
        if (self.username is None) != (self.password is None):
            raise ValueError(f"Repository {self.name}: username and password must be given together")
        return self

    def inline_credentials(self) -> Optional[Credentials]:
        if self.username is None or self.password is None:
            return None
        return Credentials(username=self.username, password=self.password)


class ProvisionConfig(BaseModel):
    """Complete provisioning configuration."""

    output_directory: Path = Field(
        default=Path("target/helm"), description="Working directory, created if absent"
    )
    executable_directory: Optional[Path] = Field(
        None, description="Where the helm executable is installed (default: output_directory)"
    )
    helm_version: str = Field(default="2.17.0", description="Helm version used to derive the download URL")
    download_url: Optional[str] = Field(
        None, description="Archive URL or local archive path (default: derived from helm_version)"
    )
    binary_name: str = Field(default="helm", min_length=1, description="Executable base name, without extension")
    home_directory: Optional[Path] = Field(None, description="Alternate helm home, passed as --home")
    skip_refresh: bool = Field(default=False, description="Pass --skip-refresh to helm init")
    skip: bool = Field(default=False, description="Skip every helm step")
    skip_init: bool = Field(default=False, description="Skip the init step only")
    use_local_binary: bool = Field(default=False, description="Use an existing helm instead of downloading one")
    local_binary: Optional[Path] = Field(None, description="Local helm executable (default: looked up on PATH)")
    repositories: List[Repository] = Field(default_factory=list, description="Repositories to register, in order")
    servers: Dict[str, Credentials] = Field(
        default_factory=dict, description="Credentials keyed by repository name"
    )

    @model_validator(mode="after")
    def validate_unique_repositories(self) -> "ProvisionConfig":
        """Ensure all repository names are unique."""
        names = [repository.name for repository in self.repositories]
        if len(names) != len(set(names)):
            raise ValueError("All repository names must be unique")
        return self

    @property
    def install_directory(self) -> Path:
        return self.executable_directory or self.output_directory

    def resolve_download_url(self, system: Optional[str] = None, machine: Optional[str] = None) -> str:
        """Return the archive location, deriving it from the version if unset."""
        if self.download_url:
            return self.download_url
        os_name, arch = release_os_arch(system, machine)
        ext = "zip" if detect_platform(system) is Platform.WINDOWS else "tar.gz"
        return DEFAULT_DOWNLOAD_URL.format(version=self.helm_version, os=os_name, arch=arch, ext=ext)

    def credentials_for(self, repository: Repository) -> Optional[Credentials]:
        """Resolve credentials for `repository`; inline ones win over `servers`."""
        return repository.inline_credentials() or self.servers.get(repository.name)

    @classmethod
    def from_json(cls, config_path: Union[str, Path]) -> "ProvisionConfig":
        """Load configuration from JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")

        return cls.model_validate(data)
