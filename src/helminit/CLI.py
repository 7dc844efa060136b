"""helminit CLI entrypoint.

This module provides the `init` click command which provisions the helm binary into the output directory, runs ``helm init --client-only`` and registers the configured chart repositories.

Usage example (from shell):
    helminit --config helm.json --repo stable=https://charts.helm.sh/stable

Settings come from an optional JSON configuration file; command-line options override it. The provisioning work itself is delegated to `helminit.Provisioner.HelmProvisioner`, so this module only deals with option handling and console output.
"""

from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, SpinnerColumn, TextColumn, TransferSpeedColumn

from .Config import ProvisionConfig, Repository
from .Errors import ProvisioningError
from .Log import configure_logging
from .Provisioner import HelmProvisioner

# Create a single console instance for the CLI UI (rich console handles colors/formatting)
console = Console()


def parse_repositories(ctx, param, values):
    """Turn ``NAME=URL`` option values into `Repository` objects."""
    repositories = []
    for value in values:
        name, sep, url = value.partition("=")
        if not sep or not name or not url:
            raise click.BadParameter(f"expected NAME=URL, got {value!r}")
        try:
            repositories.append(Repository(name=name, url=url))
        except ValueError as e:
            raise click.BadParameter(str(e)) from e
    return repositories


def load_config(config_path: Path | None, overrides: dict) -> ProvisionConfig:
    base = ProvisionConfig.from_json(config_path) if config_path else ProvisionConfig()
    data = base.model_dump()
    extra_repositories = overrides.pop("repositories", [])
    # Flags can only switch a setting on; unset options keep the file value
    data.update({key: value for key, value in overrides.items() if value is not None and value is not False})
    data["repositories"] = list(base.repositories) + extra_repositories
    return ProvisionConfig.model_validate(data)


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option("--config", "-c", "config_path",
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None,
              help="JSON configuration file")
@click.option("--download-url", "-u", type=str, default=None,
              help="Helm archive URL or local archive path (default: derived from --helm-version)")
@click.option("--helm-version", type=str, default=None, help="Helm version to download")
@click.option("--output-dir", "-o", "output_directory",
              type=click.Path(file_okay=False, dir_okay=True, path_type=Path), default=None,
              help="Output directory, created if absent")
@click.option("--executable-dir", "executable_directory",
              type=click.Path(file_okay=False, dir_okay=True, path_type=Path), default=None,
              help="Directory the helm executable is installed into (default: output directory)")
@click.option("--home", "home_directory",
              type=click.Path(file_okay=False, dir_okay=True, path_type=Path), default=None,
              help="Alternate helm home directory")
@click.option("--skip-refresh", is_flag=True, help="Pass --skip-refresh to helm init")
@click.option("--skip", is_flag=True, help="Skip every helm step")
@click.option("--use-local-binary", is_flag=True,
              help="Use an existing helm binary instead of downloading one")
@click.option("--local-binary", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Existing helm binary (default: looked up on PATH)")
@click.option("--repo", "repositories", multiple=True, callback=parse_repositories, metavar="NAME=URL",
              help="Chart repository to register; may be repeated")
@click.option("--log-level", "-l",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default="INFO", help="Log level")
@click.pass_context
def init(ctx, config_path: Path | None, log_level: str, **overrides):
    """Provision helm and initialize its client.

    The command will:

    - Reuse the helm executable in the executable directory, or download the archive, extract helm from it and make it executable.

    - Run ``helm init --client-only``.

    - Run ``helm repo add`` for every configured repository, in order.
    """
    configure_logging(log_level)

    try:
        config = load_config(config_path, overrides)
    except (FileNotFoundError, ValueError) as e:
        raise click.UsageError(str(e)) from e

    try:
        # Cleared from the terminal once provisioning finishes
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
            transient=True,
        ) as progress:
            binary = HelmProvisioner(config, progress=progress).provision()
    except ProvisioningError as e:
        # Surface the error to the user and fail the build step
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)

    if binary is None:
        console.print("Helm init skipped.")
    else:
        console.print(f"Helm ready at [bold]{binary}[/bold]")
