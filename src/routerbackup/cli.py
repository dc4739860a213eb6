"""
routerbackup CLI - Main entry point for the command-line interface.
"""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from routerbackup import __version__
from routerbackup.backup.config import BackupConfig

console = Console()


def configure_logging(verbose: bool) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # asyncssh and httpx log every packet/request at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="routerbackup")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False),
              envvar="ROUTERBACKUP_CONFIG", help="Config file (JSON or key=value)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """routerbackup - RouterOS configuration backups

    Pulls binary and script exports from MikroTik routers over SSH and
    commits them to GitLab or a local archive.
    """
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["console"] = console
    ctx.obj["config"] = (
        BackupConfig.from_file(config_path) if config_path else BackupConfig.from_env()
    )


# Import and register subcommand groups
from routerbackup.backup.cli import backup
from routerbackup.inventory.cli import devices

main.add_command(backup)
main.add_command(devices)


if __name__ == "__main__":
    main()
