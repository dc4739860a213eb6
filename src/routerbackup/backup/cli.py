"""
CLI commands for router configuration backup.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import asyncio
import os
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.credentials import VAULT_PASSWORD_ENV, CredentialVault
from routerbackup.backup.errors import TargetSetupError
from routerbackup.backup.models import OutcomeStatus, RunSummary, SSHCredential
from routerbackup.backup.orchestrator import BackupOrchestrator
from routerbackup.backup.targets import FilesystemTarget, get_target
from routerbackup.inventory.database import DeviceInventory, get_inventory

console = Console()

STATUS_STYLES = {
    OutcomeStatus.SUCCESS: "green",
    OutcomeStatus.RETRIEVAL_FAILED: "red",
    OutcomeStatus.COMMIT_FAILED: "yellow",
    OutcomeStatus.INVENTORY_UNAVAILABLE: "red",
}


def _open_vault(config: BackupConfig, vault_path: str | None = None, prompt: bool = True) -> CredentialVault | None:
    """Open the credential vault, prompting for its password if needed."""
    vault_password = os.environ.get(VAULT_PASSWORD_ENV)
    if not vault_password:
        if not prompt:
            return None
        vault_password = click.prompt("Vault password", hide_input=True)

    vault = CredentialVault(Path(vault_path) if vault_path else config.vault_path, vault_password)
    vault.initialize()
    return vault


@click.group()
@click.pass_context
def backup(ctx: click.Context) -> None:
    """Router configuration backup commands."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("console", console)
    ctx.obj.setdefault("config", BackupConfig.from_env())


# =============================================================================
# Backup Run
# =============================================================================

@backup.command("run")
@click.option("--address", "-a", "addresses", multiple=True,
              help="Back up only this router address (repeatable)")
@click.option("--workers", "-w", type=int, help="Number of routers backed up in parallel")
@click.option("--target", "-t", type=click.Choice(["gitlab", "filesystem"]),
              help="Versioned destination")
@click.option("--storage-path", type=click.Path(file_okay=False), help="Archive directory for the filesystem target")
@click.pass_context
def backup_run(
    ctx: click.Context,
    addresses: tuple,
    workers: int | None,
    target: str | None,
    storage_path: str | None,
) -> None:
    """Back up every router in the inventory, or only --address ones."""
    config: BackupConfig = ctx.obj["config"]
    overrides = {}
    if workers:
        overrides["max_workers"] = workers
    if target:
        overrides["target"] = target
    if storage_path:
        overrides["archive_path"] = storage_path
    if overrides:
        config = config.replace(**overrides)

    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]{error}[/red]")
        raise SystemExit(1)

    inventory = get_inventory(config.database)
    inventory.initialize()
    vault = _open_vault(config, prompt=False)

    try:
        summary = asyncio.run(_execute(config, inventory, vault, list(addresses)))
    except TargetSetupError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    finally:
        inventory.close()

    _print_summary(summary)
    if summary.failed:
        raise SystemExit(1)


async def _execute(
    config: BackupConfig,
    inventory: DeviceInventory,
    vault: CredentialVault | None,
    addresses: list[str],
) -> RunSummary:
    async with get_target(config) as repository:
        orchestrator = BackupOrchestrator.from_config(config, inventory, repository, vault)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, orchestrator.cancel)
            except (NotImplementedError, RuntimeError):
                pass  # not supported on this platform / thread

        if addresses:
            return await orchestrator.run_selected(addresses)
        return await orchestrator.run_fleet()


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Backup Run")
    table.add_column("Address", style="cyan")
    table.add_column("Identity")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for outcome in summary.outcomes:
        style = STATUS_STYLES.get(outcome.status, "white")
        table.add_row(
            outcome.device_address,
            outcome.device_identity or "",
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.detail,
        )

    console.print(table)

    duration = summary.duration_seconds or 0.0
    lines = (
        f"Succeeded: {len(summary.succeeded)}\n"
        f"Failed: {len(summary.failed)}\n"
        f"Duration: {duration:.1f}s"
    )
    if summary.cancelled:
        lines += "\n[yellow]Run was cancelled before all routers were processed[/yellow]"
    if summary.notified:
        lines += "\nFailure report sent"

    title = "Backup Complete" if not summary.failed else "Backup Finished With Errors"
    console.print(Panel(lines, title=title))


# =============================================================================
# Archive History
# =============================================================================

@backup.command("history")
@click.option("--path", "-p", "repo_path", help="Only commits touching this archive path")
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Number of commits to show")
@click.option("--storage-path", type=click.Path(file_okay=False), help="Archive directory")
@click.pass_context
def backup_history(
    ctx: click.Context,
    repo_path: str | None,
    limit: int,
    storage_path: str | None,
) -> None:
    """Show recent commits to the local archive."""
    config: BackupConfig = ctx.obj["config"]
    archive = FilesystemTarget(config, base_path=storage_path)

    entries = list(archive.history(repo_path))[-limit:]
    if not entries:
        console.print("[yellow]No commits found[/yellow]")
        return

    table = Table(title="Archive History")
    table.add_column("Timestamp", style="yellow")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("SHA256", style="dim")
    table.add_column("Message")

    for entry in reversed(entries):
        table.add_row(
            entry.get("timestamp", "")[:19],
            entry.get("path", ""),
            f"{entry.get('size', 0):,}",
            entry.get("sha256", "")[:12],
            entry.get("message", ""),
        )

    console.print(table)


# =============================================================================
# Credential Management Commands
# =============================================================================

@backup.group("creds")
@click.pass_context
def creds(ctx: click.Context) -> None:
    """Manage router SSH credentials."""
    pass


@creds.command("add")
@click.argument("name")
@click.option("--username", "-u", required=True, help="SSH username")
@click.option("--password", "-p", help="SSH password")
@click.option("--ssh-key", type=click.Path(exists=True, dir_okay=False), help="Path to SSH private key")
@click.option("--ssh-key-passphrase", help="Passphrase for the SSH key")
@click.option("--vault-path", type=click.Path(), help="Custom vault path")
@click.pass_context
def creds_add(
    ctx: click.Context,
    name: str,
    username: str,
    password: str | None,
    ssh_key: str | None,
    ssh_key_passphrase: str | None,
    vault_path: str | None,
) -> None:
    """Store a credential under NAME for use as a router's credential ref."""
    vault = _open_vault(ctx.obj["config"], vault_path)

    if not password and not ssh_key:
        password = click.prompt("Router password", hide_input=True)

    credential = SSHCredential(
        username=username,
        password=password,
        ssh_key=Path(ssh_key).read_text() if ssh_key else None,
        ssh_key_passphrase=ssh_key_passphrase,
    )

    try:
        vault.add_credential(name, credential)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    console.print(f"[green]Credential '{name}' stored[/green]")


@creds.command("list")
@click.option("--vault-path", type=click.Path(), help="Custom vault path")
@click.pass_context
def creds_list(ctx: click.Context, vault_path: str | None) -> None:
    """List stored credentials."""
    vault = _open_vault(ctx.obj["config"], vault_path)

    entries = list(vault.list_credentials())
    if not entries:
        console.print("[yellow]No credentials found[/yellow]")
        return

    table = Table(title="Stored Credentials")
    table.add_column("Name", style="cyan")
    table.add_column("Username", style="green")

    for name, username in entries:
        table.add_row(name, username)

    console.print(table)


@creds.command("delete")
@click.argument("name")
@click.option("--vault-path", type=click.Path(), help="Custom vault path")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def creds_delete(ctx: click.Context, name: str, vault_path: str | None, yes: bool) -> None:
    """Delete a credential from the vault."""
    if not yes:
        if not click.confirm(f"Delete credential {name}?"):
            return

    vault = _open_vault(ctx.obj["config"], vault_path)

    if vault.delete_credential(name):
        console.print(f"[green]Credential {name} deleted[/green]")
    else:
        console.print(f"[red]Credential {name} not found[/red]")
