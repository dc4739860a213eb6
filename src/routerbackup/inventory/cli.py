"""
CLI for router inventory management.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import json

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.errors import DeviceNotFound, InventoryUnavailable
from routerbackup.backup.models import DeviceRecord
from routerbackup.inventory.database import DeviceInventory, get_inventory

console = Console()


def get_db(ctx: click.Context) -> DeviceInventory:
    """Get inventory instance for the configured database."""
    config: BackupConfig = (ctx.obj or {}).get("config") or BackupConfig.from_env()
    db = get_inventory(config.database)
    db.initialize()
    return db


@click.group()
@click.pass_context
def devices(ctx: click.Context) -> None:
    """Manage the routers that get backed up."""
    ctx.ensure_object(dict)


@devices.command("add")
@click.argument("address")
@click.option("--identity", "-i", required=True, help="Router identity (system name)")
@click.option("--port", "-p", type=int, help="SSH port, if not the configured default")
@click.option("--credential", "-c", "credential_ref", default="",
              help="Vault credential name (empty uses the configured SSH login)")
@click.pass_context
def device_add(ctx: click.Context, address: str, identity: str, port: int | None, credential_ref: str) -> None:
    """Add a router to the inventory."""
    db = get_db(ctx)
    try:
        db.add_device(DeviceRecord(
            identity=identity,
            address=address,
            port=port,
            credential_ref=credential_ref,
        ))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    finally:
        db.close()

    console.print(f"[green]Added router {identity} ({address})[/green]")


@devices.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def device_list(ctx: click.Context, json_output: bool) -> None:
    """List routers in inventory."""
    db = get_db(ctx)
    try:
        routers = db.list_devices()
    except InventoryUnavailable as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    finally:
        db.close()

    if json_output:
        console.print_json(json.dumps([r.to_dict() for r in routers]))
        return

    if not routers:
        console.print("[yellow]No routers found[/yellow]")
        return

    table = Table(show_header=True, title=f"Routers ({len(routers)})")
    table.add_column("Identity", style="cyan")
    table.add_column("Address")
    table.add_column("Port")
    table.add_column("Credential")
    table.add_column("Last Backup")

    for router in routers:
        last_backup = "-"
        if router.last_backup:
            last_backup = router.last_backup.strftime("%Y-%m-%d %H:%M")

        table.add_row(
            router.identity,
            router.address,
            str(router.port) if router.port else "-",
            router.credential_ref or "default",
            last_backup,
        )

    console.print(table)


@devices.command("show")
@click.argument("address")
@click.pass_context
def device_show(ctx: click.Context, address: str) -> None:
    """Show one router."""
    db = get_db(ctx)
    try:
        router = db.get_device(address)
    except DeviceNotFound:
        console.print(f"[red]Router '{address}' not found[/red]")
        raise SystemExit(1)
    except InventoryUnavailable as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    finally:
        db.close()

    lines = [
        f"[bold]Identity:[/bold] {router.identity}",
        f"[bold]Address:[/bold] {router.address}",
        f"[bold]Port:[/bold] {router.port or 'default'}",
        f"[bold]Credential:[/bold] {router.credential_ref or 'default'}",
        f"[bold]Last Backup:[/bold] {router.last_backup.isoformat() if router.last_backup else 'never'}",
    ]
    console.print(Panel("\n".join(lines), title=router.identity))


@devices.command("remove")
@click.argument("address")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def device_remove(ctx: click.Context, address: str, yes: bool) -> None:
    """Remove a router from the inventory."""
    if not yes:
        if not click.confirm(f"Remove router {address}?"):
            return

    db = get_db(ctx)
    try:
        removed = db.remove_device(address)
    finally:
        db.close()

    if removed:
        console.print(f"[green]Router {address} removed[/green]")
    else:
        console.print(f"[red]Router {address} not found[/red]")
        raise SystemExit(1)
