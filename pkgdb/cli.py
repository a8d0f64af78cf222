"""pkgdb CLI — inspect the package registry from the command line."""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from pkgdb import __version__
from pkgdb.manifests.numbers import UINT32_MAX

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, help="YAML config file")
@click.option("--xml", "markup_path", default=None, help="Path to packages.xml")
@click.option("--list", "line_path", default=None, help="Path to packages.list")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_path: str | None, markup_path: str | None, line_path: str | None, verbose: bool):
    """pkgdb — unified view of installed Android packages.

    Merges packages.xml and packages.list into one registry searchable by
    package name and by owner uid.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    from pkgdb.config import load_config

    try:
        config = load_config(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(1)

    if markup_path:
        config.markup_manifest = markup_path
    if line_path:
        config.line_manifest = line_path

    ctx.obj = config


def _open_db(config):
    from pkgdb.errors import PackageDBError
    from pkgdb.registry.package_db import PackageDB

    try:
        return PackageDB.from_config(config)
    except PackageDBError as e:
        console.print(f"[red]Failed to load package database:[/] {e}")
        sys.exit(1)


# ── List ─────────────────────────────────────────────────────────────


@main.command(name="list")
@click.pass_obj
def list_packages(config):
    """List every package in the registry."""
    with _open_db(config) as db:
        records = list(db.iter_by_name())

    if not records:
        console.print("[yellow]No packages found.[/]")
        return

    table = Table(title=f"Packages ({len(records)})")
    table.add_column("Name", style="cyan")
    table.add_column("UID", justify="right", style="green")
    table.add_column("Data Path")
    table.add_column("Signer")

    for record in records:
        table.add_row(
            record.name,
            str(record.owner_id),
            record.data_path,
            record.certificate_subject,
        )

    console.print(table)


# ── Show ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.pass_obj
def show(config, name: str):
    """Show everything known about one package."""
    with _open_db(config) as db:
        record = db.lookup_by_name(name)

    if record is None:
        console.print(f"[red]No such package:[/] {name}")
        sys.exit(1)

    gids = ", ".join(str(g) for g in record.group_ids) or "none"
    lines = [
        f"[bold]UID:[/] {record.owner_id}",
        f"[bold]GIDs:[/] {gids}",
        f"[bold]Install path:[/] {record.install_path or '-'}",
        f"[bold]Data path:[/] {record.data_path or '-'}",
        f"[bold]SE info:[/] {record.security_label or '-'}",
    ]
    if record.has_certificate:
        lines.append(f"[bold]Signer:[/] {record.certificate_subject or '-'}")
        lines.append(f"[bold]SHA-1:[/] {record.fingerprint_hex}")
    else:
        lines.append("[bold]Signer:[/] [dim]none[/]")

    console.print(Panel("\n".join(lines), title=record.name))


# ── UID ──────────────────────────────────────────────────────────────


@main.command()
@click.argument("owner_id", type=click.IntRange(0, UINT32_MAX))
@click.option("--first", is_flag=True, help="Only show the first matching package")
@click.pass_obj
def uid(config, owner_id: int, first: bool):
    """List packages running under OWNER_ID."""
    with _open_db(config) as db:
        if first:
            record = db.lookup_first_by_owner_id(owner_id)
            records = [record] if record else []
        else:
            records = list(db.lookup_all_by_owner_id(owner_id))

    if not records:
        console.print(f"[yellow]No packages with uid {owner_id}.[/]")
        return

    for record in records:
        console.print(f"  [cyan]{record.name}[/] {record.install_path or record.data_path}")


# ── Info ─────────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def info(config):
    """Show registry build time and counts."""
    with _open_db(config) as db:
        snapshot = db.snapshot
        built_at = db.last_update_time()

    signed = sum(1 for r in snapshot.by_name.values() if r.has_certificate)
    shared = sum(1 for bucket in snapshot.by_owner_id.values() if len(bucket) > 1)

    console.print(f"  packages.xml:  {config.markup_manifest}")
    console.print(f"  packages.list: {config.line_manifest}")
    console.print(f"  Built at:      {built_at.isoformat()}")
    console.print(f"  Packages:      {len(snapshot.by_name)} ({signed} signed)")
    console.print(f"  Owner ids:     {len(snapshot.by_owner_id)} ({shared} shared)")


if __name__ == "__main__":
    main()
