"""CLI commands for inspecting leases without claiming them.

Usage:
    leasehold holder
    leasehold holder --lease-name scheduler --namespace prod
    leasehold leases --namespace prod
"""

from __future__ import annotations

import asyncio

import typer

from leasehold.config import settings
from leasehold.errors import LeaseStoreError, NotFound
from leasehold.lease.record import LeaseRecord, utcnow
from leasehold.store import create_store

holder_app = typer.Typer(help="Show who holds a lease")
leases_app = typer.Typer(help="List the leases in a namespace")


@holder_app.callback(invoke_without_command=True)
def holder(
    lease_name: str = typer.Option(
        settings.lease_name,
        "--lease-name",
        help="Name of the lease record",
    ),
    namespace: str = typer.Option(
        settings.namespace,
        "--namespace",
        "-n",
        help="Namespace of the lease record",
    ),
) -> None:
    """Print the current holder of a lease and when its claim expires."""
    asyncio.run(_show_holder(lease_name, namespace))


@leases_app.callback(invoke_without_command=True)
def leases(
    namespace: str = typer.Option(
        settings.namespace,
        "--namespace",
        "-n",
        help="Namespace to list",
    ),
) -> None:
    """List lease records with their holders."""
    asyncio.run(_list_leases(namespace))


def describe_holder(record: LeaseRecord) -> str:
    """One-line status of a lease record."""
    now = utcnow()
    if record.holder_identity is None:
        return "unclaimed"
    if record.is_valid(now):
        return f"{record.holder_identity} (until {record.expires_at.isoformat()})"  # type: ignore[union-attr]
    return f"{record.holder_identity} (expired)"


async def _show_holder(lease_name: str, namespace: str) -> None:
    from rich.console import Console

    console = Console()
    store = await create_store(settings)
    try:
        record = await store.get(namespace, lease_name)
    except NotFound as e:
        console.print(f"[yellow]Lease not found:[/yellow] {namespace}/{lease_name}")
        raise typer.Exit(code=1) from e
    except LeaseStoreError as e:
        console.print(f"[red]Store error:[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        await store.close()

    console.print(f"[blue]{namespace}/{lease_name}:[/blue] {describe_holder(record)}")


async def _list_leases(namespace: str) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    store = await create_store(settings)
    try:
        records = await store.list(namespace)
    except LeaseStoreError as e:
        console.print(f"[red]Store error:[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        await store.close()

    if not records:
        console.print(f"[yellow]No leases in namespace {namespace}[/yellow]")
        return

    table = Table(title=f"Leases in {namespace}")
    table.add_column("Name", style="cyan")
    table.add_column("Holder", style="green")
    table.add_column("Acquired", style="yellow")
    table.add_column("Version", style="magenta")

    for record in records:
        acquired = record.acquire_time.isoformat() if record.acquire_time else "-"
        table.add_row(record.name, describe_holder(record), acquired, record.version)

    console.print(table)
