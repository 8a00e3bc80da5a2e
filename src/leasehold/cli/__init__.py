"""CLI commands for leasehold.

Provides command-line interface using Typer:
- leasehold run: Claim the lease and run the leader job
- leasehold holder: Show who holds a lease
- leasehold leases: List the leases in a namespace

Usage:
    leasehold --help
    leasehold run --claimant pod-a
    leasehold holder --lease-name scheduler
    leasehold leases --namespace prod
"""

import typer

from leasehold.cli.inspect_cmd import holder_app, leases_app
from leasehold.cli.run_cmd import app as run_app

# Main CLI application
app = typer.Typer(
    name="leasehold",
    help="leasehold: lease-based leader election",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(run_app, name="run")
app.add_typer(holder_app, name="holder")
app.add_typer(leases_app, name="leases")


@app.callback()
def callback() -> None:
    """leasehold: lease-based leader election."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
