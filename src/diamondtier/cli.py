"""Command-line interface for Diamond Tier Capital."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from diamondtier.affiliates.models import RetryStatus
from diamondtier.affiliates.service import AffiliateError, affiliate_service
from diamondtier.affiliates.tracking import tracking_service
from diamondtier.auth.local import AuthError, auth_service
from diamondtier.auth.models import AdminRole
from diamondtier.logging_config import configure_logging, get_logger
from diamondtier.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="diamondtier",
    help="Diamond Tier Capital - applications, back office and affiliate program",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.command("init")
def init_database() -> None:
    """Create tables and seed the default affiliate tiers."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    created = affiliate_service.seed_default_tiers()
    console.print(f"[bold green]✓[/bold green] Database initialized ({created} tiers created)")


@app.command("seed-tiers")
def seed_tiers() -> None:
    """Insert missing default tiers and show the current rates."""
    created = affiliate_service.seed_default_tiers()
    console.print(f"[bold green]✓[/bold green] {created} tiers created")

    table = Table(title="Affiliate tiers")
    table.add_column("Tier", style="cyan")
    table.add_column("Rate %", justify="right")
    table.add_column("Description")
    for tier in affiliate_service.list_tiers():
        table.add_row(tier.name, f"{tier.commission_rate:g}", tier.description or "")
    console.print(table)


@app.command("create-admin")
def create_admin(
    email: Annotated[str, typer.Option("--email", "-e", help="Admin email")],
    password: Annotated[str, typer.Option(
        "--password",
        envvar="ADMIN_PASSWORD",
        prompt=True,
        hide_input=True,
        confirmation_prompt=True,
        help="Password (prompted when ADMIN_PASSWORD is not set)",
    )],
    name: Annotated[str | None, typer.Option("--name", "-n", help="Display name")] = None,
    super_admin: Annotated[bool, typer.Option("--super", help="Grant super admin role")] = False,
) -> None:
    """Create a back-office account."""
    role = AdminRole.SUPER_ADMIN.value if super_admin else AdminRole.ADMIN.value
    try:
        admin = auth_service.create_admin(email, password, name, role)
    except AuthError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Admin created: [bold]{admin.email}[/bold] ({admin.role})")


@app.command("fix-tracking")
def fix_tracking() -> None:
    """Re-attribute every application missing its affiliate or commission."""
    console.print("[bold blue]Re-running affiliate attribution...[/bold blue]")
    result = tracking_service.fix_tracking()

    console.print(f"  Processed: {result['processed']}")
    console.print(f"  Fixed: [green]{result['fixed']}[/green]")
    console.print(f"  Failed: [red]{result['failed']}[/red]")
    for error in result["errors"]:
        console.print(f"  [red]✗[/red] {error['applicationId']} ({error['referralCode']}): {error['error']}")

    if result["failed"]:
        raise typer.Exit(1)


@app.command("retries")
def list_retries(
    status: Annotated[str | None, typer.Option("--status", "-s", help="pending or completed")] = RetryStatus.PENDING.value,
) -> None:
    """List attribution retry records."""
    retries = tracking_service.list_retries(status)
    if not retries:
        console.print("[yellow]No retry records found[/yellow]")
        return

    table = Table(title="Tracking retries")
    table.add_column("Application", style="cyan")
    table.add_column("Code", style="green")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Last error")

    for retry in retries:
        table.add_row(
            retry.application_id,
            retry.referral_code,
            retry.status,
            str(retry.attempts),
            retry.last_error or "",
        )

    console.print(table)


@app.command("payout")
def payout(
    commission_ids: Annotated[list[str], typer.Argument(help="Commission IDs to mark as paid")],
) -> None:
    """Mark commissions as paid."""
    try:
        updated = affiliate_service.payout_commissions(commission_ids)
    except AffiliateError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] {updated} of {len(commission_ids)} commissions marked as paid")


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes")] = False,
) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run("diamondtier.api.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
