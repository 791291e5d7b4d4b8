"""Command-line interface for bazaar."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from bazaar.accounts.models import EntityType
from bazaar.errors import BazaarError
from bazaar.logging_config import configure_logging, get_logger
from bazaar.referral.service import ReferralService
from bazaar.signup.otp import OtpService
from bazaar.storage.db import db

# Configure logging
configure_logging()
logger = get_logger(__name__)

app = typer.Typer(
    name="bazaar",
    help="Bazaar - marketplace signup and referral administration",
    no_args_is_help=True,
)

console = Console()


def _parse_types(types: str) -> list[EntityType] | None:
    values = [t.strip() for t in types.split(",") if t.strip()]
    if not values:
        return None
    try:
        return [EntityType(v) for v in values]
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("salesperson-create")
def create_salesperson(
    name: Annotated[str, typer.Option("--name", "-n", help="Full name")],
    email: Annotated[str, typer.Option("--email", "-e", help="Email address")],
    phone: Annotated[str | None, typer.Option("--phone", "-p", help="Phone number")] = None,
    manager: Annotated[str | None, typer.Option("--manager", "-m", help="Sales manager ID")] = None,
) -> None:
    """Create a salesperson with a fresh referral code."""
    try:
        salesperson = ReferralService(db).create_salesperson(
            full_name=name,
            email=email.strip().lower(),
            phone=phone,
            sales_manager_id=manager,
        )
    except BazaarError as e:
        console.print(f"[bold red]✗[/bold red] {e.message}")
        raise typer.Exit(1)

    console.print("[bold green]✓[/bold green] Salesperson created")
    console.print(f"  ID: {salesperson.id}")
    console.print(f"  Referral code: [cyan]{salesperson.referral_code}[/cyan]")


@app.command("referral-code")
def referral_code(
    entity_type: Annotated[EntityType, typer.Argument(help="Entity type")],
    entity_id: Annotated[str, typer.Argument(help="Entity ID")],
) -> None:
    """Show an entity's referral code, assigning one if it has none."""
    try:
        code = ReferralService(db).ensure_referral_code(entity_type, entity_id)
    except BazaarError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    console.print(code)


@app.command("resolve")
def resolve_code(
    code: Annotated[str, typer.Argument(help="Referral code")],
    types: Annotated[str, typer.Option("--types", "-t", help="Comma-separated entity types to search")] = "",
) -> None:
    """Find the entity that owns a referral code."""
    try:
        referrer = ReferralService(db).resolve_referrer(code, entity_types=_parse_types(types))
    except BazaarError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold]Type:[/bold] {referrer.entity_type.value}")
    console.print(f"[bold]ID:[/bold] {referrer.entity_id}")
    if referrer.display_name:
        console.print(f"[bold]Name:[/bold] {referrer.display_name}")


@app.command("sweep-otps")
def sweep_otps() -> None:
    """Delete pending signups whose OTP has expired."""
    deleted = OtpService(db).sweep_expired()
    console.print(f"[bold green]✓[/bold green] Removed {deleted} expired pending signups")


@app.command("reconcile")
def reconcile() -> None:
    """Apply rewards missing for recorded commissions."""
    repaired = ReferralService(db).ledger.reconcile()
    if repaired:
        console.print(f"[bold yellow]Applied {repaired} missing rewards[/bold yellow]")
    else:
        console.print("[bold green]✓[/bold green] Ledger consistent")


@app.command("commissions")
def list_commissions(
    referrer_id: Annotated[str, typer.Argument(help="Referrer entity ID")],
    limit: Annotated[int, typer.Option("--limit", "-l", help="Maximum records")] = 50,
) -> None:
    """List commissions earned by a referrer."""
    ledger = ReferralService(db).ledger
    records = ledger.list_commissions(referrer_id, limit=limit)

    if not records:
        console.print("[yellow]No commissions found[/yellow]")
        return

    table = Table(title=f"Commissions for {referrer_id}")
    table.add_column("Referred", style="cyan")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    table.add_column("Unit")
    table.add_column("Created At")

    for record in records:
        table.add_row(
            record.referred_id,
            record.referred_type.value if record.referred_type else "-",
            f"{record.amount:g}",
            record.reward_unit.value,
            record.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)

    summary = ledger.summary(referrer_id)
    console.print(f"[bold]Total:[/bold] {summary['count']} referrals, {summary['total_amount']:g} earned")


if __name__ == "__main__":
    app()
