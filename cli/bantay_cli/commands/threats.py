import click
from rich.console import Console
from rich.table import Table
from ..client import run_command

console = Console()

SEVERITY_STYLES = {
    "low": "green",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}

@click.command()
@click.option("--limit", "-n", default=10, help="Number of threats to show")
def threats(limit):
    """List recent threat detections from the audit trail."""
    try:
        data = run_command("threats", {"limit": limit})
    except ConnectionError:
        console.print("[bold red]Error:[/bold red] Monitor not running.")
        raise SystemExit(1)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)

    if not data:
        console.print("No threats found.")
        return

    table = Table(title="Recent Threats")
    table.add_column("ID", style="cyan")
    table.add_column("Time", style="dim")
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Source")
    table.add_column("Mitigated")

    for threat in data:
        style = SEVERITY_STYLES.get(threat["severity"], "white")
        source = threat["source_ip"]
        if threat.get("user_id"):
            source = f"{source} (user {threat['user_id']})"
        table.add_row(
            threat["id"],
            threat["timestamp"],
            f"[{style}]{threat['severity'].upper()}[/{style}]",
            threat["event_type"],
            source,
            "yes" if threat["mitigated"] else "no",
        )

    console.print(table)
