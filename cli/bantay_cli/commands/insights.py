import click
from rich.console import Console
from rich.table import Table
from ..client import run_command

console = Console()

@click.command()
def insights():
    """Summarize threat levels across monitored clients."""
    try:
        data = run_command("insights")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)

    console.print(f"Monitored clients: {data['monitored_keys']}")
    console.print(f"Active threats:    [red]{data['active_threats']}[/red]")
    console.print(f"Blocked clients:   [bold red]{data['blocked_keys']}[/bold red]")
    console.print(f"Average level:     {data['avg_threat_level']}")

@click.command()
@click.option("--timeframe", "-t", type=click.Choice(["24h", "7d", "30d"]), default="24h")
def stats(timeframe):
    """Show audit trail statistics."""
    try:
        data = run_command("statistics", {"timeframe": timeframe})
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)

    table = Table(title=f"Security statistics ({timeframe})")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for name, value in data.items():
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)
