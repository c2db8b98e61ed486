import click
from rich.console import Console
from monitor.bantay.utils.clock import iso_from_ms
from ..client import run_command

console = Console()

@click.group()
def ratelimit():
    """Inspect or reset rate limit entries."""
    pass

@ratelimit.command("status")
@click.argument("identifier")
@click.argument("rule")
def ratelimit_status(identifier, rule):
    """Show the entry for IDENTIFIER (e.g. ip:1.2.3.4) under RULE."""
    try:
        entry = run_command("ratelimit_status", {"identifier": identifier, "rule": rule})
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)

    if entry is None:
        console.print(f"No entry for {identifier} under '{rule}'.")
        return
    state = "[bold red]blocked[/bold red]" if entry["blocked"] else "[green]open[/green]"
    console.print(f"{identifier} / {rule}: {entry['count']} requests, {state}")
    console.print(f"Window resets at {iso_from_ms(entry['reset_time'])}")

@ratelimit.command("reset")
@click.argument("identifier")
@click.argument("rule")
def ratelimit_reset(identifier, rule):
    """Clear the entry for IDENTIFIER under RULE."""
    try:
        data = run_command("ratelimit_reset", {"identifier": identifier, "rule": rule})
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)

    if data["reset"]:
        console.print(f"[green]Reset[/green] {identifier} under '{rule}'.")
    else:
        console.print(f"Nothing to reset for {identifier} under '{rule}'.")
