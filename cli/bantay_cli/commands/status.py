import click
from rich.console import Console
from rich.table import Table
from ..client import run_command

console = Console()

@click.command()
def status():
    """Show monitor status and configured rate limit rules."""
    try:
        data = run_command("status")
    except ConnectionError:
        console.print("[bold red]Error:[/bold red] Monitor not running.")
        raise SystemExit(1)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)

    console.print(f"\n[bold green]Bantay v{data.get('version', '?')}[/bold green]")
    console.print(f"Status: [green]● {data.get('status', 'unknown')}[/green]")
    console.print(f"Uptime: {data.get('uptime', 0)}s")
    console.print(f"Audit trail: {'on' if data.get('audit_enabled') else 'off'}")
    console.print(f"Monitored clients: {data.get('monitored_keys', 0)}")
    console.print(f"Rate limit entries: {data.get('rate_limit_entries', 0)}")

    table = Table(title="Rate limit rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Max requests", justify="right")
    table.add_column("Window (s)", justify="right")
    for name, rule in sorted(data.get("rules", {}).items()):
        table.add_row(name, str(rule["max_requests"]), str(rule["window_ms"] // 1000))
    console.print(table)

    detections = data.get("detections") or {}
    if detections:
        console.print("\n[bold]Detections since start:[/bold]")
        for name, count in sorted(detections.items()):
            console.print(f"  - {name}: {count}")
