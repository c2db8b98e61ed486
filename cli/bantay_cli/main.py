import click
from .commands.status import status
from .commands.threats import threats
from .commands.insights import insights, stats
from .commands.ratelimit import ratelimit
from .commands.config import init_config

@click.group()
@click.version_option(version="0.1.0")
def cli():
    """Bantay - API security monitor"""
    pass

cli.add_command(status)
cli.add_command(threats)
cli.add_command(insights)
cli.add_command(stats)
cli.add_command(ratelimit)
cli.add_command(init_config)

if __name__ == "__main__":
    cli()
