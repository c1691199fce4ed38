"""localnet CLI Commands"""
import click

from ..config import configure_logging
from .network import network
from .node import node


@click.group()
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                                               case_sensitive=False),
              default='WARNING', show_default=True, envvar='LOCALNET_LOG_LEVEL',
              help='Log level of the diagnostics printed on stderr')
def cli(log_level):
    """Manage local multi-node networks."""
    configure_logging(log_level)


# Register commands
cli.add_command(network)
cli.add_command(node)


def main():
    cli(prog_name="localnet")
