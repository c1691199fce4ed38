"""
CLI commands for single nodes.
"""
import click

from .. import constants
from .output import echo_json, get_controller, handle_errors


@click.group()
def node():
    """Node management commands."""
    pass


def node_options(func):
    func = click.option('--node-id', '-i', required=True, help='Node id, e.g. whale-0')(func)
    return click.option('--network-id', '-n', default=constants.DEFAULT_NETWORK,
                        show_default=True, help='Network name')(func)


@node.command()
@node_options
@click.option('--fresh-state', '-f', is_flag=True, help='Wipe the node\'s config directory first')
@click.option('--import-accounts', '-a', is_flag=True,
              help='Import the node\'s signing key into its wallet first')
@handle_errors
def start(network_id: str, node_id: str, fresh_state: bool, import_accounts: bool):
    """Start one node."""
    record = get_controller().start(network_id, node_id, fresh_state=fresh_state,
                                    import_accounts=import_accounts)
    echo_json({
        "network_id": network_id,
        "node_id": node_id,
        "state": record.find_node(node_id).state.value,
        "network_state": record.state.value,
    })


@node.command()
@node_options
@handle_errors
def stop(network_id: str, node_id: str):
    """Stop one node."""
    record = get_controller().stop(network_id, node_id)
    echo_json({
        "network_id": network_id,
        "node_id": node_id,
        "state": record.find_node(node_id).state.value,
        "network_state": record.state.value,
    })


@node.command()
@node_options
@handle_errors
def logs(network_id: str, node_id: str):
    """Print a node's logs."""
    click.echo(get_controller().logs(network_id, node_id), nl=False)


@node.command('dump-precomputed-blocks')
@node_options
@handle_errors
def dump_precomputed_blocks(network_id: str, node_id: str):
    """Dump the precomputed blocks a running node has logged."""
    blocks = get_controller().dump_precomputed_blocks(network_id, node_id)
    echo_json({"blocks": blocks, "network_id": network_id, "node_id": node_id})


@node.command('dump-archive-data')
@node_options
@handle_errors
def dump_archive_data(network_id: str, node_id: str):
    """Dump the archive database of a running archive node as SQL."""
    data = get_controller().dump_archive_data(network_id, node_id)
    echo_json({"data": data, "network_id": network_id, "node_id": node_id})


@node.command('run-replayer')
@node_options
@click.option('--start-slot-since-genesis', '-s', type=click.IntRange(min=0), default=0,
              show_default=True, help='Global slot to replay from')
@handle_errors
def run_replayer(network_id: str, node_id: str, start_slot_since_genesis: int):
    """Replay the archived chain of a running archive node."""
    output = get_controller().run_replayer(network_id, node_id, start_slot_since_genesis)
    echo_json({"logs": output, "network_id": network_id, "node_id": node_id})
