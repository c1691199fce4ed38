"""
CLI commands for network management.
"""
from pathlib import Path
from typing import Optional

import click

from .. import constants
from ..topology import TopologySpec, load_topology
from .output import echo_json, get_controller, handle_errors

NETWORK_ID = click.option('--network-id', '-n', default=constants.DEFAULT_NETWORK,
                          show_default=True, help='Network name')


@click.group()
def network():
    """Network management commands."""
    pass


@network.command()
@NETWORK_ID
@click.option('--topology', '-t', type=click.Path(path_type=Path),
              help='Topology document (YAML or JSON)')
@click.option('--genesis', '-g', type=click.Path(path_type=Path),
              help='Genesis ledger to add the generated accounts to')
@click.option('--exist-ok', is_flag=True,
              help='Succeed if the network already exists with the same topology')
@handle_errors
def create(network_id: str, topology: Optional[Path], genesis: Optional[Path], exist_ok: bool):
    """Create a network: keys, genesis ledger and deployment descriptors."""
    spec = load_topology(topology) if topology else TopologySpec.default()
    controller = get_controller()
    record = controller.create(network_id, spec, genesis_path=genesis, exist_ok=exist_ok)
    echo_json(controller.info(record.name))


@network.command()
@NETWORK_ID
@handle_errors
def start(network_id: str):
    """Start every node of a network."""
    record = get_controller().start(network_id)
    echo_json({"network_id": network_id, "state": record.state.value})


@network.command()
@NETWORK_ID
@handle_errors
def stop(network_id: str):
    """Stop every node of a network."""
    record = get_controller().stop(network_id)
    echo_json({"network_id": network_id, "state": record.state.value})


@network.command()
@NETWORK_ID
@handle_errors
def status(network_id: str):
    """Show persisted and live state of every node."""
    echo_json(get_controller().status(network_id))


@network.command()
@NETWORK_ID
@handle_errors
def info(network_id: str):
    """Show endpoints, ports and keys of every node."""
    echo_json(get_controller().info(network_id))


@network.command()
@NETWORK_ID
@handle_errors
def delete(network_id: str):
    """Remove a stopped network and everything generated for it."""
    get_controller().delete(network_id)
    echo_json({"network_id": network_id, "state": "deleted"})


@network.command(name='list')
@handle_errors
def list_networks():
    """List every network."""
    echo_json(get_controller().list())


@network.command()
@NETWORK_ID
@click.option('--keys', is_flag=True, help='Also regenerate every key')
@handle_errors
def reset(network_id: str, keys: bool):
    """Reset the genesis ledger of a stopped network."""
    record = get_controller().reset_genesis(network_id, regenerate_keys=keys)
    echo_json({
        "network_id": network_id,
        "genesis_timestamp": record.genesis.state_timestamp,
        "accounts": len(record.genesis.accounts),
    })


@network.command(name='update-timestamp')
@NETWORK_ID
@handle_errors
def update_timestamp(network_id: str):
    """Refresh the genesis timestamp of a stopped network."""
    record = get_controller().update_genesis_timestamp(network_id)
    echo_json({"network_id": network_id, "genesis_timestamp": record.genesis.state_timestamp})


@network.command()
@NETWORK_ID
@handle_errors
def render(network_id: str):
    """Rewrite the compose and proxy documents of a network."""
    controller = get_controller()
    controller.render(network_id)
    echo_json({
        "network_id": network_id,
        "compose_file": str(controller.store.compose_path(network_id)),
        "proxy_file": str(controller.store.proxy_path(network_id)),
    })
