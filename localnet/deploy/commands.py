"""Launch command lines for every node role."""

from typing import Dict, List

import structlog

from .. import constants
from ..config.base import NetworkDefaults
from ..core.types import KeyRef, NetworkRecord, NodeIdentity, NodeRole

logger = structlog.get_logger()

ARCHIVE_SERVICE = "archive-service"
POSTGRES_SERVICE = "postgres"
PROXY_SERVICE = "proxy"


def container_path(relative: str) -> str:
    """Map a network-relative path to its location inside containers."""
    return f"{constants.CONTAINER_NETWORK_DIR}/{relative}"


def auxiliary_container(service: str, network_name: str) -> str:
    return f"{service}-{network_name}"


def peer_address(node: NodeIdentity, network_name: str) -> str:
    """libp2p multiaddress other nodes use to reach a node."""
    peer: KeyRef = node.peer_keypair_ref
    return (f"/dns4/{node.container_name(network_name)}/tcp/{node.external_port}"
            f"/p2p/{peer.peer_id}")


def daemon_base_command(node: NodeIdentity, defaults: NetworkDefaults) -> List[str]:
    """Flags shared by every daemon, exposing all five ports of the block."""
    command = [
        "daemon",
        "-client-port", str(node.client_port),
        "-rest-port", str(node.rest_port),
        "-insecure-rest-server",
        "-external-port", str(node.external_port),
        "-metrics-port", str(node.metrics_port),
        "-libp2p-metrics-port", str(node.libp2p_metrics_port),
        "-config-file", container_path(constants.GENESIS_FILE),
        "-log-json",
        "-log-level", defaults.log_level,
        "-file-log-level", defaults.file_log_level,
        "-config-directory", constants.CONTAINER_CONFIG_DIR,
    ]
    if node.peer_keypair_ref is not None:
        command += ["-libp2p-keypair", container_path(node.peer_keypair_ref.private_path)]
    return command


def snark_worker_command(node: NodeIdentity, coordinator: NodeIdentity,
                         network_name: str, defaults: NetworkDefaults) -> List[str]:
    return [
        "internal", "snark-worker",
        "-proof-level", defaults.proof_level,
        "-shutdown-on-disconnect", "false",
        "-daemon-address", f"{coordinator.container_name(network_name)}:{coordinator.client_port}",
        "-config-directory", constants.CONTAINER_CONFIG_DIR,
    ]


def build_command(node: NodeIdentity, record: NetworkRecord,
                  defaults: NetworkDefaults) -> List[str]:
    """Build the full command line of a node from its role and resolved block."""
    nodes: Dict[str, NodeIdentity] = {n.id: n for n in record.topology}

    if node.role == NodeRole.SNARK_WORKER:
        command = snark_worker_command(node, nodes[node.upstream], record.name, defaults)
        return command + list(node.extra_args)

    command = daemon_base_command(node, defaults)
    if node.role == NodeRole.SEED:
        command.append("-seed")

    for dependency in node.requires:
        required = nodes[dependency]
        if required.role == NodeRole.SEED:
            command += ["-peer", peer_address(required, record.name)]

    if node.role.is_block_producer:
        command += ["-block-producer-key", container_path(node.signing_keypair_ref.private_path)]

    if node.role == NodeRole.SNARK_COORDINATOR:
        command += [
            "-work-selection", "seq",
            "-snark-worker-fee", defaults.snark_worker_fee,
            "-run-snark-coordinator", node.signing_keypair_ref.public_key,
        ]

    if node.role == NodeRole.ARCHIVE:
        archive_host = auxiliary_container(ARCHIVE_SERVICE, record.name)
        command += ["-archive-address", f"{archive_host}:{defaults.archive_server_port}"]

    if node.role != NodeRole.SEED and not node.requires:
        logger.warning("node_without_peers", node=node.id, network=record.name)

    return command + list(node.extra_args)


def postgres_uri(record: NetworkRecord, defaults: NetworkDefaults) -> str:
    host = defaults.pg_host or auxiliary_container(POSTGRES_SERVICE, record.name)
    return (f"postgres://{defaults.pg_user}:{defaults.pg_password}"
            f"@{host}:{defaults.pg_port}/{defaults.pg_db}")


def archive_service_command(record: NetworkRecord, defaults: NetworkDefaults) -> List[str]:
    return [
        "mina-archive", "run",
        "--config-file", container_path(constants.GENESIS_FILE),
        "--postgres-uri", postgres_uri(record, defaults),
        "--server-port", str(defaults.archive_server_port),
    ]
