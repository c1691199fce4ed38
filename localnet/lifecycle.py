"""
Lifecycle Controller
--------------------
create/start/stop/status/info/delete for networks and nodes.

Every operation runs under the network's advisory lock and reads the
persisted record first. State is committed after each node the runtime
reports on, so an interrupted command leaves the last durable state behind
and can simply be re-run.
"""

from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from . import constants
from .config.base import NetworkDefaults
from .config.settings import LocalnetSettings
from .core.exceptions import (
    AlreadyExists, InvalidTopology, InvalidTransition, NetworkBusy, NodeNotRunning, NotFound,
)
from .core.types import (
    NETWORK_TRANSITIONS, NODE_TRANSITIONS, NetworkRecord, NetworkState, NodeIdentity,
    NodeRole, NodeState,
)
from .deploy.commands import (
    ARCHIVE_SERVICE, POSTGRES_SERVICE, PROXY_SERVICE, container_path, peer_address, postgres_uri,
)
from .deploy.compose import auxiliary_services
from .genesis import GenesisLedgerBuilder
from .keys import DockerKeyGenerator, KeyMaterialManager, LocalKeyGenerator
from .runtime import ComposeProject, ContainerInfo, ContainerRuntime, DockerComposeRuntime
from .store import NetworkStateStore
from .topology import TopologyResolver, TopologySpec, start_order
from .utils import validate_network_name

logger = structlog.get_logger()

BUSY_STATES = (NetworkState.RUNNING, NetworkState.DEGRADED)


class NodeInfo(BaseModel):
    """Static details of a node."""
    role: NodeRole
    state: NodeState
    base_port: int
    ports: Dict[str, int]
    container: str
    graphql_uri: Optional[str] = None
    proxy_uri: Optional[str] = None
    public_key: Optional[str] = None
    private_key_path: Optional[str] = None
    peer_id: Optional[str] = None
    peer_address: Optional[str] = None
    upstream: Optional[str] = None


class NetworkInfo(BaseModel):
    name: str
    state: NetworkState
    directory: str
    created_at: datetime
    genesis_timestamp: str
    nodes: Dict[str, NodeInfo] = Field(default_factory=dict)


class NodeStatus(BaseModel):
    """Persisted state of a node next to what the runtime reports."""
    id: str
    role: NodeRole
    state: NodeState
    container: str
    runtime_state: str = "not_created"
    runtime_status: str = ""
    live: bool = False
    graphql_uri: Optional[str] = None


class NetworkStatus(BaseModel):
    name: str
    state: NetworkState
    compose_file: str
    nodes: List[NodeStatus] = Field(default_factory=list)
    services: List[ContainerInfo] = Field(default_factory=list)


def check_node_transition(node: NodeIdentity, target: NodeState) -> None:
    if target not in NODE_TRANSITIONS[node.state]:
        raise InvalidTransition(node.id, node.state.value, target.value)


def check_network_transition(record: NetworkRecord, target: NetworkState) -> None:
    if target != record.state and target not in NETWORK_TRANSITIONS[record.state]:
        raise InvalidTransition(record.name, record.state.value, target.value)


class LifecycleController:
    """Drives network and node state transitions."""

    def __init__(self, store: NetworkStateStore, resolver: TopologyResolver,
                 runtime: ContainerRuntime):
        self.store = store
        self.resolver = resolver
        self.runtime = runtime

    @classmethod
    def from_settings(cls, settings: LocalnetSettings,
                      runtime: Optional[ContainerRuntime] = None) -> "LifecycleController":
        """Wire the default collaborators from environment settings."""
        defaults = settings.network_defaults()
        if settings.keygen == "local":
            logger.warning("software_keys_in_use",
                           reason="keys are not produced by the daemon image")
            generator = LocalKeyGenerator(defaults.privkey_pass, defaults.libp2p_pass)
        else:
            generator = DockerKeyGenerator(defaults.daemon_image, defaults.privkey_pass,
                                           defaults.libp2p_pass)
        home = settings.home_path
        resolver = TopologyResolver(defaults, KeyMaterialManager(home, generator))
        return cls(NetworkStateStore(home), resolver, runtime or DockerComposeRuntime())

    @property
    def ledger_builder(self) -> GenesisLedgerBuilder:
        return self.resolver.ledger_builder

    def project(self, name: str) -> ComposeProject:
        return ComposeProject(name=name, compose_file=self.store.compose_path(name))

    def _commit(self, record: NetworkRecord) -> NetworkRecord:
        target = record.rollup_state()
        check_network_transition(record, target)
        record.state = target
        return self.store.save(record)

    def _find_node(self, record: NetworkRecord, node_id: str) -> NodeIdentity:
        node = record.find_node(node_id)
        if node is None:
            raise NotFound(record.name, node_id)
        return node

    # create

    def create(self, name: str, spec: Optional[TopologySpec] = None,
               genesis_path: Optional[Path] = None, exist_ok: bool = False) -> NetworkRecord:
        """Resolve a topology, provision its keys and persist the network.

        Args:
            name: Network name
            spec: Topology, the default topology when omitted
            genesis_path: User supplied genesis ledger to extend
            exist_ok: Return the existing network when its topology is unchanged

        Raises:
            AlreadyExists: If a network with that name exists
        """
        validate_network_name(name)
        spec = spec or TopologySpec.default()
        with self.store.lock(name):
            if self.store.exists(name):
                existing = self.store.load(name)
                if exist_ok and existing.topology_spec == spec.model_dump(mode="json"):
                    logger.info("network_unchanged", network=name)
                    return existing
                raise AlreadyExists(name)

            genesis_base = GenesisLedgerBuilder.load(genesis_path) if genesis_path else None
            try:
                record = self.resolver.resolve(name, spec, genesis_base)
                self.store.write_genesis(record)
                self.store.write_deployment(record)
                self.store.save(record)
            except Exception:
                # No record was committed; leave nothing half-built behind
                self.store.remove(name)
                raise

        logger.info("network_created", network=name, nodes=len(record.topology))
        return record

    # start / stop

    def start(self, name: str, node_id: Optional[str] = None, fresh_state: bool = False,
              import_accounts: bool = False) -> NetworkRecord:
        """Start every node in dependency order, or a single node.

        Args:
            name: Network name
            node_id: Only start this node
            fresh_state: Wipe each started node's config directory first
            import_accounts: Import each started node's signing key into its wallet first
        """
        with self.store.lock(name):
            record = self.store.load(name)
            if record.state == NetworkState.DELETED:
                raise InvalidTransition(name, record.state.value, NetworkState.RUNNING.value)
            if node_id is None and record.state == NetworkState.RUNNING:
                logger.info("network_already_running", network=name)
                return record

            targets = [self._find_node(record, node_id)] if node_id else record.topology
            target_ids = {node.id for node in targets}
            defaults = NetworkDefaults.model_validate(record.defaults)
            project = self.project(name)

            for node in start_order(record.topology):
                if node.id not in target_ids or node.state == NodeState.RUNNING:
                    continue
                check_node_transition(node, NodeState.RUNNING)
                self._prepare(project, node, fresh_state, import_accounts)
                for service in auxiliary_services(record, node, defaults):
                    self.runtime.start(project, service)
                self.runtime.start(project, node.id)
                node.state = NodeState.RUNNING
                self._commit(record)
                logger.info("node_started", network=name, node=node.id)

            if node_id is None and record.routing:
                self.runtime.start(project, PROXY_SERVICE)

        logger.info("network_start_finished", network=name, state=record.state.value)
        return record

    def _prepare(self, project: ComposeProject, node: NodeIdentity, fresh_state: bool,
                 import_accounts: bool) -> None:
        if fresh_state:
            logger.info("clearing_node_state", network=project.name, node=node.id)
            self.runtime.run(project, node.id, ["-c", f"rm -rf {constants.CONTAINER_CONFIG_DIR}/*"],
                             entrypoint="sh")
        if not import_accounts:
            return
        signing = node.signing_keypair_ref
        if signing is None or not node.role.runs_daemon:
            logger.warning("no_account_to_import", network=project.name, node=node.id)
            return
        self.runtime.run(project, node.id, [
            "accounts", "import",
            "--privkey-path", container_path(signing.private_path),
            "--config-directory", constants.CONTAINER_CONFIG_DIR,
        ], entrypoint="mina")
        logger.info("account_imported", network=project.name, node=node.id,
                    public_key=signing.public_key)

    def stop(self, name: str, node_id: Optional[str] = None) -> NetworkRecord:
        """Stop every running node in reverse dependency order, or a single node.

        Stopping a node that isn't running is a no-op.
        """
        with self.store.lock(name):
            record = self.store.load(name)
            if record.state == NetworkState.DELETED:
                raise InvalidTransition(name, record.state.value, NetworkState.STOPPED.value)

            targets = [self._find_node(record, node_id)] if node_id else record.topology
            target_ids = {node.id for node in targets}
            defaults = NetworkDefaults.model_validate(record.defaults)
            project = self.project(name)

            if node_id is None and record.state != NetworkState.CREATED and record.routing:
                self.runtime.stop(project, PROXY_SERVICE)

            for node in reversed(start_order(record.topology)):
                if node.id not in target_ids or node.state != NodeState.RUNNING:
                    continue
                check_node_transition(node, NodeState.STOPPED)
                self.runtime.stop(project, node.id)
                node.state = NodeState.STOPPED
                self._commit(record)
                logger.info("node_stopped", network=name, node=node.id)

            if node_id is None and record.nodes_with_role(NodeRole.ARCHIVE) \
                    and record.state != NetworkState.CREATED:
                services = [ARCHIVE_SERVICE] if defaults.pg_host else [ARCHIVE_SERVICE, POSTGRES_SERVICE]
                for service in services:
                    self.runtime.stop(project, service)

        logger.info("network_stop_finished", network=name, state=record.state.value)
        return record

    # read-only

    def status(self, name: str) -> NetworkStatus:
        """Persisted node states merged with live container states."""
        with self.store.lock(name):
            record = self.store.load(name)
            containers = self.runtime.ps(self.project(name))

        by_service = {container.service: container for container in containers}
        status = NetworkStatus(
            name=name,
            state=record.state,
            compose_file=str(self.store.compose_path(name)),
        )
        for node in record.topology:
            container = by_service.pop(node.id, None)
            status.nodes.append(NodeStatus(
                id=node.id,
                role=node.role,
                state=node.state,
                container=node.container_name(name),
                runtime_state=container.state if container else "not_created",
                runtime_status=container.status if container else "",
                live=bool(container and container.running),
                graphql_uri=graphql_uri(node),
            ))
        status.services = list(by_service.values())
        return status

    def info(self, name: str) -> NetworkInfo:
        """Static details of a network; doesn't query the runtime."""
        with self.store.lock(name):
            record = self.store.load(name)
        defaults = NetworkDefaults.model_validate(record.defaults)
        routed = {rule.node_id for rule in record.routing}

        info = NetworkInfo(
            name=name,
            state=record.state,
            directory=str(self.store.network_path(name)),
            created_at=record.created_at,
            genesis_timestamp=record.genesis.state_timestamp,
        )
        for node in record.topology:
            signing = node.signing_keypair_ref
            peer = node.peer_keypair_ref
            info.nodes[node.id] = NodeInfo(
                role=node.role,
                state=node.state,
                base_port=node.base_port,
                ports={
                    "client": node.client_port,
                    "rest": node.rest_port,
                    "external": node.external_port,
                    "metrics": node.metrics_port,
                    "libp2p_metrics": node.libp2p_metrics_port,
                },
                container=node.container_name(name),
                graphql_uri=graphql_uri(node),
                proxy_uri=(f"http://localhost:{defaults.proxy_port}/{node.id}/graphql"
                           if node.id in routed else None),
                public_key=signing.public_key if signing else None,
                private_key_path=(str(self.store.network_path(name) / signing.private_path)
                                  if signing else None),
                peer_id=peer.peer_id if peer else None,
                peer_address=peer_address(node, name) if peer else None,
                upstream=node.upstream,
            )
        return info

    def list(self) -> List[Dict[str, str]]:
        networks = []
        for name in self.store.list():
            with self.store.lock(name):
                record = self.store.load(name)
            networks.append({
                "network_id": name,
                "state": record.state.value,
                "config_dir": str(self.store.network_path(name)),
            })
        return networks

    def logs(self, name: str, node_id: str) -> str:
        with self.store.lock(name):
            record = self.store.load(name)
            self._find_node(record, node_id)
            return self.runtime.logs(self.project(name), node_id)

    # node tooling

    def _running_node(self, record: NetworkRecord, node_id: str) -> NodeIdentity:
        node = self._find_node(record, node_id)
        if node.state != NodeState.RUNNING:
            raise NodeNotRunning(record.name, node_id, node.state.value)
        return node

    def _archive_node(self, record: NetworkRecord, node_id: str) -> NodeIdentity:
        node = self._running_node(record, node_id)
        if node.role != NodeRole.ARCHIVE:
            raise InvalidTopology(f"Node '{node_id}' is a {node.role.value} node, not an archive node")
        return node

    def dump_precomputed_blocks(self, name: str, node_id: str) -> str:
        """Contents of the precomputed block log a running daemon writes."""
        with self.store.lock(name):
            record = self.store.load(name)
            node = self._running_node(record, node_id)
            if not node.role.runs_daemon:
                raise InvalidTopology(f"Node '{node_id}' doesn't run a daemon")
            path = f"{constants.CONTAINER_CONFIG_DIR}/{constants.PRECOMPUTED_BLOCKS_FILE}"
            return self.runtime.exec(self.project(name), node.id, ["cat", path])

    def dump_archive_data(self, name: str, node_id: str) -> str:
        """SQL dump of the archive database behind an archive node.

        Raises:
            InvalidTopology: If the node isn't an archive node, or the database
                isn't a service of this network
        """
        with self.store.lock(name):
            record = self.store.load(name)
            self._archive_node(record, node_id)
            defaults = NetworkDefaults.model_validate(record.defaults)
            if defaults.pg_host:
                raise InvalidTopology(
                    f"Archive database of network '{name}' is hosted at {defaults.pg_host}")
            return self.runtime.exec(self.project(name), POSTGRES_SERVICE,
                                     ["pg_dump", "--insert", "-U", defaults.pg_user, defaults.pg_db])

    def run_replayer(self, name: str, node_id: str, start_slot_since_genesis: int = 0) -> str:
        """Replay the archived chain from a slot against the network's genesis ledger."""
        if start_slot_since_genesis < 0:
            raise InvalidTopology("start slot since genesis can't be negative")
        with self.store.lock(name):
            record = self.store.load(name)
            self._archive_node(record, node_id)
            defaults = NetworkDefaults.model_validate(record.defaults)
            self.store.write_replayer_input(record, start_slot_since_genesis)
            logger.info("running_replayer", network=name, node=node_id,
                        start_slot_since_genesis=start_slot_since_genesis)
            return self.runtime.exec(self.project(name), ARCHIVE_SERVICE, [
                "mina-replayer",
                "--continue-on-error",
                "--input-file", container_path(constants.REPLAYER_INPUT_FILE),
                "--archive-uri", postgres_uri(record, defaults),
                "--output-file", "/dev/null",
            ])

    # delete

    def delete(self, name: str) -> None:
        """Tear down containers and remove the network directory.

        Raises:
            NetworkBusy: While any node is running
        """
        with self.store.lock(name):
            record = self.store.load(name)
            if record.state in BUSY_STATES:
                raise NetworkBusy(name, record.state.value, "delete")

            if record.state != NetworkState.DELETED:
                self.runtime.down(self.project(name))
                check_network_transition(record, NetworkState.DELETED)
                for node in record.topology:
                    node.state = NodeState.DELETED
                record.state = NetworkState.DELETED
                self.store.save(record)

            self.store.remove(name)
        logger.info("network_deleted", network=name)

    # reconfiguration

    def _load_idle(self, name: str, operation: str) -> NetworkRecord:
        record = self.store.load(name)
        if record.state in BUSY_STATES:
            raise NetworkBusy(name, record.state.value, operation)
        if record.state == NetworkState.DELETED:
            raise NotFound(name)
        return record

    def reset_genesis(self, name: str, regenerate_keys: bool = False) -> NetworkRecord:
        """Start the chain over.

        Without regenerate_keys the stored accounts are kept and only the
        genesis timestamp changes. With it every key is replaced and the
        ledger rebuilt.
        """
        with self.store.lock(name):
            record = self._load_idle(name, "reset")
            if regenerate_keys:
                record = self.resolver.rekey(record)
            else:
                record.genesis = self.ledger_builder.reset(record.genesis)
            self.store.write_genesis(record)
            self.store.write_deployment(record)
            self.store.save(record)
        logger.info("genesis_reset", network=name, regenerate_keys=regenerate_keys)
        return record

    def update_genesis_timestamp(self, name: str) -> NetworkRecord:
        """Refresh only the timestamp of the rendered daemon config.

        Raises:
            ConfigNotFound: If the rendered config is missing
        """
        with self.store.lock(name):
            record = self._load_idle(name, "update the genesis timestamp of")
            timestamp = self.ledger_builder.touch_timestamp(self.store.genesis_path(name))
            record.genesis.state_timestamp = timestamp
            self.store.save(record)
        return record

    def render(self, name: str) -> NetworkRecord:
        """Rewrite the deployment descriptors from the stored record."""
        with self.store.lock(name):
            record = self.store.load(name)
            self.store.write_deployment(record)
        return record


def graphql_uri(node: NodeIdentity) -> Optional[str]:
    if not node.role.runs_daemon:
        return None
    return f"http://localhost:{node.rest_port}/graphql"
