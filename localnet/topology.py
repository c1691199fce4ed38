"""
Topology Resolver
-----------------
Compiles a topology document into a fully resolved NetworkRecord: node
identities with port blocks and keys, the genesis ledger and the
reverse-proxy routing rules.

Everything that can fail on the input alone (preconditions, unknown
overrides, port conflicts) is checked before any key is generated.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import constants
from .config.base import NetworkDefaults
from .core.exceptions import ConfigNotFound, InvalidTopology
from .core.types import (
    GenesisLedger, NetworkRecord, NetworkState, NodeIdentity, NodeRole, RoutingRule,
)
from .genesis import GenesisLedgerBuilder
from .keys import KeyMaterialManager, NodeKeys
from .ports import PortAllocator
from .utils import validate_network_name

logger = structlog.get_logger()

# Topology order: seeds first, archive last
ROLE_ORDER = (
    NodeRole.SEED,
    NodeRole.WHALE,
    NodeRole.FISH,
    NodeRole.NODE,
    NodeRole.SNARK_COORDINATOR,
    NodeRole.SNARK_WORKER,
    NodeRole.ARCHIVE,
)


class PortBases(BaseModel):
    """Per-role base port overrides."""
    model_config = ConfigDict(extra="forbid")

    seed: Optional[int] = None
    whale: Optional[int] = None
    fish: Optional[int] = None
    node: Optional[int] = None
    snark_coordinator: Optional[int] = None
    snark_worker: Optional[int] = None
    archive: Optional[int] = None

    def as_roles(self) -> Dict[NodeRole, int]:
        return {NodeRole(name): port for name, port in self.model_dump().items() if port is not None}


class NodeOverride(BaseModel):
    """Per-node settings from the topology document."""
    model_config = ConfigDict(extra="forbid")

    base_port: Optional[int] = Field(default=None, ge=1, le=65535)
    extra_args: List[str] = Field(default_factory=list)
    docker_image: Optional[str] = None


class TopologySpec(BaseModel):
    """Declarative description of one network's node mix."""
    model_config = ConfigDict(extra="forbid")

    seeds: int = Field(default=0, ge=0)
    whales: int = Field(default=0, ge=0)
    fish: int = Field(default=0, ge=0)
    nodes: int = Field(default=0, ge=0)
    snark_coordinator: bool = False
    snark_workers: int = Field(default=0, ge=0)
    archive: bool = False

    value_transfers: bool = False
    zkapp_transactions: bool = False

    snark_worker_fee: Optional[str] = None
    proof_level: Optional[str] = None

    ports: PortBases = Field(default_factory=PortBases)
    overrides: Dict[str, NodeOverride] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> "TopologySpec":
        """Topology used when none is given."""
        return cls(seeds=1, whales=2, fish=1, nodes=1, snark_coordinator=True, snark_workers=1)

    def count(self, role: NodeRole) -> int:
        return {
            NodeRole.SEED: self.seeds,
            NodeRole.WHALE: self.whales,
            NodeRole.FISH: self.fish,
            NodeRole.NODE: self.nodes,
            NodeRole.SNARK_COORDINATOR: int(self.snark_coordinator),
            NodeRole.SNARK_WORKER: self.snark_workers,
            NodeRole.ARCHIVE: int(self.archive),
        }[role]

    def node_slots(self) -> List[Tuple[str, NodeRole, int]]:
        """(node_id, role, index) for every node, in topology order."""
        return [
            (f"{role.prefix}-{index}", role, index)
            for role in ROLE_ORDER
            for index in range(self.count(role))
        ]


def load_topology(path: Path) -> TopologySpec:
    """Load a JSON or YAML topology document."""
    path = Path(path)
    if not path.is_file():
        raise ConfigNotFound(path)
    with open(path, "r") as f:
        try:
            document = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InvalidTopology(f"unreadable topology document {path}: {e}") from e
    return parse_topology(document)


def parse_topology(document) -> TopologySpec:
    if not isinstance(document, dict):
        raise InvalidTopology("topology document must be a mapping")
    try:
        return TopologySpec.model_validate(document)
    except ValidationError as e:
        raise InvalidTopology(str(e)) from e


def validate_topology(spec: TopologySpec) -> None:
    """Check the structural preconditions of a topology.

    Raises:
        InvalidTopology: Naming the first unmet precondition
    """
    slots = spec.node_slots()
    if not slots:
        raise InvalidTopology("the topology has no nodes")

    if spec.value_transfers and spec.fish == 0:
        raise InvalidTopology(
            "sending value transfers requires at least one fish block producer"
        )

    if spec.zkapp_transactions and (spec.whales < 2 or spec.fish == 0):
        raise InvalidTopology(
            "sending zkApp transactions requires at least two whales "
            "(fee payer and sender) and at least one fish block producer"
        )

    if spec.snark_workers and not spec.snark_coordinator:
        raise InvalidTopology("snark workers require a snark coordinator")

    known = {node_id for node_id, _, _ in slots}
    unknown = sorted(set(spec.overrides) - known)
    if unknown:
        raise InvalidTopology(f"overrides reference unknown nodes: {', '.join(unknown)}")


def start_order(nodes: List[NodeIdentity]) -> List[NodeIdentity]:
    """Order nodes so every node comes after the nodes it requires.

    Ties keep topology order, so the result is deterministic.

    Raises:
        InvalidTopology: On a missing dependency or a dependency cycle
    """
    by_id = {node.id: node for node in nodes}
    position = {node.id: index for index, node in enumerate(nodes)}
    pending: Dict[str, set] = {}
    dependents: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for node in nodes:
        missing = [dep for dep in node.requires if dep not in by_id]
        if missing:
            raise InvalidTopology(f"node '{node.id}' requires unknown nodes: {', '.join(missing)}")
        pending[node.id] = set(node.requires)
        for dep in node.requires:
            dependents[dep].append(node.id)

    ready = sorted((node_id for node_id, deps in pending.items() if not deps), key=position.get)
    ordered: List[NodeIdentity] = []
    while ready:
        node_id = ready.pop(0)
        ordered.append(by_id[node_id])
        for dependent in dependents[node_id]:
            pending[dependent].discard(node_id)
            if not pending[dependent]:
                ready.append(dependent)
        ready.sort(key=position.get)

    if len(ordered) != len(nodes):
        cyclic = sorted(set(by_id) - {node.id for node in ordered}, key=position.get)
        raise InvalidTopology(f"dependency cycle between nodes: {', '.join(cyclic)}")
    return ordered


def routing_rules(network_name: str, nodes: List[NodeIdentity]) -> List[RoutingRule]:
    """One rule per node exposing a query endpoint."""
    return [
        RoutingRule(
            node_id=node.id,
            public_path_prefix=f"/{node.id}/graphql",
            upstream_host=node.container_name(network_name),
            upstream_port=node.rest_port,
        )
        for node in nodes
        if node.role.runs_daemon
    ]


class TopologyResolver:
    """Turns a TopologySpec into a NetworkRecord."""

    def __init__(self, defaults: NetworkDefaults, key_manager: KeyMaterialManager,
                 ledger_builder: Optional[GenesisLedgerBuilder] = None):
        self.defaults = defaults
        self.key_manager = key_manager
        self.ledger_builder = ledger_builder or GenesisLedgerBuilder(defaults.stake)

    def effective_defaults(self, spec: TopologySpec) -> NetworkDefaults:
        """Role defaults with the topology's own overrides applied."""
        defaults = self.defaults.with_port_bases(spec.ports.as_roles())
        update = {}
        if spec.snark_worker_fee is not None:
            update["snark_worker_fee"] = spec.snark_worker_fee
        if spec.proof_level is not None:
            update["proof_level"] = spec.proof_level
        return defaults.model_copy(update=update) if update else defaults

    def plan(self, spec: TopologySpec, defaults: NetworkDefaults) -> List[NodeIdentity]:
        """Allocate ports and dependency edges for every node. No side effects."""
        slots = spec.node_slots()
        allocator = PortAllocator(defaults)
        ports = allocator.allocate_all(
            (node_id, role, index, spec.overrides.get(node_id, NodeOverride()).base_port)
            for node_id, role, index in slots
        )

        seeds = [node_id for node_id, role, _ in slots if role == NodeRole.SEED]
        coordinators = [node_id for node_id, role, _ in slots if role == NodeRole.SNARK_COORDINATOR]

        nodes = []
        for node_id, role, _ in slots:
            override = spec.overrides.get(node_id, NodeOverride())
            requires: List[str] = []
            upstream = None
            if role == NodeRole.SNARK_WORKER:
                upstream = coordinators[0]
                requires = [upstream]
            elif role != NodeRole.SEED:
                requires = list(seeds)
            nodes.append(NodeIdentity(
                id=node_id,
                role=role,
                base_port=ports[node_id],
                extra_args=list(override.extra_args),
                docker_image=override.docker_image,
                requires=requires,
                upstream=upstream,
            ))

        if not seeds:
            logger.warning("topology_without_seed", nodes=len(nodes))
        # Fails early on cycles or dangling edges
        start_order(nodes)
        return nodes

    def attach_keys(self, nodes: List[NodeIdentity],
                    keys: Dict[str, NodeKeys]) -> List[NodeIdentity]:
        return [
            node.model_copy(update={
                "signing_keypair_ref": keys[node.id].signing,
                "peer_keypair_ref": keys[node.id].peer,
            })
            for node in nodes
        ]

    def resolve(self, name: str, spec: TopologySpec,
                genesis_base: Optional[GenesisLedger] = None) -> NetworkRecord:
        """Compile a topology into a NetworkRecord in state Created.

        Args:
            name: Network name
            spec: Topology document
            genesis_base: User supplied ledger to extend

        Returns:
            NetworkRecord: Resolved, not yet persisted record
        """
        validate_network_name(name)
        validate_topology(spec)
        defaults = self.effective_defaults(spec)
        nodes = self.plan(spec, defaults)

        self.key_manager.clean(name)
        keys = self.key_manager.provision(name, nodes, zkapp_account=spec.zkapp_transactions)
        nodes = self.attach_keys(nodes, keys)

        genesis = self.ledger_builder.build(nodes, keys, defaults.stake, base=genesis_base)
        auxiliary = {
            key_name: node_keys.signing
            for key_name, node_keys in keys.items()
            if key_name == constants.ZKAPP_ACCOUNT and node_keys.signing is not None
        }

        record = NetworkRecord(
            name=name,
            topology=nodes,
            genesis=genesis,
            routing=routing_rules(name, nodes),
            auxiliary_keys=auxiliary,
            topology_spec=spec.model_dump(mode="json"),
            defaults=defaults.model_dump(mode="json"),
            state=NetworkState.CREATED,
        )
        logger.info("topology_resolved", network=name, nodes=len(nodes),
                    accounts=len(genesis.accounts))
        return record

    def rekey(self, record: NetworkRecord) -> NetworkRecord:
        """Replace every key of an existing record and rebuild its ledger."""
        spec = parse_topology(record.topology_spec)
        defaults = NetworkDefaults.model_validate(record.defaults)
        nodes = [node.model_copy(update={"signing_keypair_ref": None, "peer_keypair_ref": None})
                 for node in record.topology]

        self.key_manager.clean(record.name)
        keys = self.key_manager.provision(record.name, nodes,
                                          zkapp_account=spec.zkapp_transactions)
        nodes = self.attach_keys(nodes, keys)
        generated = {node.signing_keypair_ref.public_key for node in record.topology
                     if node.signing_keypair_ref is not None}
        # Accounts that came from a user supplied ledger survive the rekey
        base = record.genesis.model_copy(update={
            "accounts": [account for account in record.genesis.accounts
                         if account.public_key not in generated],
        })
        genesis = self.ledger_builder.build(nodes, keys, defaults.stake, base=base)
        auxiliary = {
            key_name: node_keys.signing
            for key_name, node_keys in keys.items()
            if key_name == constants.ZKAPP_ACCOUNT and node_keys.signing is not None
        }
        logger.info("network_rekeyed", network=record.name, nodes=len(nodes))
        return record.model_copy(update={
            "topology": nodes,
            "genesis": genesis,
            "auxiliary_keys": auxiliary,
        })
