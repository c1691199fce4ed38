"""
Core type definitions for localnet.
These types are used throughout the codebase and don't import from other modules
to prevent circular dependencies.
"""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PORTS_PER_NODE = 5
# Whole units with up to 9 decimal places, as the daemon accepts them
BALANCE_PATTERN = re.compile(r"^\d+(\.\d{1,9})?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeRole(str, Enum):
    """Role of a node in a local network."""
    SEED = "seed"
    WHALE = "whale"  # Block producer with big stake
    FISH = "fish"  # Block producer with small stake
    NODE = "node"  # Non block-producing daemon
    SNARK_COORDINATOR = "snark_coordinator"
    SNARK_WORKER = "snark_worker"
    ARCHIVE = "archive"

    @property
    def prefix(self) -> str:
        """Prefix used to build node identifiers."""
        return self.value.replace("_", "-")

    @property
    def is_block_producer(self) -> bool:
        return self in (NodeRole.WHALE, NodeRole.FISH)

    @property
    def needs_signing_key(self) -> bool:
        return self.is_block_producer or self == NodeRole.SNARK_COORDINATOR

    @property
    def runs_daemon(self) -> bool:
        """Whether the node runs a full daemon (and so exposes a query endpoint)."""
        return self != NodeRole.SNARK_WORKER


class NodeState(str, Enum):
    """Lifecycle state of a single node."""
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    DELETED = "deleted"


class NetworkState(str, Enum):
    """Lifecycle state of a whole network."""
    CREATED = "created"
    RUNNING = "running"
    DEGRADED = "degraded"  # Some, but not all, nodes running
    STOPPED = "stopped"
    DELETED = "deleted"


NODE_TRANSITIONS = {
    NodeState.CREATED: {NodeState.RUNNING, NodeState.DELETED},
    NodeState.RUNNING: {NodeState.STOPPED},
    NodeState.STOPPED: {NodeState.RUNNING, NodeState.DELETED},
    NodeState.DELETED: set(),
}

NETWORK_TRANSITIONS = {
    NetworkState.CREATED: {NetworkState.RUNNING, NetworkState.DEGRADED, NetworkState.DELETED},
    NetworkState.RUNNING: {NetworkState.DEGRADED, NetworkState.STOPPED},
    NetworkState.DEGRADED: {NetworkState.RUNNING, NetworkState.STOPPED},
    NetworkState.STOPPED: {NetworkState.RUNNING, NetworkState.DEGRADED, NetworkState.DELETED},
    NetworkState.DELETED: set(),
}


class KeyRef(BaseModel):
    """Reference to key material on disk.

    Paths are relative to the network directory so that a network keeps
    working when the base directory is relocated.
    """
    model_config = ConfigDict(frozen=True)

    private_path: str
    public_path: str
    public_key: Optional[str] = None  # Signing keys only
    peer_id: Optional[str] = None  # Network-identity keys only


class NodeIdentity(BaseModel):
    """A fully resolved node of a network."""
    id: str
    role: NodeRole
    base_port: int
    signing_keypair_ref: Optional[KeyRef] = None
    peer_keypair_ref: Optional[KeyRef] = None
    extra_args: List[str] = Field(default_factory=list)
    docker_image: Optional[str] = None
    requires: List[str] = Field(default_factory=list)  # Nodes whose address this node needs
    upstream: Optional[str] = None  # Snark coordinator of a snark worker
    state: NodeState = NodeState.CREATED

    @property
    def client_port(self) -> int:
        return self.base_port

    @property
    def rest_port(self) -> int:
        return self.base_port + 1

    @property
    def external_port(self) -> int:
        return self.base_port + 2

    @property
    def metrics_port(self) -> int:
        return self.base_port + 3

    @property
    def libp2p_metrics_port(self) -> int:
        return self.base_port + 4

    @property
    def last_port(self) -> int:
        return self.base_port + PORTS_PER_NODE - 1

    def overlaps(self, other: "NodeIdentity") -> bool:
        """Check whether two nodes' port blocks intersect."""
        return self.base_port <= other.last_port and other.base_port <= self.last_port

    def container_name(self, network_name: str) -> str:
        return f"{self.id}-{network_name}"


class Account(BaseModel):
    """A genesis ledger account.

    Fields the daemon understands beyond these (timing, nonce, permissions,
    token, ...) are kept as extras and written back unchanged.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    public_key: str = Field(alias="pk")
    secret_key: Optional[str] = Field(default=None, alias="sk")
    balance: str
    delegate: Optional[str] = None

    @field_validator("balance")
    @classmethod
    def validate_balance(cls, value: str) -> str:
        if not BALANCE_PATTERN.match(value):
            raise ValueError(f"Balance must be a decimal with at most 9 places: {value}")
        return value


class GenesisLedger(BaseModel):
    """Initial account snapshot consumed by every daemon."""
    state_timestamp: str
    accounts: List[Account] = Field(default_factory=list)
    name: Optional[str] = None
    ledger_extra: Dict[str, Any] = Field(default_factory=dict)  # Other ledger keys, e.g. num_accounts
    runtime_config: Dict[str, Any] = Field(default_factory=dict)  # Extra daemon config sections

    def public_keys(self) -> List[str]:
        return [account.public_key for account in self.accounts]

    def ledger_section(self) -> Dict[str, Any]:
        """The `ledger` object of the daemon config."""
        ledger: Dict[str, Any] = {}
        if self.name:
            ledger["name"] = self.name
        ledger.update(self.ledger_extra)
        ledger["accounts"] = [account.model_dump(by_alias=True) for account in self.accounts]
        return ledger

    def to_daemon_config(self) -> Dict[str, Any]:
        """Render the ledger as the daemon's runtime config document."""
        genesis = dict(self.runtime_config.get("genesis", {}))
        genesis["genesis_state_timestamp"] = self.state_timestamp
        config = {key: value for key, value in self.runtime_config.items()
                  if key not in ("genesis", "ledger")}
        config["genesis"] = genesis
        config["ledger"] = self.ledger_section()
        return config

    @classmethod
    def from_daemon_config(cls, config: Dict[str, Any]) -> "GenesisLedger":
        """Parse a runtime config document, keeping unknown sections verbatim."""
        ledger = config.get("ledger", {})
        genesis = config.get("genesis", {})
        runtime_config = {key: value for key, value in config.items() if key != "ledger"}
        extra_genesis = {key: value for key, value in genesis.items()
                         if key != "genesis_state_timestamp"}
        if extra_genesis:
            runtime_config["genesis"] = extra_genesis
        else:
            runtime_config.pop("genesis", None)
        return cls(
            state_timestamp=genesis.get("genesis_state_timestamp", ""),
            accounts=[Account.model_validate(account) for account in ledger.get("accounts", [])],
            name=ledger.get("name"),
            ledger_extra={key: value for key, value in ledger.items()
                          if key not in ("name", "accounts")},
            runtime_config=runtime_config,
        )


class RoutingRule(BaseModel):
    """Reverse-proxy mapping from a public path to a node's query endpoint."""
    model_config = ConfigDict(frozen=True)

    node_id: str
    public_path_prefix: str
    upstream_host: str
    upstream_port: int


class NetworkRecord(BaseModel):
    """The persisted aggregate describing one network."""
    name: str
    topology: List[NodeIdentity]
    genesis: GenesisLedger
    routing: List[RoutingRule] = Field(default_factory=list)
    auxiliary_keys: Dict[str, KeyRef] = Field(default_factory=dict)
    topology_spec: Dict[str, Any] = Field(default_factory=dict)  # Topology document as requested
    defaults: Dict[str, Any] = Field(default_factory=dict)  # Role defaults snapshot
    state: NetworkState = NetworkState.CREATED
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.topology]

    def find_node(self, node_id: str) -> Optional[NodeIdentity]:
        for node in self.topology:
            if node.id == node_id:
                return node
        return None

    def nodes_with_role(self, role: NodeRole) -> List[NodeIdentity]:
        return [node for node in self.topology if node.role == role]

    def rollup_state(self) -> NetworkState:
        """Derive the network state from its nodes' states."""
        states = [node.state for node in self.topology]
        if states and all(state == NodeState.RUNNING for state in states):
            return NetworkState.RUNNING
        if any(state == NodeState.RUNNING for state in states):
            return NetworkState.DEGRADED
        if all(state == NodeState.CREATED for state in states):
            return NetworkState.CREATED
        return NetworkState.STOPPED
