"""Core types and errors shared across localnet modules."""
from .types import (
    NodeRole, NodeState, NetworkState, KeyRef, NodeIdentity,
    Account, GenesisLedger, RoutingRule, NetworkRecord,
)
from .exceptions import (
    LocalnetError, InvalidTopology, PortConflict, AlreadyExists, NotFound,
    ConfigNotFound, NetworkBusy, RuntimeFailure, InvalidTransition,
    InvalidNetworkName, InvalidGenesis, NodeNotRunning, InvalidSettings,
)

__all__ = [
    'NodeRole', 'NodeState', 'NetworkState', 'KeyRef', 'NodeIdentity',
    'Account', 'GenesisLedger', 'RoutingRule', 'NetworkRecord',
    'LocalnetError', 'InvalidTopology', 'PortConflict', 'AlreadyExists',
    'NotFound', 'ConfigNotFound', 'NetworkBusy', 'RuntimeFailure',
    'InvalidTransition', 'InvalidNetworkName', 'InvalidGenesis', 'NodeNotRunning',
    'InvalidSettings',
]
