"""
Port Allocator
--------------
Assigns each node a contiguous block of five ports (client, rest,
external, metrics, libp2p-metrics) and rejects overlapping blocks.
"""

from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from . import constants
from .config.base import NetworkDefaults
from .core.exceptions import InvalidTopology, PortConflict
from .core.types import NodeRole

logger = structlog.get_logger()

PortBlock = Tuple[int, int]


def port_block(base_port: int) -> PortBlock:
    """Return the inclusive port range of a node block."""
    return base_port, base_port + constants.PORTS_PER_NODE - 1


def blocks_overlap(first: PortBlock, second: PortBlock) -> bool:
    return first[0] <= second[1] and second[0] <= first[1]


class PortAllocator:
    """Deterministic per-role port allocation."""

    def __init__(self, defaults: NetworkDefaults):
        self.defaults = defaults

    def allocate(self, role: NodeRole, index: int, override: Optional[int] = None) -> int:
        """Get the base port of the index-th node of a role.

        Args:
            role: Role of the node
            index: Position of the node among nodes of the same role
            override: Explicit base port requested by the topology

        Returns:
            int: Base port of the node's block
        """
        if override is not None:
            base_port = override
        else:
            base_port = self.defaults.base_port_for(role) + index * constants.PORTS_PER_NODE
        first, last = port_block(base_port)
        if first < constants.MIN_PORT or last > constants.MAX_PORT:
            raise InvalidTopology(
                f"port block {first}-{last} of {role.value} #{index} is outside "
                f"{constants.MIN_PORT}-{constants.MAX_PORT}"
            )
        return base_port

    def allocate_all(self, nodes: Iterable[Tuple[str, NodeRole, int, Optional[int]]]) -> Dict[str, int]:
        """Allocate every node of a topology and check the result for collisions.

        Args:
            nodes: (node_id, role, index, override) tuples in topology order

        Returns:
            Dict[str, int]: node_id -> base port

        Raises:
            PortConflict: If any two blocks, or a block and a reserved port, intersect
        """
        assignment: Dict[str, int] = {}
        for node_id, role, index, override in nodes:
            assignment[node_id] = self.allocate(role, index, override)
        self.check(assignment)
        logger.debug("ports_allocated", assignment=assignment)
        return assignment

    def check(self, assignment: Dict[str, int]) -> None:
        """Raise PortConflict on the first overlapping pair, in topology order."""
        allocated: List[Tuple[str, PortBlock]] = []
        for name, port in self.defaults.reserved_ports().items():
            allocated.append((name, (port, port)))
        for node_id, base_port in assignment.items():
            block = port_block(base_port)
            for other_id, other_block in allocated:
                if blocks_overlap(block, other_block):
                    raise PortConflict(other_id, node_id, other_block, block)
            allocated.append((node_id, block))
