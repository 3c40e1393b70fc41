"""Round-robin replica placement across healthy storage nodes."""

import asyncio
from typing import List

from common.logging_config import get_logger
from controller.exceptions import InsufficientNodesError, InvalidReplicationFactorError
from controller.node_registry import NodeRegistry
from controller.types import StorageNode

logger = get_logger(__name__)


class NodeSelector:
    """
    Chooses distinct UP nodes for each new chunk.

    A shared counter rotates the starting node so that consecutive chunks
    (and concurrent uploads) spread their first replica over the cluster.
    """

    def __init__(self, node_registry: NodeRegistry):
        self.node_registry = node_registry
        self._counter = 0
        self._counter_lock = asyncio.Lock()

    async def _next_offset(self) -> int:
        async with self._counter_lock:
            value = self._counter
            self._counter += 1
            return value

    async def select_nodes(self, replication_factor: int) -> List[StorageNode]:
        """
        Select replication_factor distinct UP nodes.

        Raises:
            InvalidReplicationFactorError: If replication_factor < 1
            InsufficientNodesError: If fewer UP nodes than replication_factor exist
        """
        if replication_factor < 1:
            raise InvalidReplicationFactorError(
                f"Replication factor must be at least 1, got {replication_factor}"
            )

        up_nodes = await self.node_registry.get_up_nodes()
        if len(up_nodes) < replication_factor:
            raise InsufficientNodesError(
                f"Need {replication_factor} healthy storage nodes, only {len(up_nodes)} available",
                required=replication_factor,
                available=len(up_nodes)
            )

        start = await self._next_offset() % len(up_nodes)
        selected = [up_nodes[(start + i) % len(up_nodes)] for i in range(replication_factor)]

        logger.debug(
            f"Selected nodes {[n.node_id for n in selected]} (factor={replication_factor})"
        )
        return selected
