"""Storage node administration."""

from typing import List, Optional

from common.logging_config import get_logger
from controller.node_health import NodeHealthMonitor
from controller.node_registry import NodeRegistry
from controller.service_locator import get_health_monitor, get_node_registry
from controller.types import StorageNode

logger = get_logger(__name__)


class NodeService:
    def __init__(
        self,
        node_registry: Optional[NodeRegistry] = None,
        health_monitor: Optional[NodeHealthMonitor] = None,
    ):
        self.node_registry = node_registry if node_registry is not None else get_node_registry()
        self.health_monitor = health_monitor if health_monitor is not None else get_health_monitor()

    async def register_node(self, node_id: str, host: str, port: int) -> StorageNode:
        """
        Register a node as UNKNOWN and probe it right away.

        Raises:
            ConflictError: If the node id is already registered
        """
        node = await self.node_registry.register_node(node_id, host, port)
        if self.health_monitor is not None:
            await self.health_monitor.probe_node(node_id)
            node = await self.node_registry.get_node(node_id)
        return node

    async def list_nodes(self) -> List[StorageNode]:
        return await self.node_registry.get_all()
