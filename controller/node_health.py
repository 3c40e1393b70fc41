"""Storage node health monitoring."""

import asyncio
from typing import Iterable, Optional, Tuple

from common.logging_config import get_logger
from controller.chunk_store_client import ChunkStoreClient
from controller.config import HEALTH_CHECK_INTERVAL
from controller.node_registry import NodeRegistry
from controller.types import NodeStatus, StorageNode
from controller.utils import utc_now

logger = get_logger(__name__)


class NodeHealthMonitor:
    """
    Probes storage nodes and drives their status:
    UNKNOWN -> UP on a successful probe, UP -> DOWN on a failed one, DOWN -> UP on recovery.

    This is the only component that writes node status.
    """

    def __init__(
        self,
        node_registry: NodeRegistry,
        chunk_client: ChunkStoreClient,
        interval: int = HEALTH_CHECK_INTERVAL
    ):
        """
        Args:
            node_registry: Registry storing node info
            chunk_client: Client used for health probes
            interval: Seconds between probe rounds (default: 10)
        """
        self.node_registry = node_registry
        self.chunk_client = chunk_client
        self.interval = interval
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def register_configured_nodes(self, nodes: Iterable[Tuple[str, str, int]]) -> None:
        """
        Probe each configured node once and record it as UP or UNKNOWN.
        A node is never recorded DOWN before the background loop has seen it.
        """
        for node_id, host, port in nodes:
            healthy = await self.chunk_client.health_probe(host, port)
            if healthy:
                await self.node_registry.upsert_node(node_id, host, port, NodeStatus.UP, utc_now())
            else:
                logger.warning(f"Storage node {node_id} at {host}:{port} unreachable at startup")
                await self.node_registry.upsert_node(node_id, host, port, NodeStatus.UNKNOWN)

    async def start(self):
        """Start background health monitoring"""
        self.running = True
        self._task = asyncio.create_task(self._health_check_loop())
        logger.info(f"Node health monitor started (interval={self.interval}s)")

    async def stop(self):
        """Stop background health monitoring"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Node health monitor stopped")

    async def _health_check_loop(self):
        """Periodically probe every known node"""
        while self.running:
            try:
                await self.check_all()
            except Exception as e:
                logger.error(f"Health check error: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def check_all(self) -> None:
        """Probe all known nodes concurrently."""
        nodes = await self.node_registry.get_all()
        if nodes:
            await asyncio.gather(*(self._probe(node) for node in nodes))

    async def probe_node(self, node_id: str) -> Optional[NodeStatus]:
        """
        Probe one node on demand.

        Returns:
            The node's new status, or None if the node is not registered
        """
        node = await self.node_registry.get_node(node_id)
        if node is None:
            return None
        return await self._probe(node)

    async def _probe(self, node: StorageNode) -> NodeStatus:
        healthy = await self.chunk_client.health_probe(node.host, node.port)
        if healthy:
            await self.node_registry.update_status(node.node_id, NodeStatus.UP, heartbeat=utc_now())
            return NodeStatus.UP

        await self.node_registry.update_status(node.node_id, NodeStatus.DOWN)
        return NodeStatus.DOWN
