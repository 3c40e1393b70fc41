"""Registry for tracking storage nodes and their status."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from common.logging_config import get_logger
from controller.database import get_db_connection
from controller.exceptions import ConflictError, NotFoundError
from controller.types import NodeStatus, StorageNode
from controller.utils import parse_timestamp, utc_now

logger = get_logger(__name__)


def _row_to_node(row) -> StorageNode:
    return StorageNode(
        node_id=row["node_id"],
        host=row["host"],
        port=row["port"],
        status=NodeStatus(row["status"]),
        last_heartbeat=parse_timestamp(row["last_heartbeat"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class NodeRegistry:
    """
    Storage node table guarded by a single lock.

    All writes go through the lock; reads return immutable StorageNode
    snapshots. Status changes are reserved for the health monitor.
    """

    def __init__(self):
        self.lock = asyncio.Lock()

    async def load_from_database(self) -> int:
        """
        Count nodes persisted by a previous run.
        Restores topology after controller restart.
        """
        nodes = await self.get_all()
        logger.info(f"Loaded {len(nodes)} storage nodes from database")
        return len(nodes)

    async def register_node(self, node_id: str, host: str, port: int) -> StorageNode:
        """
        Register a new node with status UNKNOWN.

        Raises:
            ConflictError: If a node with this id is already registered
        """
        async with self.lock:
            with get_db_connection() as conn:
                existing = conn.execute(
                    "SELECT node_id FROM storage_nodes WHERE node_id = ?", (node_id,)
                ).fetchone()
                if existing:
                    raise ConflictError(f"Storage node '{node_id}' is already registered")

                now = utc_now()
                conn.execute(
                    """
                    INSERT INTO storage_nodes (node_id, host, port, status, last_heartbeat, created_at)
                    VALUES (?, ?, ?, ?, NULL, ?)
                    """,
                    (node_id, host, port, NodeStatus.UNKNOWN.value, now.isoformat())
                )
                conn.commit()

        logger.info(f"Registered storage node {node_id} at {host}:{port}")
        return StorageNode(node_id, host, port, NodeStatus.UNKNOWN, None, now)

    async def upsert_node(
        self,
        node_id: str,
        host: str,
        port: int,
        status: NodeStatus,
        heartbeat: Optional[datetime] = None
    ) -> StorageNode:
        """Insert or replace a node's address and status (startup registration)."""
        async with self.lock:
            now = utc_now()
            with get_db_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO storage_nodes (node_id, host, port, status, last_heartbeat, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(node_id) DO UPDATE SET
                        host = excluded.host,
                        port = excluded.port,
                        status = excluded.status,
                        last_heartbeat = COALESCE(excluded.last_heartbeat, storage_nodes.last_heartbeat)
                    """,
                    (
                        node_id, host, port, status.value,
                        heartbeat.isoformat() if heartbeat else None,
                        now.isoformat()
                    )
                )
                conn.commit()
                row = conn.execute(
                    "SELECT * FROM storage_nodes WHERE node_id = ?", (node_id,)
                ).fetchone()

        logger.info(f"Storage node {node_id} at {host}:{port} registered as {status.value}")
        return _row_to_node(row)

    async def update_status(
        self,
        node_id: str,
        status: NodeStatus,
        heartbeat: Optional[datetime] = None
    ) -> NodeStatus:
        """
        Set a node's status, refreshing last_heartbeat when one is given.

        Returns:
            The previous status

        Raises:
            NotFoundError: If the node is unknown
        """
        async with self.lock:
            with get_db_connection() as conn:
                row = conn.execute(
                    "SELECT status FROM storage_nodes WHERE node_id = ?", (node_id,)
                ).fetchone()
                if row is None:
                    raise NotFoundError(f"Storage node '{node_id}' not found")

                previous = NodeStatus(row["status"])
                if heartbeat is not None:
                    conn.execute(
                        "UPDATE storage_nodes SET status = ?, last_heartbeat = ? WHERE node_id = ?",
                        (status.value, heartbeat.isoformat(), node_id)
                    )
                else:
                    conn.execute(
                        "UPDATE storage_nodes SET status = ? WHERE node_id = ?",
                        (status.value, node_id)
                    )
                conn.commit()

        if previous != status:
            log = logger.warning if status == NodeStatus.DOWN else logger.info
            log(f"Storage node {node_id} status {previous.value} -> {status.value}")
        return previous

    async def get_node(self, node_id: str) -> Optional[StorageNode]:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM storage_nodes WHERE node_id = ?", (node_id,)
            ).fetchone()
            return _row_to_node(row) if row else None

    async def get_all(self) -> List[StorageNode]:
        """Get all storage nodes ordered by id"""
        with get_db_connection() as conn:
            rows = conn.execute("SELECT * FROM storage_nodes ORDER BY node_id").fetchall()
            return [_row_to_node(row) for row in rows]

    async def get_up_nodes(self) -> List[StorageNode]:
        """Get UP nodes only, ordered by id"""
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM storage_nodes WHERE status = ? ORDER BY node_id",
                (NodeStatus.UP.value,)
            ).fetchall()
            return [_row_to_node(row) for row in rows]

    async def get_status_map(self) -> Dict[str, NodeStatus]:
        """Map of node_id to its current status"""
        return {node.node_id: node.status for node in await self.get_all()}
