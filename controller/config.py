"""Configuration settings for the Controller server."""

import os
from typing import List, Tuple

from common.constants import (
    CHUNK_SIZE_BYTES as DEFAULT_CHUNK_SIZE_BYTES,
    CONTROLLER_PORT as DEFAULT_CONTROLLER_PORT,
    DEFAULT_REPLICATION_FACTOR,
    HEALTH_CHECK_INTERVAL_SECONDS,
    NODE_CONNECT_TIMEOUT_SECONDS,
    NODE_READ_TIMEOUT_SECONDS,
    PBKDF2_ITERATIONS as DEFAULT_PBKDF2_ITERATIONS,
    REPAIR_INTERVAL_SECONDS,
)


def parse_node_list(raw: str) -> List[Tuple[str, str, int]]:
    """
    Parse a static node list of the form "node-1@host1:9000,node-2@host2:9000".

    Returns:
        List of (node_id, host, port) triples

    Raises:
        ValueError: If an entry is malformed
    """
    nodes = []
    for entry in raw.split(','):
        entry = entry.strip()
        if not entry:
            continue
        node_id, sep, address = entry.partition('@')
        host, colon, port = address.rpartition(':')
        if not sep or not colon or not node_id or not host:
            raise ValueError(f"Invalid storage node entry '{entry}', expected id@host:port")
        nodes.append((node_id.strip(), host.strip(), int(port)))
    return nodes


DATABASE_PATH = os.environ.get("DFS_DATABASE_PATH", "./data/metadata.db")

CONTROLLER_HOST = os.environ.get("DFS_CONTROLLER_HOST", "0.0.0.0")

CONTROLLER_PORT = int(os.environ.get("DFS_CONTROLLER_PORT", str(DEFAULT_CONTROLLER_PORT)))

API_KEY_PREFIX = "dfs_"

REPLICATION_FACTOR = int(os.environ.get("DFS_REPLICATION_FACTOR", str(DEFAULT_REPLICATION_FACTOR)))

CHUNK_SIZE_BYTES = int(os.environ.get("DFS_CHUNK_SIZE_BYTES", str(DEFAULT_CHUNK_SIZE_BYTES)))

HEALTH_CHECK_INTERVAL = int(os.environ.get("DFS_HEALTH_CHECK_INTERVAL", str(HEALTH_CHECK_INTERVAL_SECONDS)))

REPAIR_INTERVAL = int(os.environ.get("DFS_REPAIR_INTERVAL", str(REPAIR_INTERVAL_SECONDS)))

PBKDF2_ITERATIONS = int(os.environ.get("DFS_PBKDF2_ITERATIONS", str(DEFAULT_PBKDF2_ITERATIONS)))

NODE_CONNECT_TIMEOUT = float(os.environ.get("DFS_NODE_CONNECT_TIMEOUT", str(NODE_CONNECT_TIMEOUT_SECONDS)))

NODE_READ_TIMEOUT = float(os.environ.get("DFS_NODE_READ_TIMEOUT", str(NODE_READ_TIMEOUT_SECONDS)))

STALE_UPLOAD_SECONDS = int(os.environ.get("DFS_STALE_UPLOAD_SECONDS", "3600"))

CLEANUP_INTERVAL = int(os.environ.get("DFS_CLEANUP_INTERVAL", "3600"))

STORAGE_NODES = parse_node_list(os.environ.get("DFS_STORAGE_NODES", ""))
