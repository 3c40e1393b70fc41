"""Controller-specific data type definitions."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class NodeStatus(str, Enum):
    UNKNOWN = "UNKNOWN"
    UP = "UP"
    DOWN = "DOWN"


class FileStatus(str, Enum):
    UPLOADING = "UPLOADING"
    COMPLETE = "COMPLETE"
    DEGRADED = "DEGRADED"


@dataclass(frozen=True)
class StorageNode:
    """
    Snapshot of a registered storage node.
    """
    node_id: str
    host: str
    port: int
    status: NodeStatus
    last_heartbeat: Optional[datetime]
    created_at: datetime

    @property
    def is_up(self) -> bool:
        return self.status == NodeStatus.UP

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class UploadResult:
    file_id: str
    filename: str
    chunk_count: int
    replicas_per_chunk: int


@dataclass(frozen=True)
class RepairReport:
    """
    Outcome of one replication repair cycle.
    """
    groups_scanned: int = 0
    groups_repaired: int = 0
    replicas_written: int = 0
    files_degraded: int = 0  # newly marked this cycle
    files_restored: int = 0
