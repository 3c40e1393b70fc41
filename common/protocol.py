"""Message shapes of the storage node chunk API (JSON bodies)."""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class ChunkUploadResponse:
    """Body returned by ``PUT /chunks/{blobId}``."""
    blob_id: str
    node_id: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {"blobId": self.blob_id, "nodeId": self.node_id, "size": self.size}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChunkUploadResponse':
        return cls(
            blob_id=data["blobId"],
            node_id=data["nodeId"],
            size=int(data["size"]),
        )


@dataclass
class NodeHealthResponse:
    """Body returned by ``GET /chunks/health``."""
    node_id: str
    status: str
    total_chunks: int
    data_dir: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "status": self.status,
            "totalChunks": self.total_chunks,
            "dataDir": self.data_dir,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NodeHealthResponse':
        return cls(
            node_id=data["nodeId"],
            status=data["status"],
            total_chunks=int(data.get("totalChunks", 0)),
            data_dir=data.get("dataDir", ""),
            timestamp=data.get("timestamp", ""),
        )

    @property
    def is_up(self) -> bool:
        return self.status.upper() == "UP"
