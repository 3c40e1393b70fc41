"""Pydantic schemas for storage node administration endpoints."""

from typing import List, Optional
from pydantic import BaseModel, Field


class RegisterNodeRequest(BaseModel):
    """Request model for storage node registration."""
    id: str = Field(..., min_length=1, max_length=128)
    host: str = Field(..., min_length=1)
    port: int = Field(..., ge=1, le=65535)


class StorageNodeResponse(BaseModel):
    """Response model for a storage node."""
    id: str
    host: str
    port: int
    status: str
    last_heartbeat: Optional[str] = None


class ListNodesResponse(BaseModel):
    nodes: List[StorageNodeResponse]


class RepairReportResponse(BaseModel):
    """Response model for a repair cycle."""
    groups_scanned: int
    groups_repaired: int
    replicas_written: int
    files_degraded: int
    files_restored: int
