"""Pydantic schemas for file operation endpoints."""

from typing import List, Optional
from pydantic import BaseModel


class UploadFileResponse(BaseModel):
    """Response model for file upload."""
    file_id: str
    filename: str
    chunk_count: int
    replicas_per_chunk: int


class FileMetadataResponse(BaseModel):
    """Response model for file metadata."""
    file_id: str
    filename: str
    content_type: Optional[str] = None
    size: int
    chunk_count: int
    replication_factor: int
    status: str
    owner_id: str
    created_at: str


class ListFilesResponse(BaseModel):
    """Response model for file listing."""
    files: List[FileMetadataResponse]


class DownloadRequest(BaseModel):
    """Request model for file download. The password never travels in the URL."""
    password: str


class DeleteFileResponse(BaseModel):
    """Response model for file deletion."""
    file_id: str
    deleted: bool


class ReplicaInfo(BaseModel):
    placement_id: str
    node_id: str
    blob_id: str
    checksum: str
    size: int
    node_status: str


class ChunkInfo(BaseModel):
    chunk_index: int
    healthy_replicas: int
    replicas: List[ReplicaInfo]


class ChunkMapResponse(BaseModel):
    """Response model for a file's chunk map."""
    file_id: str
    filename: str
    status: str
    total_chunks: int
    replication_factor: int
    chunks: List[ChunkInfo]
