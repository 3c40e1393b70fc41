"""Pydantic schemas for API requests and responses."""

from controller.schemas.auth import (
    RegisterRequest,
    RegisterResponse,
    LoginRequest,
    LoginResponse
)
from controller.schemas.files import (
    UploadFileResponse,
    FileMetadataResponse,
    ListFilesResponse,
    DownloadRequest,
    DeleteFileResponse,
    ChunkMapResponse
)
from controller.schemas.nodes import (
    RegisterNodeRequest,
    StorageNodeResponse,
    ListNodesResponse,
    RepairReportResponse
)
from controller.schemas.common import ErrorResponse

__all__ = [
    "RegisterRequest",
    "RegisterResponse",
    "LoginRequest",
    "LoginResponse",
    "UploadFileResponse",
    "FileMetadataResponse",
    "ListFilesResponse",
    "DownloadRequest",
    "DeleteFileResponse",
    "ChunkMapResponse",
    "RegisterNodeRequest",
    "StorageNodeResponse",
    "ListNodesResponse",
    "RepairReportResponse",
    "ErrorResponse"
]
