"""Service layer for business logic."""

from controller.services.auth_service import AuthService
from controller.services.download_service import DownloadService, DownloadResult
from controller.services.file_service import FileService
from controller.services.node_service import NodeService
from controller.services.upload_service import UploadService

__all__ = [
    "AuthService",
    "DownloadService",
    "DownloadResult",
    "FileService",
    "NodeService",
    "UploadService",
]
