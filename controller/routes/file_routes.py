"""File operation API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import Response

from controller.auth import get_current_user
from controller.repositories.file_repository import File as FileRecord
from controller.schemas.common import ErrorResponse
from controller.schemas.files import (
    DeleteFileResponse,
    DownloadRequest,
    FileMetadataResponse,
    ListFilesResponse,
    UploadFileResponse,
)
from controller.services.download_service import DownloadService
from controller.services.file_service import FileService
from controller.services.upload_service import UploadService

router = APIRouter(prefix="/files", tags=["Files"])


def to_metadata_response(file: FileRecord) -> FileMetadataResponse:
    return FileMetadataResponse(
        file_id=file.file_id,
        filename=file.filename,
        content_type=file.content_type,
        size=file.size,
        chunk_count=file.chunk_count,
        replication_factor=file.replication_factor,
        status=file.status.value,
        owner_id=file.owner_id,
        created_at=file.created_at.isoformat(),
    )


@router.post(
    "",
    response_model=UploadFileResponse,
    status_code=status.HTTP_201_CREATED,
    responses={503: {"model": ErrorResponse}},
)
async def upload_file(
    file: UploadFile = File(...),
    password: str = Form(...),
    replication_factor: Optional[int] = Form(None),
    current_user: str = Depends(get_current_user)
):
    """
    Upload a file as encrypted, replicated chunks.

    Parameters:
        - file: File to upload (multipart/form-data)
        - password: Password protecting the file's data key
        - replication_factor: Replicas per chunk (optional, server default otherwise)
        - Authorization header: Bearer <api_key> (required)

    Returns:
        - file_id, filename, chunk_count, replicas_per_chunk

    Raises:
        - 400: Invalid replication factor
        - 401: Invalid or missing API Key
        - 503: No healthy storage node or every replica write failed
    """
    upload_service = UploadService()

    data = await file.read()

    result = await upload_service.upload_file(
        owner_id=current_user,
        filename=file.filename or "unnamed",
        content_type=file.content_type,
        data=data,
        password=password,
        replication_factor=replication_factor,
    )

    return UploadFileResponse(
        file_id=result.file_id,
        filename=result.filename,
        chunk_count=result.chunk_count,
        replicas_per_chunk=result.replicas_per_chunk,
    )


@router.get("", response_model=ListFilesResponse)
async def list_files(current_user: str = Depends(get_current_user)):
    """
    List the caller's COMPLETE and DEGRADED files, newest first.
    """
    file_service = FileService()

    files = file_service.list_files(current_user)

    return ListFilesResponse(files=[to_metadata_response(f) for f in files])


@router.get("/{file_id}", response_model=FileMetadataResponse)
async def get_file_metadata(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Get metadata for one file.

    Raises:
        - 403: User does not own this file
        - 404: File not found
    """
    file_service = FileService()

    return to_metadata_response(file_service.get_file_metadata(file_id, current_user))


@router.post(
    "/{file_id}/download",
    responses={
        200: {"content": {"application/octet-stream": {}}},
        401: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def download_file(
    file_id: str,
    request: DownloadRequest,
    current_user: str = Depends(get_current_user)
):
    """
    Download and decrypt a file.

    Parameters:
        - file_id: UUID of file to download
        - password: File password (JSON body)
        - Authorization header: Bearer <api_key> (required)

    Returns:
        - Raw file bytes

    Raises:
        - 401: Invalid password, or invalid or missing API Key
        - 403: User does not own this file
        - 404: File not found
        - 503: Every replica of some chunk failed
    """
    download_service = DownloadService()

    result = await download_service.download_file(file_id, current_user, request.password)

    return Response(
        content=result.data,
        media_type=result.file.content_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{result.file.filename}"'}
    )


@router.delete("/{file_id}", response_model=DeleteFileResponse)
async def delete_file(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Delete a file and, best effort, all of its blobs.

    Raises:
        - 403: User does not own this file
        - 404: File not found
    """
    file_service = FileService()

    await file_service.delete_file(file_id, current_user)

    return DeleteFileResponse(file_id=file_id, deleted=True)
