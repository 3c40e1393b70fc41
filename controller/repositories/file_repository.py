"""File repository for database operations."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from common.logging_config import get_logger
from controller.database import get_db_connection, open_connection
from controller.types import FileStatus

logger = get_logger(__name__)

_FILE_COLUMNS = """file_id, owner_id, filename, content_type, size, chunk_count,
                   replication_factor, status, created_at, updated_at"""


@dataclass
class File:
    file_id: str
    owner_id: str
    filename: str
    content_type: Optional[str]
    size: int
    chunk_count: int
    replication_factor: int
    status: FileStatus
    created_at: datetime
    updated_at: datetime

    @property
    def is_visible(self) -> bool:
        """Files still uploading are not exposed to consumers."""
        return self.status in (FileStatus.COMPLETE, FileStatus.DEGRADED)


def _row_to_file(row) -> File:
    return File(
        file_id=row["file_id"],
        owner_id=row["owner_id"],
        filename=row["filename"],
        content_type=row["content_type"],
        size=row["size"],
        chunk_count=row["chunk_count"],
        replication_factor=row["replication_factor"],
        status=FileStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class FileRepository:
    @staticmethod
    def create_file(file: File, conn=None) -> File:
        should_close = conn is None
        if conn is None:
            conn = open_connection()

        try:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                INSERT INTO files ({_FILE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    file.file_id, file.owner_id, file.filename, file.content_type,
                    file.size, file.chunk_count, file.replication_factor,
                    file.status.value, file.created_at.isoformat(), file.updated_at.isoformat()
                )
            )
            if should_close:
                conn.commit()
            return file
        finally:
            if should_close:
                conn.close()

    @staticmethod
    def get_by_id(file_id: str, conn=None) -> Optional[File]:
        if conn is not None:
            row = conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE file_id = ?", (file_id,)
            ).fetchone()
            return _row_to_file(row) if row else None

        with get_db_connection() as conn:
            row = conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE file_id = ?", (file_id,)
            ).fetchone()
            return _row_to_file(row) if row else None

    @staticmethod
    def list_by_owner(owner_id: str, statuses: Optional[List[FileStatus]] = None) -> List[File]:
        query = f"SELECT {_FILE_COLUMNS} FROM files WHERE owner_id = ?"
        params: list = [owner_id]
        if statuses:
            query += f" AND status IN ({','.join('?' * len(statuses))})"
            params.extend(s.value for s in statuses)
        query += " ORDER BY created_at DESC"

        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_row_to_file(row) for row in rows]

    @staticmethod
    def list_by_status(status: FileStatus) -> List[File]:
        with get_db_connection() as conn:
            rows = conn.execute(
                f"SELECT {_FILE_COLUMNS} FROM files WHERE status = ? ORDER BY created_at",
                (status.value,)
            ).fetchall()
            return [_row_to_file(row) for row in rows]

    @staticmethod
    def list_stale_uploads(older_than: datetime) -> List[File]:
        with get_db_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_FILE_COLUMNS} FROM files
                WHERE status = ? AND updated_at < ?
                ORDER BY created_at
                """,
                (FileStatus.UPLOADING.value, older_than.isoformat())
            ).fetchall()
            return [_row_to_file(row) for row in rows]

    @staticmethod
    def update_status(file_id: str, status: FileStatus, updated_at: datetime, conn=None) -> bool:
        should_close = conn is None
        if conn is None:
            conn = open_connection()

        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE files SET status = ?, updated_at = ? WHERE file_id = ?",
                (status.value, updated_at.isoformat(), file_id)
            )
            if should_close:
                conn.commit()
            logger.debug(f"File {file_id} status -> {status.value}")
            return cursor.rowcount > 0
        finally:
            if should_close:
                conn.close()

    @staticmethod
    def delete_file(file_id: str, conn=None) -> bool:
        """
        Delete a file row; keys and placements go with it through ON DELETE CASCADE.
        """
        logger.debug(f"Deleting file [file_id={file_id}]")
        should_close = conn is None
        if conn is None:
            conn = open_connection()

        try:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM files WHERE file_id = ?", (file_id,))
            if should_close:
                conn.commit()
            return cursor.rowcount > 0
        except Exception as e:
            logger.error(f"Failed to delete file [file_id={file_id}]: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                conn.close()
