"""Repository for wrapped per-file data keys."""

import base64
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from controller.database import get_db_connection, open_connection


@dataclass
class EncryptedKey:
    file_id: str
    wrapped_key: bytes
    salt: bytes
    iv: str
    created_at: datetime


class KeyRepository:
    """
    Wrapped keys are written once at upload time and never updated.
    Bytes are stored base64-encoded.
    """

    @staticmethod
    def create_key(key: EncryptedKey, conn=None) -> None:
        should_close = conn is None
        if conn is None:
            conn = open_connection()

        try:
            conn.execute(
                """
                INSERT INTO encrypted_keys (file_id, wrapped_key, salt, iv, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    key.file_id,
                    base64.b64encode(key.wrapped_key).decode('ascii'),
                    base64.b64encode(key.salt).decode('ascii'),
                    key.iv,
                    key.created_at.isoformat(),
                )
            )
            if should_close:
                conn.commit()
        finally:
            if should_close:
                conn.close()

    @staticmethod
    def get_by_file(file_id: str) -> Optional[EncryptedKey]:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT file_id, wrapped_key, salt, iv, created_at FROM encrypted_keys WHERE file_id = ?",
                (file_id,)
            ).fetchone()

            if row is None:
                return None

            return EncryptedKey(
                file_id=row["file_id"],
                wrapped_key=base64.b64decode(row["wrapped_key"]),
                salt=base64.b64decode(row["salt"]),
                iv=row["iv"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
