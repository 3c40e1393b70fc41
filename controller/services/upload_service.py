"""Upload pipeline: chunk, encrypt, replicate, record."""

import asyncio
from typing import List, Optional, Tuple

from common.logging_config import get_logger
from controller.chunk_store_client import ChunkStoreClient
from controller.config import CHUNK_SIZE_BYTES, PBKDF2_ITERATIONS, REPLICATION_FACTOR
from controller.crypto import EnvelopeCrypto, sha256_hex
from controller.database import get_db_connection
from controller.exceptions import (
    InsufficientNodesError,
    InvalidReplicationFactorError,
    NotFoundError,
    StorageTransportError,
)
from controller.file_locks import FileLockRegistry
from controller.node_selector import NodeSelector
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.key_repository import EncryptedKey, KeyRepository
from controller.repositories.placement_repository import ChunkPlacement, PlacementRepository
from controller.repositories.user_repository import UserRepository
from controller.service_locator import get_chunk_client, get_file_locks, get_node_selector
from controller.types import FileStatus, StorageNode, UploadResult
from controller.utils import count_chunks, generate_uuid, split_into_chunks, utc_now

logger = get_logger(__name__)


class UploadService:
    def __init__(
        self,
        node_selector: Optional[NodeSelector] = None,
        chunk_client: Optional[ChunkStoreClient] = None,
        file_locks: Optional[FileLockRegistry] = None,
        crypto: Optional[EnvelopeCrypto] = None,
        chunk_size: int = CHUNK_SIZE_BYTES,
    ):
        self.node_selector = node_selector if node_selector is not None else get_node_selector()
        self.chunk_client = chunk_client if chunk_client is not None else get_chunk_client()
        self.file_locks = file_locks if file_locks is not None else get_file_locks()
        self.crypto = crypto if crypto is not None else EnvelopeCrypto(PBKDF2_ITERATIONS)
        self.chunk_size = chunk_size

    async def upload_file(
        self,
        owner_id: str,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        password: str,
        replication_factor: Optional[int] = None,
    ) -> UploadResult:
        """
        Store a file as encrypted, replicated chunks.

        The file stays UPLOADING (invisible to listing, download and repair)
        until every chunk index has at least one replica recorded.

        Raises:
            NotFoundError: If the owner does not exist
            InvalidReplicationFactorError: If replication_factor < 1
            InsufficientNodesError: If no storage node is UP
            StorageTransportError: If every replica write of a chunk failed
        """
        factor = REPLICATION_FACTOR if replication_factor is None else replication_factor
        if factor < 1:
            raise InvalidReplicationFactorError(f"Replication factor must be at least 1, got {factor}")

        if UserRepository.get_by_user_id(owner_id) is None:
            raise NotFoundError(f"User {owner_id} not found")

        file_id = generate_uuid()
        chunk_count = count_chunks(len(data), self.chunk_size)

        async with self.file_locks.hold(file_id):
            data_key = await self._create_file_records(
                file_id, owner_id, filename, content_type, len(data), chunk_count, factor, password
            )

            written: List[Tuple[StorageNode, str]] = []
            replica_counts: List[int] = []
            try:
                for chunk_index, chunk in split_into_chunks(data, self.chunk_size):
                    stored = await self._store_chunk(file_id, chunk_index, chunk, data_key, factor, written)
                    replica_counts.append(stored)

                FileRepository.update_status(file_id, FileStatus.COMPLETE, utc_now())
            except Exception as e:
                logger.error(f"Upload failed for file {file_id}: {e}")
                await self._rollback(file_id, written)
                raise

        replicas_per_chunk = min(replica_counts) if replica_counts else factor
        logger.info(
            f"Uploaded file {file_id} ({filename}, {len(data)} bytes) "
            f"as {chunk_count} chunks x {replicas_per_chunk} replicas"
        )
        return UploadResult(
            file_id=file_id,
            filename=filename,
            chunk_count=chunk_count,
            replicas_per_chunk=replicas_per_chunk,
        )

    async def _create_file_records(
        self,
        file_id: str,
        owner_id: str,
        filename: str,
        content_type: Optional[str],
        size: int,
        chunk_count: int,
        factor: int,
        password: str,
    ) -> bytes:
        """Generate and wrap the data key; persist file and key rows in one transaction."""
        loop = asyncio.get_running_loop()
        data_key = self.crypto.generate_data_key()
        salt = self.crypto.generate_salt()
        wrapping_key = await loop.run_in_executor(None, self.crypto.derive_wrapping_key, password, salt)
        wrapped_key = self.crypto.wrap_key(data_key, wrapping_key)

        now = utc_now()
        with get_db_connection() as conn:
            try:
                FileRepository.create_file(
                    File(
                        file_id=file_id,
                        owner_id=owner_id,
                        filename=filename,
                        content_type=content_type,
                        size=size,
                        chunk_count=chunk_count,
                        replication_factor=factor,
                        status=FileStatus.UPLOADING,
                        created_at=now,
                        updated_at=now,
                    ),
                    conn=conn
                )
                KeyRepository.create_key(
                    EncryptedKey(file_id=file_id, wrapped_key=wrapped_key, salt=salt, iv="", created_at=now),
                    conn=conn
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        return data_key

    async def _select_targets(self, factor: int) -> List[StorageNode]:
        try:
            return await self.node_selector.select_nodes(factor)
        except InsufficientNodesError as e:
            up_nodes = await self.node_selector.node_registry.get_up_nodes()
            if not up_nodes:
                raise
            logger.warning(f"{e}; writing to all {len(up_nodes)} UP nodes instead")
            return up_nodes

    async def _store_chunk(
        self,
        file_id: str,
        chunk_index: int,
        chunk: bytes,
        data_key: bytes,
        factor: int,
        written: List[Tuple[StorageNode, str]],
    ) -> int:
        encrypted = self.crypto.encrypt(chunk, data_key)
        checksum = sha256_hex(encrypted)
        targets = await self._select_targets(factor)
        blob_id = generate_uuid()

        results = await asyncio.gather(
            *(self._write_replica(node, blob_id, encrypted) for node in targets)
        )
        stored_on = [node for node, ok in zip(targets, results) if ok]
        written.extend((node, blob_id) for node in stored_on)

        if not stored_on:
            raise StorageTransportError(
                f"All {len(targets)} replica writes failed for chunk {chunk_index} of file {file_id}"
            )

        now = utc_now()
        with get_db_connection() as conn:
            for node in stored_on:
                PlacementRepository.create_placement(
                    ChunkPlacement(
                        placement_id=generate_uuid(),
                        file_id=file_id,
                        chunk_index=chunk_index,
                        node_id=node.node_id,
                        blob_id=blob_id,
                        checksum=checksum,
                        size=len(encrypted),
                        created_at=now,
                    ),
                    conn=conn
                )
            conn.commit()

        if len(stored_on) < len(targets):
            logger.warning(
                f"Chunk {chunk_index} of file {file_id} stored on "
                f"{len(stored_on)}/{len(targets)} nodes"
            )
        return len(stored_on)

    async def _write_replica(self, node: StorageNode, blob_id: str, encrypted: bytes) -> bool:
        try:
            await self.chunk_client.put_chunk(node.host, node.port, blob_id, encrypted)
            return True
        except StorageTransportError as e:
            logger.warning(f"Replica write to {node.node_id} failed: {e}")
            return False

    async def _rollback(self, file_id: str, written: List[Tuple[StorageNode, str]]) -> None:
        if written:
            logger.info(f"Cleaning up {len(written)} blobs of failed upload {file_id}")
            await asyncio.gather(
                *(self.chunk_client.delete_chunk(node.host, node.port, blob_id) for node, blob_id in written)
            )
        FileRepository.delete_file(file_id)
