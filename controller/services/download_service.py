"""Download pipeline: per-chunk replica failover and decryption."""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from common.logging_config import get_logger
from controller.chunk_store_client import ChunkStoreClient
from controller.config import PBKDF2_ITERATIONS
from controller.crypto import EnvelopeCrypto, sha256_hex
from controller.exceptions import (
    DecryptionError,
    InvalidPasswordError,
    NotFoundError,
    ReplicaExhaustedError,
    StorageTransportError,
    UnauthorizedAccessError,
)
from controller.node_registry import NodeRegistry
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.key_repository import KeyRepository
from controller.repositories.placement_repository import (
    ChunkPlacement,
    PlacementRepository,
    group_placements,
)
from controller.service_locator import get_chunk_client, get_node_registry
from controller.types import NodeStatus, StorageNode

logger = get_logger(__name__)

_STATUS_RANK = {NodeStatus.UP: 0, NodeStatus.UNKNOWN: 1, NodeStatus.DOWN: 2}


@dataclass
class DownloadResult:
    file: File
    data: bytes


def order_replicas(replicas: List[ChunkPlacement], nodes: Dict[str, StorageNode]) -> List[ChunkPlacement]:
    """UP replicas first, then UNKNOWN, then DOWN; replicas on unregistered nodes last."""
    def rank(placement: ChunkPlacement) -> int:
        node = nodes.get(placement.node_id)
        return _STATUS_RANK[node.status] if node else len(_STATUS_RANK)

    return sorted(replicas, key=rank)


class DownloadService:
    def __init__(
        self,
        node_registry: Optional[NodeRegistry] = None,
        chunk_client: Optional[ChunkStoreClient] = None,
        crypto: Optional[EnvelopeCrypto] = None,
    ):
        self.node_registry = node_registry if node_registry is not None else get_node_registry()
        self.chunk_client = chunk_client if chunk_client is not None else get_chunk_client()
        self.crypto = crypto if crypto is not None else EnvelopeCrypto(PBKDF2_ITERATIONS)

    async def download_file(self, file_id: str, user_id: str, password: str) -> DownloadResult:
        """
        Reassemble and decrypt a file.

        Raises:
            NotFoundError: If the file is absent, still uploading, or has no key
            UnauthorizedAccessError: If the user does not own the file
            InvalidPasswordError: If the password cannot unwrap the data key
            ReplicaExhaustedError: If no replica of some chunk could be read
        """
        file = FileRepository.get_by_id(file_id)
        if file is None or not file.is_visible:
            raise NotFoundError(f"File {file_id} not found")
        if file.owner_id != user_id:
            raise UnauthorizedAccessError(f"User {user_id} does not own file {file_id}")

        key = KeyRepository.get_by_file(file_id)
        if key is None:
            raise NotFoundError(f"Encryption key for file {file_id} not found")

        loop = asyncio.get_running_loop()
        wrapping_key = await loop.run_in_executor(
            None, self.crypto.derive_wrapping_key, password, key.salt
        )
        try:
            data_key = self.crypto.unwrap_key(key.wrapped_key, wrapping_key)
        except DecryptionError:
            logger.warning(f"Invalid password for file {file_id} [user_id={user_id}]")
            raise InvalidPasswordError("Invalid password")

        groups = group_placements(PlacementRepository.get_by_file(file_id))
        nodes = {node.node_id: node for node in await self.node_registry.get_all()}

        parts = []
        for chunk_index in range(file.chunk_count):
            replicas = order_replicas(groups.get((file_id, chunk_index), []), nodes)
            parts.append(await self._read_chunk(file_id, chunk_index, replicas, nodes, data_key))

        data = b"".join(parts)
        logger.info(f"Downloaded file {file_id} ({len(data)} bytes, {file.chunk_count} chunks)")
        return DownloadResult(file=file, data=data)

    async def _read_chunk(
        self,
        file_id: str,
        chunk_index: int,
        replicas: List[ChunkPlacement],
        nodes: Dict[str, StorageNode],
        data_key: bytes,
    ) -> bytes:
        attempts = 0
        for replica in replicas:
            node = nodes.get(replica.node_id)
            if node is None:
                logger.warning(f"Replica {replica.placement_id} is on unregistered node {replica.node_id}")
                continue

            attempts += 1
            try:
                blob = await self.chunk_client.get_chunk(node.host, node.port, replica.blob_id)
            except StorageTransportError as e:
                logger.warning(f"Chunk {chunk_index} of {file_id}: replica on {node.node_id} unreadable: {e}")
                continue

            if sha256_hex(blob) != replica.checksum:
                logger.warning(f"Chunk {chunk_index} of {file_id}: checksum mismatch on {node.node_id}")
                continue

            try:
                return self.crypto.decrypt(blob, data_key)
            except DecryptionError:
                logger.warning(f"Chunk {chunk_index} of {file_id}: decryption failed on {node.node_id}")

        raise ReplicaExhaustedError(chunk_index, attempts)
