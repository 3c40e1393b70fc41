"""File catalog: listing, metadata, deletion and chunk maps."""

import asyncio
from typing import Any, Dict, List, Optional

from common.logging_config import get_logger
from controller.chunk_store_client import ChunkStoreClient
from controller.database import get_db_connection
from controller.exceptions import NotFoundError, UnauthorizedAccessError
from controller.file_locks import FileLockRegistry
from controller.node_registry import NodeRegistry
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.placement_repository import (
    ChunkPlacement,
    PlacementRepository,
    group_placements,
)
from controller.service_locator import get_chunk_client, get_file_locks, get_node_registry
from controller.types import FileStatus, NodeStatus

logger = get_logger(__name__)


class FileService:
    def __init__(
        self,
        node_registry: Optional[NodeRegistry] = None,
        chunk_client: Optional[ChunkStoreClient] = None,
        file_locks: Optional[FileLockRegistry] = None,
    ):
        self.file_repo = FileRepository()
        self.placement_repo = PlacementRepository()
        self.node_registry = node_registry if node_registry is not None else get_node_registry()
        self.chunk_client = chunk_client if chunk_client is not None else get_chunk_client()
        self.file_locks = file_locks if file_locks is not None else get_file_locks()

    def list_files(self, owner_id: str) -> List[File]:
        return self.file_repo.list_by_owner(
            owner_id, statuses=[FileStatus.COMPLETE, FileStatus.DEGRADED]
        )

    def get_file_metadata(self, file_id: str, owner_id: str) -> File:
        file = self.file_repo.get_by_id(file_id)
        if file is None or not file.is_visible:
            raise NotFoundError(f"File {file_id} not found")
        if file.owner_id != owner_id:
            raise UnauthorizedAccessError(f"User {owner_id} does not own file {file_id}")
        return file

    async def delete_file(self, file_id: str, owner_id: str) -> None:
        """
        Delete a file's metadata, then its blobs on a best-effort basis.

        Raises:
            NotFoundError: If the file does not exist
            UnauthorizedAccessError: If the user does not own the file
        """
        file = self.file_repo.get_by_id(file_id)
        if file is None:
            raise NotFoundError(f"File {file_id} not found")
        if file.owner_id != owner_id:
            raise UnauthorizedAccessError(f"User {owner_id} does not own file {file_id}")

        async with self.file_locks.hold(file_id):
            removed = await self.purge_file(file_id)

        if not removed:
            raise NotFoundError(f"File {file_id} not found")
        logger.info(f"Deleted file {file_id} [user_id={owner_id}]")

    async def purge_file(self, file_id: str) -> bool:
        """
        Remove a file's rows in one transaction, then delete its blobs.
        The caller holds the file lock.

        Returns:
            False if the file row was already gone
        """
        placements = self.placement_repo.get_by_file(file_id)

        with get_db_connection() as conn:
            try:
                deleted = self.file_repo.delete_file(file_id, conn=conn)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

        if deleted and placements:
            await self._delete_blobs(placements)
        return deleted

    async def _delete_blobs(self, placements: List[ChunkPlacement]) -> None:
        nodes = {node.node_id: node for node in await self.node_registry.get_all()}
        deletions = []
        for placement in placements:
            node = nodes.get(placement.node_id)
            if node is None:
                logger.warning(
                    f"Cannot delete blob {placement.blob_id}: node {placement.node_id} is not registered"
                )
                continue
            deletions.append(self.chunk_client.delete_chunk(node.host, node.port, placement.blob_id))

        results = await asyncio.gather(*deletions)
        failed = results.count(False)
        if failed:
            logger.warning(f"{failed}/{len(results)} blob deletions failed; blobs left orphaned")

    async def get_chunk_map(self, file_id: str) -> Dict[str, Any]:
        """Per chunk index replica layout with live node status."""
        file = self.file_repo.get_by_id(file_id)
        if file is None:
            raise NotFoundError(f"File {file_id} not found")

        groups = group_placements(self.placement_repo.get_by_file(file_id))
        status_map = await self.node_registry.get_status_map()

        chunks = []
        for chunk_index in range(file.chunk_count):
            replicas = []
            for placement in groups.get((file_id, chunk_index), []):
                node_status = status_map.get(placement.node_id, NodeStatus.UNKNOWN)
                replicas.append({
                    "placement_id": placement.placement_id,
                    "node_id": placement.node_id,
                    "blob_id": placement.blob_id,
                    "checksum": placement.checksum,
                    "size": placement.size,
                    "node_status": node_status.value,
                })
            replicas.sort(key=lambda r: r["node_status"] != NodeStatus.UP.value)
            chunks.append({
                "chunk_index": chunk_index,
                "healthy_replicas": sum(1 for r in replicas if r["node_status"] == NodeStatus.UP.value),
                "replicas": replicas,
            })

        return {
            "file_id": file.file_id,
            "filename": file.filename,
            "status": file.status.value,
            "total_chunks": file.chunk_count,
            "replication_factor": file.replication_factor,
            "chunks": chunks,
        }
