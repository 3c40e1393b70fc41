"""Replication repair service."""

import asyncio
from typing import Dict, List, Optional, Set

from common.logging_config import get_logger
from controller.chunk_store_client import ChunkStoreClient
from controller.config import REPAIR_INTERVAL
from controller.crypto import sha256_hex
from controller.exceptions import StorageTransportError
from controller.file_locks import FileLockRegistry
from controller.node_registry import NodeRegistry
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.placement_repository import (
    ChunkPlacement,
    PlacementRepository,
    group_placements,
)
from controller.types import FileStatus, NodeStatus, RepairReport, StorageNode
from controller.utils import generate_uuid, utc_now

logger = get_logger(__name__)


class ChunkRepairService:
    """
    Background service that tops up under-replicated chunks.

    Responsibilities:
    - Detect chunk indexes with fewer healthy replicas than their file's factor
    - Copy a verified replica onto UP nodes that do not hold the chunk yet
    - Mark files DEGRADED when a chunk has no healthy replica left
    - Restore DEGRADED files once every chunk is reachable again

    Over-replicated chunks are left alone.
    """

    def __init__(
        self,
        node_registry: NodeRegistry,
        chunk_client: ChunkStoreClient,
        file_locks: FileLockRegistry,
        repair_interval: int = REPAIR_INTERVAL
    ):
        self.node_registry = node_registry
        self.chunk_client = chunk_client
        self.file_locks = file_locks
        self.repair_interval = repair_interval
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._cycle_lock = asyncio.Lock()

    async def start(self):
        """Start background repair task"""
        self.running = True
        self._task = asyncio.create_task(self._repair_loop())
        logger.info(f"Chunk repair service started (interval={self.repair_interval}s)")

    async def stop(self):
        """Stop background repair task"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Chunk repair service stopped")

    async def _repair_loop(self):
        """Periodically check and repair chunk replication"""
        while self.running:
            try:
                await asyncio.sleep(self.repair_interval)
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Repair loop error: {e}", exc_info=True)

    async def run_cycle(self) -> RepairReport:
        """
        Run one repair pass over every placement group.
        Cycles never overlap; a manual trigger waits for a running one.
        """
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> RepairReport:
        groups = group_placements(PlacementRepository.get_all())

        scanned = repaired = written = 0
        degraded: Set[str] = set()

        for file_id, chunk_index in sorted(groups):
            file = FileRepository.get_by_id(file_id)
            if file is None or file.status == FileStatus.UPLOADING:
                continue

            async with self.file_locks.hold(file_id):
                file = FileRepository.get_by_id(file_id)
                if file is None or file.status == FileStatus.UPLOADING:
                    continue

                scanned += 1
                count = await self._repair_group(file, chunk_index, degraded)

            if count:
                repaired += 1
                written += count

        restored = await self._restore_degraded_files()

        report = RepairReport(
            groups_scanned=scanned,
            groups_repaired=repaired,
            replicas_written=written,
            files_degraded=len(degraded),
            files_restored=restored,
        )
        if repaired or degraded or restored:
            logger.info(
                f"Repair cycle complete: {repaired}/{scanned} groups repaired, "
                f"{written} replicas written, {len(degraded)} files degraded, {restored} restored"
            )
        else:
            logger.debug(f"Repair cycle complete: {scanned} groups healthy")
        return report

    async def _repair_group(self, file: File, chunk_index: int, degraded: Set[str]) -> int:
        """
        Bring one (file, chunk_index) group up to the file's replication factor.

        Returns:
            Number of replicas written
        """
        group = PlacementRepository.get_group(file.file_id, chunk_index)
        if not group:
            return 0

        nodes = {node.node_id: node for node in await self.node_registry.get_all()}
        healthy = [p for p in group if p.node_id in nodes and nodes[p.node_id].is_up]

        if len(healthy) >= file.replication_factor:
            return 0

        if not healthy:
            if file.status != FileStatus.DEGRADED and FileRepository.update_status(
                file.file_id, FileStatus.DEGRADED, utc_now()
            ):
                degraded.add(file.file_id)
                logger.warning(
                    f"File {file.file_id} DEGRADED: chunk {chunk_index} has no healthy replica"
                )
            return 0

        holders = {p.node_id for p in group}
        needed = file.replication_factor - len(healthy)
        candidates = [
            node for node in nodes.values()
            if node.is_up and node.node_id not in holders
        ]
        candidates.sort(key=lambda n: n.node_id)
        candidates = candidates[:needed]
        if not candidates:
            logger.debug(
                f"Chunk {chunk_index} of {file.file_id} under-replicated "
                f"({len(healthy)}/{file.replication_factor}) with no spare UP node"
            )
            return 0

        source = await self._fetch_verified_source(healthy, nodes)
        if source is None:
            logger.warning(f"No verifiable source replica for chunk {chunk_index} of {file.file_id}")
            return 0

        source_placement, blob = source
        written = 0
        for target in candidates:
            if await self._copy_to(target, file.file_id, chunk_index, source_placement, blob):
                written += 1
        return written

    async def _fetch_verified_source(self, healthy: List[ChunkPlacement], nodes: Dict[str, StorageNode]):
        for placement in healthy:
            node = nodes[placement.node_id]
            try:
                blob = await self.chunk_client.get_chunk(node.host, node.port, placement.blob_id)
            except StorageTransportError as e:
                logger.warning(f"Repair source {node.node_id} unreadable: {e}")
                continue

            if sha256_hex(blob) != placement.checksum:
                logger.warning(
                    f"Repair source blob {placement.blob_id} on {node.node_id} fails checksum, skipping"
                )
                continue
            return placement, blob
        return None

    async def _copy_to(
        self,
        target: StorageNode,
        file_id: str,
        chunk_index: int,
        source: ChunkPlacement,
        blob: bytes
    ) -> bool:
        blob_id = generate_uuid()
        try:
            await self.chunk_client.put_chunk(target.host, target.port, blob_id, blob)
        except StorageTransportError as e:
            logger.warning(f"Repair write of chunk {chunk_index} of {file_id} to {target.node_id} failed: {e}")
            return False

        PlacementRepository.create_placement(
            ChunkPlacement(
                placement_id=generate_uuid(),
                file_id=file_id,
                chunk_index=chunk_index,
                node_id=target.node_id,
                blob_id=blob_id,
                checksum=source.checksum,
                size=len(blob),
                created_at=utc_now(),
            )
        )
        logger.info(f"Replicated chunk {chunk_index} of {file_id} to {target.node_id}")
        return True

    async def _restore_degraded_files(self) -> int:
        """Return DEGRADED files to COMPLETE once every chunk has an UP replica."""
        status_map = await self.node_registry.get_status_map()
        restored = 0

        for file in FileRepository.list_by_status(FileStatus.DEGRADED):
            async with self.file_locks.hold(file.file_id):
                groups = group_placements(PlacementRepository.get_by_file(file.file_id))
                reachable = all(
                    any(status_map.get(p.node_id) == NodeStatus.UP for p in groups.get((file.file_id, i), []))
                    for i in range(file.chunk_count)
                )
                if reachable and FileRepository.update_status(file.file_id, FileStatus.COMPLETE, utc_now()):
                    restored += 1
                    logger.info(f"File {file.file_id} restored to COMPLETE")

        return restored
