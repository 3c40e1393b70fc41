"""Tests for the replication repair service and stale upload cleanup."""

import asyncio
import os
from datetime import timedelta

import pytest

from controller.chunk_repair import ChunkRepairService
from controller.cleanup_task import StaleUploadCleaner
from controller.file_locks import FileLockRegistry
from controller.repositories.file_repository import File, FileRepository
from controller.repositories.placement_repository import ChunkPlacement, PlacementRepository, group_placements
from controller.services.download_service import DownloadService
from controller.services.file_service import FileService
from controller.services.upload_service import UploadService
from controller.types import FileStatus, NodeStatus
from controller.utils import utc_now
from fakes import add_nodes

PASSWORD = "pw-for-repair"


@pytest.fixture
def uploader(selector, fake_store, file_locks):
    return UploadService(node_selector=selector, chunk_client=fake_store, file_locks=file_locks, chunk_size=512)


@pytest.fixture
def repair(registry, fake_store, file_locks):
    return ChunkRepairService(registry, fake_store, file_locks, repair_interval=3600)


def healthy_counts(file_id, status_map):
    groups = group_placements(PlacementRepository.get_by_file(file_id))
    return {
        index: sum(1 for p in replicas if status_map.get(p.node_id) == NodeStatus.UP)
        for (_, index), replicas in groups.items()
    }


class TestChunkRepair:
    @pytest.mark.asyncio
    async def test_healthy_cluster_needs_no_work(self, owner, registry, uploader, repair, fake_store):
        await add_nodes(registry, 3)
        await uploader.upload_file(owner, "f.bin", None, os.urandom(1000), PASSWORD)
        puts_before = fake_store.put_calls

        report = await repair.run_cycle()

        assert report.groups_scanned == 2
        assert report.groups_repaired == 0
        assert report.replicas_written == 0
        assert fake_store.put_calls == puts_before

    @pytest.mark.asyncio
    async def test_converges_to_replication_factor(self, owner, registry, uploader, repair, fake_store):
        await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, os.urandom(700), PASSWORD)

        await registry.update_status("node-1", NodeStatus.DOWN)
        await registry.update_status("node-2", NodeStatus.DOWN)
        await add_nodes_named(registry, ["node-4", "node-5"])

        report = await repair.run_cycle()

        assert report.groups_repaired == 2
        assert report.replicas_written == 4
        status_map = await registry.get_status_map()
        assert healthy_counts(result.file_id, status_map) == {0: 3, 1: 3}

        for replicas in group_placements(PlacementRepository.get_by_file(result.file_id)).values():
            assert len({p.node_id for p in replicas}) == len(replicas)
            assert len({p.checksum for p in replicas}) == 1

    @pytest.mark.asyncio
    async def test_second_cycle_is_idempotent(self, owner, registry, uploader, repair, fake_store):
        await add_nodes(registry, 3)
        await uploader.upload_file(owner, "f.bin", None, os.urandom(700), PASSWORD)
        await registry.update_status("node-1", NodeStatus.DOWN)
        await add_nodes_named(registry, ["node-4"])

        first = await repair.run_cycle()
        puts_after_first = fake_store.put_calls
        second = await repair.run_cycle()

        assert first.replicas_written == 2
        assert second.replicas_written == 0
        assert fake_store.put_calls == puts_after_first

    @pytest.mark.asyncio
    async def test_under_replicated_without_spare_nodes_does_no_io(self, owner, registry, uploader, repair, fake_store):
        await add_nodes(registry, 3)
        await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)
        await registry.update_status("node-3", NodeStatus.DOWN)
        gets_before = fake_store.get_calls

        report = await repair.run_cycle()

        assert report.replicas_written == 0
        assert fake_store.get_calls == gets_before

    @pytest.mark.asyncio
    async def test_repaired_file_downloads_from_new_replicas(self, owner, registry, uploader, repair, fake_store):
        nodes = await add_nodes(registry, 3)
        data = os.urandom(1500)
        result = await uploader.upload_file(owner, "f.bin", None, data, PASSWORD, replication_factor=2)

        await registry.update_status("node-1", NodeStatus.DOWN)
        fake_store.take_offline(nodes[0])
        report = await repair.run_cycle()
        assert report.replicas_written == 2

        fake_store.take_offline(nodes[2])

        downloader = DownloadService(node_registry=registry, chunk_client=fake_store)
        assert (await downloader.download_file(result.file_id, owner, PASSWORD)).data == data

    @pytest.mark.asyncio
    async def test_no_healthy_replica_marks_degraded(self, owner, registry, uploader, repair, fake_store):
        await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)
        for node_id in ("node-1", "node-2", "node-3"):
            await registry.update_status(node_id, NodeStatus.DOWN)
        await add_nodes_named(registry, ["node-4"])
        puts_before = fake_store.put_calls

        report = await repair.run_cycle()

        assert report.files_degraded == 1
        assert report.replicas_written == 0
        assert fake_store.put_calls == puts_before
        assert FileRepository.get_by_id(result.file_id).status == FileStatus.DEGRADED

        again = await repair.run_cycle()

        assert again.files_degraded == 0
        assert FileRepository.get_by_id(result.file_id).status == FileStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_degraded_file_restored_when_nodes_return(self, owner, registry, uploader, repair):
        await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)
        for node_id in ("node-1", "node-2", "node-3"):
            await registry.update_status(node_id, NodeStatus.DOWN)
        await repair.run_cycle()

        await registry.update_status("node-2", NodeStatus.UP, heartbeat=utc_now())
        report = await repair.run_cycle()

        assert report.files_restored == 1
        assert FileRepository.get_by_id(result.file_id).status == FileStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_corrupt_source_is_skipped(self, owner, registry, uploader, repair, fake_store):
        nodes = await add_nodes(registry, 2)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD, replication_factor=2)
        corrupted = fake_store.blobs_on(nodes[0])
        for blob_id in corrupted:
            corrupted[blob_id] = b"garbage"
        await registry.update_status("node-2", NodeStatus.DOWN)
        await add_nodes_named(registry, ["node-3"])

        report = await repair.run_cycle()

        assert report.replicas_written == 0
        assert {p.node_id for p in PlacementRepository.get_by_file(result.file_id)} == {"node-1", "node-2"}

    @pytest.mark.asyncio
    async def test_uploading_files_are_ignored(self, owner, registry, repair, fake_store):
        await add_nodes(registry, 3)
        now = utc_now()
        FileRepository.create_file(File("f-up", owner, "u.bin", None, 4, 1, 3, FileStatus.UPLOADING, now, now))
        PlacementRepository.create_placement(
            ChunkPlacement("p1", "f-up", 0, "node-1", "blob-1", "00", 4, now)
        )

        report = await repair.run_cycle()

        assert report.groups_scanned == 0
        assert fake_store.get_calls == 0

    @pytest.mark.asyncio
    async def test_locked_upload_does_not_stall_cycle(self, owner, registry, uploader, repair, file_locks):
        await add_nodes(registry, 3)
        done = await uploader.upload_file(owner, "done.bin", None, b"data", PASSWORD)
        now = utc_now()
        FileRepository.create_file(File("f-up", owner, "u.bin", None, 4, 1, 3, FileStatus.UPLOADING, now, now))
        PlacementRepository.create_placement(
            ChunkPlacement("p1", "f-up", 0, "node-1", "blob-1", "00", 4, now)
        )
        await registry.update_status("node-3", NodeStatus.DOWN)
        await add_nodes_named(registry, ["node-4"])

        async with file_locks.hold("f-up"):
            report = await asyncio.wait_for(repair.run_cycle(), timeout=2)

        assert report.groups_scanned == 1
        assert report.replicas_written == 1
        assert "node-4" in {p.node_id for p in PlacementRepository.get_by_file(done.file_id)}

    @pytest.mark.asyncio
    async def test_cycles_do_not_overlap(self, owner, registry, uploader, repair):
        await add_nodes(registry, 3)
        await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)

        reports = await asyncio.gather(repair.run_cycle(), repair.run_cycle())

        assert [r.groups_scanned for r in reports] == [1, 1]

    @pytest.mark.asyncio
    async def test_start_stop(self, repair):
        await repair.start()
        assert repair.running
        await repair.stop()
        assert not repair.running


class TestStaleUploadCleaner:
    @pytest.mark.asyncio
    async def test_removes_only_old_uploading_files(self, owner, registry, fake_store, file_locks):
        nodes = await add_nodes(registry, 1)
        old = utc_now() - timedelta(hours=2)
        fresh = utc_now()
        FileRepository.create_file(File("stale", owner, "s.bin", None, 4, 1, 1, FileStatus.UPLOADING, old, old))
        FileRepository.create_file(File("fresh", owner, "n.bin", None, 4, 1, 1, FileStatus.UPLOADING, fresh, fresh))
        FileRepository.create_file(File("done", owner, "d.bin", None, 4, 1, 1, FileStatus.COMPLETE, old, old))

        await fake_store.put_chunk(nodes[0].host, nodes[0].port, "stale-blob", b"abcd")
        PlacementRepository.create_placement(ChunkPlacement("p1", "stale", 0, "node-1", "stale-blob", "00", 4, old))

        file_service = FileService(node_registry=registry, chunk_client=fake_store, file_locks=file_locks)
        cleaner = StaleUploadCleaner(file_service, interval_seconds=3600, max_age_seconds=3600)

        assert await cleaner.cleanup_cycle() == 1

        assert FileRepository.get_by_id("stale") is None
        assert FileRepository.get_by_id("fresh") is not None
        assert FileRepository.get_by_id("done") is not None
        assert fake_store.total_blobs() == 0

    @pytest.mark.asyncio
    async def test_keeps_injected_idle_lock_registry(self, owner, registry, fake_store, monkeypatch):
        monkeypatch.setattr("controller.service_locator._file_locks", None)
        file_locks = FileLockRegistry()
        old = utc_now() - timedelta(hours=2)
        FileRepository.create_file(File("stale", owner, "s.bin", None, 4, 1, 1, FileStatus.UPLOADING, old, old))

        file_service = FileService(node_registry=registry, chunk_client=fake_store, file_locks=file_locks)
        cleaner = StaleUploadCleaner(file_service, interval_seconds=3600, max_age_seconds=3600)

        assert file_service.file_locks is file_locks
        assert await cleaner.cleanup_cycle() == 1
        assert FileRepository.get_by_id("stale") is None


async def add_nodes_named(registry, names):
    for i, name in enumerate(names, start=100):
        await registry.upsert_node(name, f"10.0.1.{i}", 9000, NodeStatus.UP, utc_now())
