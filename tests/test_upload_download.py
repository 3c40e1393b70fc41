"""Tests for the upload and download pipelines."""

import asyncio
import os

import pytest

from controller.exceptions import (
    InsufficientNodesError,
    InvalidPasswordError,
    InvalidReplicationFactorError,
    NotFoundError,
    ReplicaExhaustedError,
    StorageTransportError,
    UnauthorizedAccessError,
)
from controller.repositories.file_repository import FileRepository
from controller.repositories.key_repository import KeyRepository
from controller.repositories.placement_repository import PlacementRepository, group_placements
from controller.services.download_service import DownloadService
from controller.services.upload_service import UploadService
from controller.types import FileStatus, NodeStatus
from fakes import FakeChunkStoreClient, add_nodes

CHUNK = 1024
PASSWORD = "correct horse battery staple"


@pytest.fixture
def uploader(selector, fake_store, file_locks):
    return UploadService(
        node_selector=selector,
        chunk_client=fake_store,
        file_locks=file_locks,
        chunk_size=CHUNK,
    )


@pytest.fixture
def downloader(registry, fake_store):
    return DownloadService(node_registry=registry, chunk_client=fake_store)


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_empty_file(self, owner, registry, uploader, downloader, fake_store):
        await add_nodes(registry, 3)

        result = await uploader.upload_file(owner, "empty.bin", None, b"", PASSWORD)

        assert result.chunk_count == 0
        assert fake_store.total_blobs() == 0
        assert FileRepository.get_by_id(result.file_id).status == FileStatus.COMPLETE

        downloaded = await downloader.download_file(result.file_id, owner, PASSWORD)
        assert downloaded.data == b""

    @pytest.mark.asyncio
    async def test_exactly_one_chunk(self, owner, registry, uploader, downloader):
        await add_nodes(registry, 3)
        data = os.urandom(CHUNK)

        result = await uploader.upload_file(owner, "one.bin", "application/octet-stream", data, PASSWORD)

        assert result.chunk_count == 1
        assert result.replicas_per_chunk == 3
        assert len(PlacementRepository.get_by_file(result.file_id)) == 3
        assert (await downloader.download_file(result.file_id, owner, PASSWORD)).data == data

    @pytest.mark.asyncio
    async def test_multiple_chunks(self, owner, registry, uploader, downloader):
        await add_nodes(registry, 4)
        data = os.urandom(CHUNK * 2 + 500)

        result = await uploader.upload_file(owner, "multi.bin", None, data, PASSWORD)

        assert result.chunk_count == 3
        downloaded = await downloader.download_file(result.file_id, owner, PASSWORD)
        assert downloaded.data == data
        assert downloaded.file.filename == "multi.bin"

    @pytest.mark.asyncio
    async def test_nodes_store_only_ciphertext(self, owner, registry, uploader, fake_store):
        await add_nodes(registry, 3)
        data = b"plaintext marker " * 10

        await uploader.upload_file(owner, "secret.txt", "text/plain", data, PASSWORD)

        for blobs in fake_store.blobs.values():
            for blob in blobs.values():
                assert b"plaintext marker" not in blob

    @pytest.mark.asyncio
    async def test_key_record_persisted(self, owner, registry, uploader):
        await add_nodes(registry, 3)

        result = await uploader.upload_file(owner, "k.bin", None, b"abc", PASSWORD)

        key = KeyRepository.get_by_file(result.file_id)
        assert len(key.salt) == 16
        assert key.iv == ""
        assert len(key.wrapped_key) == 12 + 32 + 16


class TestUploadPlacement:
    @pytest.mark.asyncio
    async def test_ten_mib_over_five_nodes(self, owner, registry, selector, fake_store, file_locks):
        await add_nodes(registry, 5)
        uploader = UploadService(node_selector=selector, chunk_client=fake_store, file_locks=file_locks)
        data = os.urandom(10 * 1024 * 1024)

        result = await uploader.upload_file(owner, "big.bin", None, data, PASSWORD, replication_factor=3)

        assert result.chunk_count == 3
        placements = PlacementRepository.get_by_file(result.file_id)
        assert len(placements) == 9

        groups = group_placements(placements)
        assert len(groups) == 3
        for replicas in groups.values():
            assert len({p.node_id for p in replicas}) == 3
            assert len({p.blob_id for p in replicas}) == 1
            assert len({p.checksum for p in replicas}) == 1

    @pytest.mark.asyncio
    async def test_consecutive_chunks_rotate_start_node(self, owner, registry, uploader, fake_store):
        nodes = await add_nodes(registry, 3)

        await uploader.upload_file(owner, "r.bin", None, os.urandom(CHUNK * 3), PASSWORD, replication_factor=1)

        assert [len(fake_store.blobs_on(n)) for n in nodes] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_falls_back_to_all_up_nodes(self, owner, registry, uploader):
        await add_nodes(registry, 2)

        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD, replication_factor=3)

        assert result.replicas_per_chunk == 2
        assert FileRepository.get_by_id(result.file_id).replication_factor == 3

    @pytest.mark.asyncio
    async def test_no_up_nodes(self, owner, registry, uploader):
        await add_nodes(registry, 2, status=NodeStatus.DOWN)

        with pytest.raises(InsufficientNodesError):
            await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)

        assert FileRepository.list_by_owner(owner) == []

    @pytest.mark.asyncio
    async def test_partial_replica_failure_is_tolerated(self, owner, registry, uploader, fake_store):
        nodes = await add_nodes(registry, 3)
        fake_store.take_offline(nodes[0])

        result = await uploader.upload_file(owner, "p.bin", None, os.urandom(CHUNK + 1), PASSWORD)

        assert result.replicas_per_chunk == 2
        assert all(p.node_id != "node-1" for p in PlacementRepository.get_by_file(result.file_id))

    @pytest.mark.asyncio
    async def test_all_replicas_failing_rolls_back(self, owner, registry, selector, file_locks):
        await add_nodes(registry, 3)

        class FailsOnSecondChunk(FakeChunkStoreClient):
            async def put_chunk(self, host, port, blob_id, data):
                if self.put_calls >= 3:
                    self.put_calls += 1
                    raise StorageTransportError("disk full")
                return await super().put_chunk(host, port, blob_id, data)

        store = FailsOnSecondChunk()
        uploader = UploadService(node_selector=selector, chunk_client=store, file_locks=file_locks, chunk_size=CHUNK)

        with pytest.raises(StorageTransportError):
            await uploader.upload_file(owner, "x.bin", None, os.urandom(CHUNK * 2), PASSWORD)

        assert store.total_blobs() == 0
        assert FileRepository.list_by_owner(owner) == []
        assert PlacementRepository.get_all() == []
        assert file_locks.active_count() == 0

    @pytest.mark.asyncio
    async def test_validation(self, owner, registry, uploader):
        await add_nodes(registry, 3)

        with pytest.raises(InvalidReplicationFactorError):
            await uploader.upload_file(owner, "f.bin", None, b"x", PASSWORD, replication_factor=0)
        with pytest.raises(NotFoundError):
            await uploader.upload_file("nobody", "f.bin", None, b"x", PASSWORD)

    @pytest.mark.asyncio
    async def test_cancelled_upload_stays_uploading(self, owner, registry, selector, file_locks):
        await add_nodes(registry, 3)
        started = asyncio.Event()

        class BlockingStore(FakeChunkStoreClient):
            async def put_chunk(self, host, port, blob_id, data):
                started.set()
                await asyncio.sleep(3600)

        uploader = UploadService(node_selector=selector, chunk_client=BlockingStore(), file_locks=file_locks)
        task = asyncio.create_task(uploader.upload_file(owner, "c.bin", None, b"data", PASSWORD))
        await asyncio.wait_for(started.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        with_rows = FileRepository.list_by_status(FileStatus.UPLOADING)
        assert [f.filename for f in with_rows] == ["c.bin"]
        assert FileRepository.list_by_owner(owner, statuses=[FileStatus.COMPLETE, FileStatus.DEGRADED]) == []
        assert file_locks.active_count() == 0


class TestDownload:
    @pytest.mark.asyncio
    async def test_wrong_password(self, owner, registry, uploader, downloader):
        await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)

        with pytest.raises(InvalidPasswordError) as exc_info:
            await downloader.download_file(result.file_id, owner, "wrong password")

        assert isinstance(exc_info.value, UnauthorizedAccessError)
        assert str(exc_info.value) == "Invalid password"

    @pytest.mark.asyncio
    async def test_other_user_is_rejected(self, owner, other_user, registry, uploader, downloader):
        await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)

        with pytest.raises(UnauthorizedAccessError):
            await downloader.download_file(result.file_id, other_user, PASSWORD)

    @pytest.mark.asyncio
    async def test_missing_file(self, owner, downloader):
        with pytest.raises(NotFoundError):
            await downloader.download_file("no-such-file", owner, PASSWORD)

    @pytest.mark.asyncio
    async def test_survives_losing_all_but_one_replica(self, owner, registry, uploader, downloader, fake_store):
        nodes = await add_nodes(registry, 3)
        data = os.urandom(CHUNK * 2)
        result = await uploader.upload_file(owner, "f.bin", None, data, PASSWORD)

        fake_store.take_offline(nodes[0])
        fake_store.take_offline(nodes[2])

        assert (await downloader.download_file(result.file_id, owner, PASSWORD)).data == data

    @pytest.mark.asyncio
    async def test_up_replicas_are_tried_first(self, owner, registry, uploader, downloader, fake_store):
        nodes = await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)

        await registry.update_status("node-1", NodeStatus.DOWN)
        await registry.update_status("node-2", NodeStatus.DOWN)
        fake_store.take_offline(nodes[0])
        fake_store.take_offline(nodes[1])
        fake_store.get_calls = 0

        assert (await downloader.download_file(result.file_id, owner, PASSWORD)).data == b"data"
        assert fake_store.get_calls == 1

    @pytest.mark.asyncio
    async def test_corrupted_replica_falls_back(self, owner, registry, uploader, downloader, fake_store):
        nodes = await add_nodes(registry, 2)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD, replication_factor=2)

        for node in nodes[:1]:
            blobs = fake_store.blobs_on(node)
            for blob_id, blob in blobs.items():
                blobs[blob_id] = blob[:-1] + bytes([blob[-1] ^ 0xFF])

        assert (await downloader.download_file(result.file_id, owner, PASSWORD)).data == b"data"

    @pytest.mark.asyncio
    async def test_all_replicas_lost(self, owner, registry, uploader, downloader, fake_store):
        nodes = await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, os.urandom(CHUNK + 10), PASSWORD)

        for node in nodes:
            fake_store.take_offline(node)

        with pytest.raises(ReplicaExhaustedError) as exc_info:
            await downloader.download_file(result.file_id, owner, PASSWORD)
        assert exc_info.value.chunk_index == 0
        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_degraded_file_is_downloadable(self, owner, registry, uploader, downloader):
        await add_nodes(registry, 3)
        result = await uploader.upload_file(owner, "f.bin", None, b"data", PASSWORD)
        FileRepository.update_status(result.file_id, FileStatus.DEGRADED, FileRepository.get_by_id(result.file_id).updated_at)

        assert (await downloader.download_file(result.file_id, owner, PASSWORD)).data == b"data"
