"""HTTP client for the storage node chunk API."""

import asyncio
from typing import Optional

import aiohttp

from common.logging_config import get_logger
from common.protocol import ChunkUploadResponse, NodeHealthResponse
from controller.config import NODE_CONNECT_TIMEOUT, NODE_READ_TIMEOUT
from controller.exceptions import StorageTransportError

logger = get_logger(__name__)


class ChunkStoreClient:
    """
    aiohttp client for put/get/delete/health against storage nodes.

    The client performs no retries; callers decide the fallback policy.
    Every call is bounded by a connect and a read timeout.
    """

    def __init__(
        self,
        connect_timeout: float = NODE_CONNECT_TIMEOUT,
        read_timeout: float = NODE_READ_TIMEOUT
    ):
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=connect_timeout,
            sock_read=read_timeout
        )

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Create the pooled HTTP session on first use."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self):
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def _chunk_url(host: str, port: int, blob_id: str) -> str:
        return f"http://{host}:{port}/chunks/{blob_id}"

    async def put_chunk(self, host: str, port: int, blob_id: str, data: bytes) -> ChunkUploadResponse:
        """
        Store an encrypted blob on a node, overwriting any existing blob with that id.

        Raises:
            StorageTransportError: On transport failure or non-2xx response
        """
        session = self._ensure_session()
        url = self._chunk_url(host, port, blob_id)

        try:
            async with session.put(
                url,
                data=data,
                headers={"Content-Type": "application/octet-stream"}
            ) as resp:
                if resp.status // 100 != 2:
                    body = await resp.text()
                    raise StorageTransportError(
                        f"PUT {url} returned {resp.status}: {body[:200]}",
                        status_code=resp.status
                    )
                payload = await resp.json(content_type=None)
        except StorageTransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise StorageTransportError(f"PUT {url} failed: {e!r}") from e

        logger.debug(f"Stored blob {blob_id} ({len(data)} bytes) on {host}:{port}")
        try:
            return ChunkUploadResponse.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            return ChunkUploadResponse(blob_id=blob_id, node_id="", size=len(data))

    async def get_chunk(self, host: str, port: int, blob_id: str) -> bytes:
        """
        Fetch an encrypted blob from a node.

        Raises:
            StorageTransportError: On transport failure, non-2xx response or empty body
        """
        session = self._ensure_session()
        url = self._chunk_url(host, port, blob_id)

        try:
            async with session.get(url) as resp:
                if resp.status // 100 != 2:
                    raise StorageTransportError(
                        f"GET {url} returned {resp.status}",
                        status_code=resp.status
                    )
                data = await resp.read()
        except StorageTransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StorageTransportError(f"GET {url} failed: {e!r}") from e

        if not data:
            raise StorageTransportError(f"GET {url} returned an empty body")

        logger.debug(f"Fetched blob {blob_id} ({len(data)} bytes) from {host}:{port}")
        return data

    async def delete_chunk(self, host: str, port: int, blob_id: str) -> bool:
        """
        Best-effort blob deletion. Failures are logged, never raised.

        Returns:
            True if the node acknowledged the deletion
        """
        session = self._ensure_session()
        url = self._chunk_url(host, port, blob_id)

        try:
            async with session.delete(url) as resp:
                if resp.status // 100 == 2:
                    logger.debug(f"Deleted blob {blob_id} from {host}:{port}")
                    return True
                logger.warning(f"DELETE {url} returned {resp.status}")
                return False
        except Exception as e:
            logger.warning(f"Failed to delete blob {blob_id} from {host}:{port}: {e!r}")
            return False

    async def health_probe(self, host: str, port: int) -> bool:
        """
        Lightweight reachability check. Any failure counts as unhealthy.
        """
        session = self._ensure_session()
        url = f"http://{host}:{port}/chunks/health"

        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    logger.debug(f"Health probe {url} returned {resp.status}")
                    return False
                payload = await resp.json(content_type=None)
                return NodeHealthResponse.from_dict(payload).is_up
        except Exception as e:
            logger.debug(f"Health probe {url} failed: {e!r}")
            return False
