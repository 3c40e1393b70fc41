"""Entry point for the storage node service.
Serves encrypted blobs over HTTP for the controller.
"""

import asyncio
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from common.protocol import ChunkUploadResponse, NodeHealthResponse
from storagenode import chunk_storage
from storagenode.chunk_storage import InvalidBlobIdError
from storagenode.config import STORAGE_NODE_HOST, STORAGE_NODE_ID, STORAGE_NODE_PORT

logger = setup_logging('storagenode')

app = FastAPI(
    title="ShardVault Storage Node",
    description="Opaque encrypted blob store",
    version="1.0.0"
)


@app.on_event("startup")
async def startup_event():
    chunk_storage.ensure_blobs_directory()
    logger.info(
        f"Storage node {STORAGE_NODE_ID} serving {len(chunk_storage.list_all_blobs())} blobs "
        f"from {chunk_storage.BLOBS_DIR}"
    )


@app.exception_handler(InvalidBlobIdError)
async def invalid_blob_id_handler(request: Request, exc: InvalidBlobIdError):
    logger.warning(f"Rejected request for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "code": "INVALID_BLOB_ID"}
    )


@app.get("/chunks/health")
async def health():
    """Liveness probe used by the controller's health monitor."""
    return NodeHealthResponse(
        node_id=STORAGE_NODE_ID,
        status="UP",
        total_chunks=len(chunk_storage.list_all_blobs()),
        data_dir=str(chunk_storage.BLOBS_DIR),
        timestamp=datetime.now(timezone.utc).isoformat(),
    ).to_dict()


@app.put("/chunks/{blob_id}")
async def put_chunk(blob_id: str, request: Request):
    chunk_storage.validate_blob_id(blob_id)
    data = await request.body()

    loop = asyncio.get_running_loop()
    size = await loop.run_in_executor(None, chunk_storage.write_blob, blob_id, data)

    logger.info(f"Stored blob {blob_id} ({size} bytes)")
    return ChunkUploadResponse(blob_id=blob_id, node_id=STORAGE_NODE_ID, size=size).to_dict()


@app.get("/chunks/{blob_id}")
async def get_chunk(blob_id: str):
    loop = asyncio.get_running_loop()
    try:
        data = await loop.run_in_executor(None, chunk_storage.read_blob, blob_id)
    except FileNotFoundError:
        logger.debug(f"Blob {blob_id} not found")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": f"Blob {blob_id} not found", "code": "BLOB_NOT_FOUND"}
        )

    return Response(content=data, media_type="application/octet-stream")


@app.delete("/chunks/{blob_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chunk(blob_id: str):
    if chunk_storage.delete_blob(blob_id):
        logger.info(f"Deleted blob {blob_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def main() -> None:
    """
    Start the storage node with uvicorn.
    """
    uvicorn.run(app, host=STORAGE_NODE_HOST, port=STORAGE_NODE_PORT)


if __name__ == "__main__":
    main()
