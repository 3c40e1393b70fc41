"""Administrative API routes: nodes, chunk maps and repair."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from controller.auth import get_current_user
from controller.exceptions import DFSException
from controller.schemas.common import ErrorResponse
from controller.schemas.files import ChunkMapResponse
from controller.schemas.nodes import (
    ListNodesResponse,
    RegisterNodeRequest,
    RepairReportResponse,
    StorageNodeResponse,
)
from controller.service_locator import get_repair_service
from controller.services.file_service import FileService
from controller.services.node_service import NodeService
from controller.types import StorageNode

router = APIRouter(prefix="/admin", tags=["Admin"])


def to_node_response(node: StorageNode) -> StorageNodeResponse:
    return StorageNodeResponse(
        id=node.node_id,
        host=node.host,
        port=node.port,
        status=node.status.value,
        last_heartbeat=node.last_heartbeat.isoformat() if node.last_heartbeat else None,
    )


@router.get("/files/{file_id}/chunks", response_model=ChunkMapResponse)
async def get_chunk_map(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Per chunk replica layout of a file, with live node status.
    """
    file_service = FileService()

    return await file_service.get_chunk_map(file_id)


@router.get("/nodes", response_model=ListNodesResponse)
async def list_nodes(current_user: str = Depends(get_current_user)):
    node_service = NodeService()

    nodes = await node_service.list_nodes()

    return ListNodesResponse(nodes=[to_node_response(n) for n in nodes])


@router.post(
    "/nodes",
    response_model=StorageNodeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def register_node(
    request: RegisterNodeRequest,
    current_user: str = Depends(get_current_user)
):
    """
    Register a storage node. It starts UNKNOWN and is probed immediately.

    Raises:
        - 409: A node with this id already exists
    """
    node_service = NodeService()

    node = await node_service.register_node(request.id, request.host, request.port)

    return to_node_response(node)


@router.post("/repair", response_model=RepairReportResponse)
async def trigger_repair(current_user: str = Depends(get_current_user)):
    """
    Run one replication repair cycle now and report what it did.
    """
    repair_service = get_repair_service()
    if repair_service is None:
        raise DFSException("Repair service is not running")

    report = await repair_service.run_cycle()

    return RepairReportResponse(**asdict(report))
