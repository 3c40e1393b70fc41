"""Entry point for the Controller service."""

import uvicorn
import time
import uuid
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from controller.config import CONTROLLER_HOST, CONTROLLER_PORT, STORAGE_NODES
from controller.database import init_database, get_db_connection
from controller.routes.auth_routes import router as auth_router
from controller.routes.file_routes import router as file_router
from controller.routes.admin_routes import router as admin_router
from controller.chunk_store_client import ChunkStoreClient
from controller.chunk_repair import ChunkRepairService
from controller.cleanup_task import StaleUploadCleaner
from controller.file_locks import FileLockRegistry
from controller.node_health import NodeHealthMonitor
from controller.node_registry import NodeRegistry
from controller.node_selector import NodeSelector
from controller.services.file_service import FileService
from controller.service_locator import (
    set_chunk_client,
    set_file_locks,
    set_health_monitor,
    set_node_registry,
    set_node_selector,
    set_repair_service,
)
from controller.exceptions import (
    DFSException,
    NotFoundError,
    UnauthorizedAccessError,
    InvalidPasswordError,
    ConflictError,
    InvalidCredentialsError,
    InvalidAPIKeyError,
    InsufficientNodesError,
    StorageTransportError,
    ReplicaExhaustedError,
    InvalidReplicationFactorError,
)

logger = setup_logging('controller')

app = FastAPI(
    title="ShardVault Controller",
    description="Encrypted, replicated chunk storage controller",
    version="1.0.0"
)

chunk_client = None
node_registry = None
health_monitor = None
repair_service = None
cleanup_task = None


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time
    user_id = getattr(request.state, 'user_id', None)

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s "
        f"[request_id={request_id}] [user_id={user_id or 'anonymous'}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Initialize database, register configured storage nodes and start background tasks.
    """
    global chunk_client, node_registry, health_monitor, repair_service, cleanup_task

    logger.info("Controller service starting up...")

    init_database()
    logger.info("Database initialized")

    chunk_client = ChunkStoreClient()
    node_registry = NodeRegistry()
    file_locks = FileLockRegistry()
    health_monitor = NodeHealthMonitor(node_registry=node_registry, chunk_client=chunk_client)
    repair_service = ChunkRepairService(
        node_registry=node_registry,
        chunk_client=chunk_client,
        file_locks=file_locks
    )

    set_chunk_client(chunk_client)
    set_node_registry(node_registry)
    set_node_selector(NodeSelector(node_registry))
    set_file_locks(file_locks)
    set_health_monitor(health_monitor)
    set_repair_service(repair_service)

    cleanup_task = StaleUploadCleaner(
        FileService(node_registry=node_registry, chunk_client=chunk_client, file_locks=file_locks)
    )

    await node_registry.load_from_database()
    if STORAGE_NODES:
        logger.info(f"Probing {len(STORAGE_NODES)} configured storage nodes")
        await health_monitor.register_configured_nodes(STORAGE_NODES)

    await health_monitor.start()
    await repair_service.start()
    await cleanup_task.start()
    logger.info("Background tasks started")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup resources on application shutdown.
    """
    logger.info("Controller service shutting down...")

    if health_monitor:
        await health_monitor.stop()

    if repair_service:
        await repair_service.stop()

    if cleanup_task:
        await cleanup_task.stop()

    if chunk_client:
        await chunk_client.close()
        logger.info("Chunk store client closed")


def _error_response(request: Request, exc: Exception, status_code: int, code: str, level: str = "warning"):
    request_id = getattr(request.state, 'request_id', 'unknown')
    user_id = getattr(request.state, 'user_id', 'unknown')
    message = f"{type(exc).__name__}: {exc} [request_id={request_id}] [user_id={user_id}] path={request.url.path}"
    if level == "error":
        logger.error(message, exc_info=True)
    else:
        logger.warning(message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code}
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "NOT_FOUND")


@app.exception_handler(InvalidPasswordError)
async def invalid_password_handler(request: Request, exc: InvalidPasswordError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "INVALID_PASSWORD")


@app.exception_handler(UnauthorizedAccessError)
async def unauthorized_access_handler(request: Request, exc: UnauthorizedAccessError):
    return _error_response(request, exc, status.HTTP_403_FORBIDDEN, "UNAUTHORIZED_ACCESS")


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return _error_response(request, exc, status.HTTP_409_CONFLICT, "CONFLICT")


@app.exception_handler(InvalidCredentialsError)
async def invalid_credentials_handler(request: Request, exc: InvalidCredentialsError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS")


@app.exception_handler(InvalidAPIKeyError)
async def invalid_api_key_handler(request: Request, exc: InvalidAPIKeyError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY")


@app.exception_handler(InvalidReplicationFactorError)
async def invalid_replication_factor_handler(request: Request, exc: InvalidReplicationFactorError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_REPLICATION_FACTOR")


@app.exception_handler(InsufficientNodesError)
async def insufficient_nodes_handler(request: Request, exc: InsufficientNodesError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "INSUFFICIENT_NODES", "error")


@app.exception_handler(StorageTransportError)
async def storage_transport_handler(request: Request, exc: StorageTransportError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "STORAGE_UNAVAILABLE", "error")


@app.exception_handler(ReplicaExhaustedError)
async def replica_exhausted_handler(request: Request, exc: ReplicaExhaustedError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "REPLICAS_EXHAUSTED", "error")


@app.exception_handler(DFSException)
async def dfs_exception_handler(request: Request, exc: DFSException):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "error")


app.include_router(auth_router)
app.include_router(file_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "ShardVault Controller API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for Docker healthcheck.
    Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "controller"}


@app.get("/ready")
async def ready_check():
    """
    Readiness check endpoint.
    Ready when the database answers and at least one storage node is UP.
    """
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1")
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    up_nodes = 0
    if node_registry is not None and db_status == "ok":
        up_nodes = len(await node_registry.get_up_nodes())

    ready = db_status == "ok" and up_nodes > 0
    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "database": db_status,
            "storage_nodes_up": up_nodes
        }
    )


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "controller.main:app",
        host=CONTROLLER_HOST,
        port=CONTROLLER_PORT,
    )


if __name__ == "__main__":
    main()
