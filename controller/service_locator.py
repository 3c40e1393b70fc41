"""Service locator for the shared controller components."""

from typing import Optional, TYPE_CHECKING

from controller.chunk_store_client import ChunkStoreClient
from controller.file_locks import FileLockRegistry
from controller.node_health import NodeHealthMonitor
from controller.node_registry import NodeRegistry
from controller.node_selector import NodeSelector

if TYPE_CHECKING:
    from controller.chunk_repair import ChunkRepairService

_node_registry: Optional[NodeRegistry] = None
_node_selector: Optional[NodeSelector] = None
_health_monitor: Optional[NodeHealthMonitor] = None
_chunk_client: Optional[ChunkStoreClient] = None
_file_locks: Optional[FileLockRegistry] = None
_repair_service: Optional['ChunkRepairService'] = None


def set_node_registry(registry: NodeRegistry):
    """Set global node registry instance"""
    global _node_registry
    _node_registry = registry


def get_node_registry() -> Optional[NodeRegistry]:
    """Get global node registry instance"""
    return _node_registry


def set_node_selector(selector: NodeSelector):
    """Set global node selector instance"""
    global _node_selector
    _node_selector = selector


def get_node_selector() -> Optional[NodeSelector]:
    """Get global node selector instance"""
    return _node_selector


def set_health_monitor(monitor: NodeHealthMonitor):
    """Set global health monitor instance"""
    global _health_monitor
    _health_monitor = monitor


def get_health_monitor() -> Optional[NodeHealthMonitor]:
    """Get global health monitor instance"""
    return _health_monitor


def set_chunk_client(client: ChunkStoreClient):
    """Set global chunk store client instance"""
    global _chunk_client
    _chunk_client = client


def get_chunk_client() -> Optional[ChunkStoreClient]:
    """Get global chunk store client instance"""
    return _chunk_client


def set_file_locks(locks: FileLockRegistry):
    """Set global per-file lock registry"""
    global _file_locks
    _file_locks = locks


def get_file_locks() -> Optional[FileLockRegistry]:
    """Get global per-file lock registry"""
    return _file_locks


def set_repair_service(service: 'ChunkRepairService'):
    """Set global repair service instance"""
    global _repair_service
    _repair_service = service


def get_repair_service() -> Optional['ChunkRepairService']:
    """Get global repair service instance"""
    return _repair_service
