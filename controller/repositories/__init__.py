"""Repository layer for data access."""

from controller.repositories.user_repository import UserRepository
from controller.repositories.file_repository import FileRepository
from controller.repositories.key_repository import KeyRepository
from controller.repositories.placement_repository import PlacementRepository

__all__ = [
    "UserRepository",
    "FileRepository",
    "KeyRepository",
    "PlacementRepository",
]
