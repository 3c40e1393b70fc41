"""Custom exception classes for the Controller."""

from typing import Optional


class DFSException(Exception):
    """
    Base exception class for all storage-cluster errors.
    """
    pass


class NotFoundError(DFSException):
    """
    Raised when a file, chunk, key, user or node does not exist.
    """
    pass


class UnauthorizedAccessError(DFSException):
    """
    Raised when a user attempts to access a file they don't own.
    """
    pass


class InvalidPasswordError(UnauthorizedAccessError):
    """
    Raised when the supplied password cannot unwrap a file's data key.
    """
    pass


class ConflictError(DFSException):
    """
    Raised when a registration collides with an existing record.
    """
    pass


class UserAlreadyExistsError(ConflictError):
    """
    Raised when attempting to register a username that already exists.
    """
    pass


class InvalidCredentialsError(DFSException):
    """
    Raised when login credentials are invalid.
    """
    pass


class InvalidAPIKeyError(DFSException):
    """
    Raised when an API Key is invalid or expired.
    """
    pass


class InsufficientNodesError(DFSException):
    """
    Raised when fewer healthy storage nodes exist than a placement requires.
    """

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class StorageTransportError(DFSException):
    """
    Raised when a storage node cannot be reached or answers with an error.
    """

    def __init__(self, message: str, node_id: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.node_id = node_id
        self.status_code = status_code


class ReplicaExhaustedError(DFSException):
    """
    Raised when no replica of a chunk index could be retrieved and decrypted.
    """

    def __init__(self, chunk_index: int, attempts: int = 0):
        super().__init__(
            f"All {attempts} replica(s) failed for chunk {chunk_index}"
        )
        self.chunk_index = chunk_index
        self.attempts = attempts


class DecryptionError(DFSException):
    """
    Raised when authenticated decryption fails (wrong key or corrupted data).
    """
    pass


class InvalidReplicationFactorError(DFSException):
    """
    Raised when a requested replication factor is not a positive integer.
    """
    pass
