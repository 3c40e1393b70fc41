"""Project-wide constants shared by the controller and storage nodes."""

CHUNK_SIZE_BYTES: int = 4 * 1024 * 1024  # 4 MiB plaintext chunk size

DEFAULT_REPLICATION_FACTOR: int = 3

STORAGE_NODE_PORT: int = 9000
CONTROLLER_PORT: int = 8000

NODE_CONNECT_TIMEOUT_SECONDS: float = 2.0
NODE_READ_TIMEOUT_SECONDS: float = 10.0

HEALTH_CHECK_INTERVAL_SECONDS: int = 10
REPAIR_INTERVAL_SECONDS: int = 30

PBKDF2_ITERATIONS: int = 100_000
MIN_PBKDF2_ITERATIONS: int = 100_000

NONCE_SIZE_BYTES: int = 12
TAG_SIZE_BYTES: int = 16
KEY_SIZE_BYTES: int = 32
SALT_SIZE_BYTES: int = 16

BLOB_FILE_SUFFIX: str = ".enc"
DEFAULT_BLOB_STORAGE_PATH: str = "./data/chunks"
