"""Configuration settings for a storage node."""

import os
import socket

from common.constants import DEFAULT_BLOB_STORAGE_PATH, STORAGE_NODE_PORT as DEFAULT_STORAGE_NODE_PORT

STORAGE_NODE_ID = os.getenv("STORAGE_NODE_ID") or socket.gethostname()

STORAGE_NODE_DATA_DIR = os.getenv("STORAGE_NODE_DATA_DIR", DEFAULT_BLOB_STORAGE_PATH)

STORAGE_NODE_HOST = os.getenv("STORAGE_NODE_HOST", "0.0.0.0")

STORAGE_NODE_PORT = int(os.getenv("STORAGE_NODE_PORT", str(DEFAULT_STORAGE_NODE_PORT)))
