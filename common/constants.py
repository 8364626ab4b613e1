"""Project-wide constants (key layout, chunk size, default ports)."""

DEFAULT_ROOT: str = "/cdn"
FILES_KEY: str = "files"
KEY_SEPARATOR: str = "/"
METADATA_FILENAME: str = "metadata"

DEFAULT_CHUNK_SIZE: int = 1_048_576  # 1 MiB default chunk size

DEFAULT_CHUNKS_DIR: str = "/app/data/chunks"

BROKER_PORT: int = 7447
BROKER_SERVICE_NAME: str = "broker.KeySpaceService"
QUERY_TIMEOUT_SECONDS: float = 30.0

CHECKSUM_PIECE_SIZE_BYTES: int = 64 * 1024

GRPC_KEEPALIVE_TIME_MS: int = 30_000
GRPC_KEEPALIVE_TIMEOUT_MS: int = 10_000
GRPC_MAX_MESSAGE_BYTES: int = 16 * 1024 * 1024
# Room left in each gRPC message for the JSON envelope and the key.
GRPC_ENVELOPE_RESERVE_BYTES: int = 64 * 1024
