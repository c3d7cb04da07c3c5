# ingestion/errors.py
from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    pass


class RpcError(IngestionError):
    """Transport, HTTP or JSON-RPC level failure. Always treated as transient."""


class BlockNotAvailable(RpcError):
    """The requested block is above the current chain head."""

    def __init__(self, block_number: int):
        super().__init__(f"block {block_number} is not available yet")
        self.block_number = block_number


class DecodeError(IngestionError):
    """A log with a recognized signature could not be decoded."""


class WriteError(IngestionError):
    def __init__(self, block_number: int, cause: Exception):
        super().__init__(f"failed to persist block {block_number}: {cause}")
        self.block_number = block_number
        self.cause = cause


class CheckpointError(IngestionError):
    pass


class RangeAbortedError(IngestionError):
    def __init__(self, failed_block: int, succeeded: int, cause: Exception):
        super().__init__(
            f"range aborted at block {failed_block} after {succeeded} blocks: {cause}"
        )
        self.failed_block = failed_block
        self.succeeded = succeeded
        self.cause = cause


class FatalIngestionError(IngestionError):
    def __init__(self, block_number: int, cause: Optional[Exception]):
        super().__init__(f"ingestion stopped at block {block_number}: {cause}")
        self.block_number = block_number
        self.cause = cause


class StorageError(IngestionError):
    """The store could not be opened or its schema created."""
