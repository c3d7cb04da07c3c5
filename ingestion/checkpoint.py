from typing import Optional

from ingestion.errors import CheckpointError


class Checkpoint:
    """
    Resume point derived from persisted block rows. There is no cursor file:
    the highest stored block number is the watermark.
    """

    def __init__(self, storage, start_block: int = 0):
        self.storage = storage
        self.start_block = start_block

    def get_last(self) -> Optional[int]:
        """Return the last ingested block number, or None if the store is empty."""
        try:
            return self.storage.max_block_number()
        except self.storage.db_errors as e:
            raise CheckpointError(f"Failed to read watermark: {e}") from e

    def next_block(self) -> int:
        last = self.get_last()
        if last is None:
            return self.start_block
        return last + 1
