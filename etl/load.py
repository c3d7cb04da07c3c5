# etl/load.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from etl.pool_events import DecodedBlock, EventKind, PoolEvent
from ingestion.errors import WriteError
from storage.base import StorageManager
from storage.schema import NUMERIC_COLUMNS, event_column_names

logger = logging.getLogger(__name__)

BLOCK_COLUMNS = ["block_number", "block_timestamp"]
TX_COLUMNS = ["transaction_hash", "block_number", "transaction_index", "transaction_sender"]


@dataclass
class WriteResult:
    """Rows actually inserted per table. All zero when a block is replayed."""
    block_number: int
    blocks: int = 0
    transactions: int = 0
    events: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.blocks + self.transactions + sum(self.events.values())


class PersistenceWriter:
    """
    Writes one decoded block in a single store transaction:
    block row, then its transactions, then its events. Every insert ignores
    existing primary keys, so a replay of the same block is a no-op.
    """

    def __init__(self, storage: StorageManager):
        self.storage = storage

    def write(self, block: DecodedBlock) -> WriteResult:
        result = WriteResult(block_number=block.block_number)
        try:
            with self.storage.transaction() as cur:
                result.blocks = self._insert_block(cur, block)
                result.transactions = self._insert_transactions(cur, block)
                result.events = self._insert_events(cur, block)
        except self.storage.db_errors as e:
            raise WriteError(block.block_number, e) from e
        logger.debug(
            "block %s committed: %d block, %d tx, %d event rows",
            block.block_number, result.blocks, result.transactions, sum(result.events.values()),
        )
        return result

    def _insert_block(self, cur, block: DecodedBlock) -> int:
        row = (block.header.block_number, block.header.block_timestamp)
        return self.storage.insert_ignore(cur, "blocks", BLOCK_COLUMNS, [row])

    def _insert_transactions(self, cur, block: DecodedBlock) -> int:
        rows = [
            (tx.transaction_hash, tx.block_number, tx.transaction_index, tx.transaction_sender)
            for tx in sorted(block.transactions, key=lambda t: t.transaction_index)
        ]
        return self.storage.insert_ignore(cur, "transactions", TX_COLUMNS, rows)

    def _insert_events(self, cur, block: DecodedBlock) -> Dict[str, int]:
        by_kind: Dict[EventKind, List[PoolEvent]] = {kind: [] for kind in EventKind}
        for ev in block.events:
            by_kind[ev.kind].append(ev)

        counts = {}
        for kind, events in by_kind.items():
            table = kind.value
            columns = event_column_names(table)
            rows = [self._event_row(ev, columns) for ev in sorted(events, key=lambda e: e.log_index)]
            counts[table] = self.storage.insert_ignore(cur, table, columns, rows)
        return counts

    def _event_row(self, ev: PoolEvent, columns: List[str]) -> List[Any]:
        row = []
        for col in columns:
            v = getattr(ev, col)
            row.append(self.storage.to_db_numeric(v) if col in NUMERIC_COLUMNS else v)
        return row


__all__ = ["PersistenceWriter", "WriteResult", "BLOCK_COLUMNS", "TX_COLUMNS"]
