# ingestion/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass(frozen=True)
class BlockHeader:
    block_number: int
    block_timestamp: int


@dataclass(frozen=True)
class RawLog:
    """One emitted log with its provenance. Hashes, addresses and data are raw bytes."""
    address: bytes
    topics: Tuple[bytes, ...]
    data: bytes
    transaction_hash: bytes
    log_index: int


@dataclass(frozen=True)
class FetchedTransaction:
    transaction_hash: bytes
    transaction_index: int
    sender: bytes
    logs: List[RawLog] = field(default_factory=list)


@dataclass(frozen=True)
class FetchedBlock:
    header: BlockHeader
    transactions: List[FetchedTransaction] = field(default_factory=list)

    @property
    def block_number(self) -> int:
        return self.header.block_number

    def log_count(self) -> int:
        return sum(len(tx.logs) for tx in self.transactions)
