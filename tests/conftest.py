from typing import Dict, List, Sequence, Union

import pytest
from eth_abi import encode

from etl.load import PersistenceWriter
from etl.pipeline import IngestionOrchestrator, RetryConfig
from etl.pool_events import LAYOUTS, EventKind, topic0_of
from ingestion.errors import BlockNotAvailable
from ingestion.models import BlockHeader, FetchedBlock, FetchedTransaction, RawLog
from storage.sqlite_backend import SQLiteStorage

POOL = bytes.fromhex("11" * 20)
OTHER_CONTRACT = bytes.fromhex("99" * 20)
SENDER = bytes.fromhex("aa" * 20)


def tx_hash(n: int) -> bytes:
    return n.to_bytes(32, "big")


def addr(n: int) -> bytes:
    return n.to_bytes(20, "big")


def _as_abi(abi_type: str, value):
    if abi_type == "address":
        return "0x" + bytes(value).hex()
    return value


def make_log(kind: EventKind, values: Dict, *, tx: bytes = None, log_index: int = 0,
             address: bytes = POOL) -> RawLog:
    """Build a raw log for a pool event from field values, ABI encoded."""
    layout = LAYOUTS[kind]
    topics = [topic0_of(kind)]
    for name, abi_type in layout.indexed:
        topics.append(encode([abi_type], [_as_abi(abi_type, values[name])]))
    data = encode([t for _, t in layout.data], [_as_abi(t, values[n]) for n, t in layout.data])
    return RawLog(
        address=address,
        topics=tuple(topics),
        data=data,
        transaction_hash=tx or tx_hash(1),
        log_index=log_index,
    )


SWAP_VALUES = {
    "sender": addr(0xA1),
    "recipient": addr(0xA2),
    "amount0": -(2 ** 255),
    "amount1": 2 ** 255 - 1,
    "sqrt_price_x96": 2 ** 160 - 1,
    "liquidity": 2 ** 128 - 1,
    "tick": -887272,
}


def swap_log(**kw) -> RawLog:
    return make_log(EventKind.SWAP, SWAP_VALUES, **kw)


def unrelated_log(**kw) -> RawLog:
    # ERC-20 Transfer: not a pool event
    transfer = bytes.fromhex("ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef")
    return RawLog(
        address=kw.get("address", OTHER_CONTRACT),
        topics=(transfer, bytes(12) + addr(1), bytes(12) + addr(2)),
        data=(1000).to_bytes(32, "big"),
        transaction_hash=kw.get("tx", tx_hash(2)),
        log_index=kw.get("log_index", 1),
    )


def make_block(number: int, txs: Sequence[FetchedTransaction] = (), timestamp: int = None) -> FetchedBlock:
    ts = timestamp if timestamp is not None else 1_700_000_000 + number * 12
    return FetchedBlock(BlockHeader(number, ts), list(txs))


def block_with_swap(number: int) -> FetchedBlock:
    h = tx_hash(number)
    tx = FetchedTransaction(h, 0, SENDER, [swap_log(tx=h, log_index=0)])
    return make_block(number, [tx])


Scripted = Union[FetchedBlock, Exception]


class FakeFetcher:
    """
    Serves blocks from memory. A block may be scripted with a list of outcomes that are
    consumed one per fetch; exceptions in the list are raised. Unknown blocks are not available.
    """

    def __init__(self, blocks: Dict[int, Union[Scripted, List[Scripted]]] = None):
        self.blocks = dict(blocks or {})
        self.calls: List[int] = []

    def fetch(self, block_number: int) -> FetchedBlock:
        self.calls.append(block_number)
        entry = self.blocks.get(block_number)
        if entry is None:
            raise BlockNotAvailable(block_number)
        if isinstance(entry, list):
            item = entry.pop(0) if len(entry) > 1 else entry[0]
        else:
            item = entry
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    def __init__(self, on_sleep=None):
        self.delays: List[float] = []
        self.on_sleep = on_sleep

    def __call__(self, seconds: float):
        self.delays.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))


@pytest.fixture
def storage(tmp_path):
    st = SQLiteStorage(str(tmp_path / "pool_events.db"))
    st.setup()
    yield st
    st.close()


@pytest.fixture
def make_orchestrator(storage):
    def _make(fetcher, **kw):
        kw.setdefault("retry", RetryConfig(max_attempts=3, initial_backoff=0.1, max_backoff=1.0))
        kw.setdefault("sleep", RecordingSleep())
        return IngestionOrchestrator(fetcher, PersistenceWriter(storage), **kw)
    return _make
