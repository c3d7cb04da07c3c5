# etl/pool_events.py
"""
Decoding of concentrated-liquidity pool logs into typed events.

Five event kinds are recognized by topic0 (keccak of the canonical signature).
Any other log decodes to None. A recognized log whose topics or data do not match
the fixed layout raises DecodeError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from common.utils import hex_to_bytes
from ingestion.errors import DecodeError
from ingestion.models import BlockHeader, FetchedBlock, RawLog


class EventKind(str, Enum):
    """Event variant; the value is the table the variant persists to."""
    INITIALIZATION = "initialization_events"
    SWAP = "swap_events"
    MINT = "mint_events"
    BURN = "burn_events"
    COLLECT = "collect_events"


@dataclass(frozen=True)
class InitializationEvent:
    kind: ClassVar[EventKind] = EventKind.INITIALIZATION
    transaction_hash: bytes
    log_index: int
    contract_address: bytes
    creator: bytes
    sqrt_price_x96: int
    tick: int


@dataclass(frozen=True)
class SwapEvent:
    kind: ClassVar[EventKind] = EventKind.SWAP
    transaction_hash: bytes
    log_index: int
    contract_address: bytes
    sender: bytes
    recipient: bytes
    amount0: int
    amount1: int
    sqrt_price_x96: int
    liquidity: int
    tick: int


@dataclass(frozen=True)
class MintEvent:
    kind: ClassVar[EventKind] = EventKind.MINT
    transaction_hash: bytes
    log_index: int
    contract_address: bytes
    sender: bytes
    owner: bytes
    tick_lower: int
    tick_upper: int
    amount: int
    amount0: int
    amount1: int


@dataclass(frozen=True)
class BurnEvent:
    kind: ClassVar[EventKind] = EventKind.BURN
    transaction_hash: bytes
    log_index: int
    contract_address: bytes
    owner: bytes
    tick_lower: int
    tick_upper: int
    amount: int
    amount0: int
    amount1: int


@dataclass(frozen=True)
class CollectEvent:
    kind: ClassVar[EventKind] = EventKind.COLLECT
    transaction_hash: bytes
    log_index: int
    contract_address: bytes
    owner: bytes
    recipient: bytes
    tick_lower: int
    tick_upper: int
    amount0: int
    amount1: int


PoolEvent = Union[InitializationEvent, SwapEvent, MintEvent, BurnEvent, CollectEvent]

Fields = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class EventLayout:
    signature: str
    event_type: type
    indexed: Fields
    data: Fields

    @property
    def topic0(self) -> bytes:
        return keccak(text=self.signature)


LAYOUTS: Dict[EventKind, EventLayout] = {
    EventKind.INITIALIZATION: EventLayout(
        "Initialize(uint160,int24)",
        InitializationEvent,
        indexed=(),
        data=(("sqrt_price_x96", "uint160"), ("tick", "int24")),
    ),
    EventKind.SWAP: EventLayout(
        "Swap(address,address,int256,int256,uint160,uint128,int24)",
        SwapEvent,
        indexed=(("sender", "address"), ("recipient", "address")),
        data=(
            ("amount0", "int256"),
            ("amount1", "int256"),
            ("sqrt_price_x96", "uint160"),
            ("liquidity", "uint128"),
            ("tick", "int24"),
        ),
    ),
    EventKind.MINT: EventLayout(
        "Mint(address,address,int24,int24,uint128,uint256,uint256)",
        MintEvent,
        indexed=(("owner", "address"), ("tick_lower", "int24"), ("tick_upper", "int24")),
        data=(
            ("sender", "address"),
            ("amount", "uint128"),
            ("amount0", "uint256"),
            ("amount1", "uint256"),
        ),
    ),
    EventKind.BURN: EventLayout(
        "Burn(address,int24,int24,uint128,uint256,uint256)",
        BurnEvent,
        indexed=(("owner", "address"), ("tick_lower", "int24"), ("tick_upper", "int24")),
        data=(("amount", "uint128"), ("amount0", "uint256"), ("amount1", "uint256")),
    ),
    EventKind.COLLECT: EventLayout(
        "Collect(address,address,int24,int24,uint128,uint128)",
        CollectEvent,
        indexed=(("owner", "address"), ("tick_lower", "int24"), ("tick_upper", "int24")),
        data=(("recipient", "address"), ("amount0", "uint128"), ("amount1", "uint128")),
    ),
}

TOPIC0_TO_KIND: Dict[bytes, EventKind] = {layout.topic0: kind for kind, layout in LAYOUTS.items()}


def topic0_of(kind: EventKind) -> bytes:
    return LAYOUTS[kind].topic0


def _convert(abi_type: str, value):
    # eth_abi hands addresses back as checksummed strings
    if abi_type == "address":
        return hex_to_bytes(value, 20)
    return int(value)


def _decode_words(types: List[str], payload: bytes, what: str) -> tuple:
    try:
        return abi_decode(types, payload)
    except DecodingError as e:
        raise DecodeError(f"{what}: {e}") from e


def decode_log(log: RawLog, tx_sender: bytes) -> Optional[PoolEvent]:
    """
    Decode one log. Returns None for logs that are not pool events.
    tx_sender fills the creator of an Initialization event.
    """
    if not log.topics:
        return None
    kind = TOPIC0_TO_KIND.get(bytes(log.topics[0]))
    if kind is None:
        return None

    layout = LAYOUTS[kind]
    where = f"{layout.signature} at log {log.log_index} of tx 0x{log.transaction_hash.hex()}"
    if len(log.topics) != 1 + len(layout.indexed):
        raise DecodeError(
            f"{where}: expected {1 + len(layout.indexed)} topics, got {len(log.topics)}"
        )
    if len(log.data) != 32 * len(layout.data):
        raise DecodeError(f"{where}: expected {32 * len(layout.data)} data bytes, got {len(log.data)}")

    values = {}
    for (name, abi_type), topic in zip(layout.indexed, log.topics[1:]):
        (raw,) = _decode_words([abi_type], bytes(topic), where)
        values[name] = _convert(abi_type, raw)

    decoded = _decode_words([t for _, t in layout.data], bytes(log.data), where)
    for (name, abi_type), raw in zip(layout.data, decoded):
        values[name] = _convert(abi_type, raw)

    if kind is EventKind.INITIALIZATION:
        values["creator"] = bytes(tx_sender)

    return layout.event_type(
        transaction_hash=bytes(log.transaction_hash),
        log_index=log.log_index,
        contract_address=bytes(log.address),
        **values,
    )


@dataclass(frozen=True)
class TransactionRecord:
    transaction_hash: bytes
    block_number: int
    transaction_index: int
    transaction_sender: bytes


@dataclass(frozen=True)
class DecodedBlock:
    header: BlockHeader
    transactions: List[TransactionRecord] = field(default_factory=list)
    events: List[PoolEvent] = field(default_factory=list)

    @property
    def block_number(self) -> int:
        return self.header.block_number

    def counts(self) -> Dict[EventKind, int]:
        out = {kind: 0 for kind in EventKind}
        for ev in self.events:
            out[ev.kind] += 1
        return out


def decode_block(block: FetchedBlock) -> DecodedBlock:
    """
    Decode every log of a fetched block. Transactions without any pool event are dropped;
    the header is always kept so empty blocks still advance the watermark.
    """
    txs: List[TransactionRecord] = []
    events: List[PoolEvent] = []
    for tx in block.transactions:
        found = [ev for ev in (decode_log(lg, tx.sender) for lg in tx.logs) if ev is not None]
        if not found:
            continue
        txs.append(
            TransactionRecord(
                transaction_hash=tx.transaction_hash,
                block_number=block.block_number,
                transaction_index=tx.transaction_index,
                transaction_sender=tx.sender,
            )
        )
        events.extend(found)
    events.sort(key=lambda ev: ev.log_index)
    return DecodedBlock(header=block.header, transactions=txs, events=events)


__all__ = [
    "EventKind",
    "InitializationEvent",
    "SwapEvent",
    "MintEvent",
    "BurnEvent",
    "CollectEvent",
    "PoolEvent",
    "LAYOUTS",
    "TOPIC0_TO_KIND",
    "topic0_of",
    "decode_log",
    "decode_block",
    "DecodedBlock",
    "TransactionRecord",
]
