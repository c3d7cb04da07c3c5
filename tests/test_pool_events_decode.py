import pytest
from eth_abi import encode

from conftest import (
    POOL,
    SENDER,
    SWAP_VALUES,
    addr,
    make_block,
    make_log,
    swap_log,
    tx_hash,
    unrelated_log,
)
from etl.pool_events import (
    BurnEvent,
    CollectEvent,
    EventKind,
    InitializationEvent,
    MintEvent,
    SwapEvent,
    decode_block,
    decode_log,
    topic0_of,
)
from ingestion.errors import DecodeError
from ingestion.models import FetchedTransaction, RawLog

# keccak256 of the canonical signatures, as published for the pool contract
KNOWN_TOPICS = {
    EventKind.SWAP: "c42079f94a6350d7e6235f29174924f928cc2ac818eb64fed8004e115fbcca67",
    EventKind.MINT: "7a53080ba414158be7ec69b987b5fb7d07dee101fe85488f0853ae16239d0bde",
    EventKind.BURN: "0c396cd989a39f4459b5fa1aed6a9a8dcdbc45908acfd67e028cd568da98982c",
    EventKind.COLLECT: "70935338e69775456a85ddef226c395fb668b63fa0115f5f20610b388e6ca9c0",
    EventKind.INITIALIZATION: "98636036cb66a9c19a37435efc1e90142190214e8abeb821bdba3f2990dd4c95",
}


@pytest.mark.parametrize("kind", list(EventKind))
def test_topic0_matches_published_signature_hash(kind):
    assert topic0_of(kind).hex() == KNOWN_TOPICS[kind]


def test_decode_swap_full_width():
    ev = decode_log(swap_log(tx=tx_hash(7), log_index=3), SENDER)
    assert isinstance(ev, SwapEvent)
    assert ev.kind is EventKind.SWAP
    assert ev.transaction_hash == tx_hash(7)
    assert ev.log_index == 3
    assert ev.contract_address == POOL
    assert ev.sender == SWAP_VALUES["sender"]
    assert ev.recipient == SWAP_VALUES["recipient"]
    assert ev.amount0 == -(2 ** 255)
    assert ev.amount1 == 2 ** 255 - 1
    assert ev.sqrt_price_x96 == 2 ** 160 - 1
    assert ev.liquidity == 2 ** 128 - 1
    assert ev.tick == -887272


def test_decode_tick_from_raw_words():
    # hand built payload, no encoder involved: tick -887272 is ...fff27618 in two's complement
    tick_word = "f" * 59 + "27618"
    sqrt_word = "0" * 63 + "1"
    lg = RawLog(
        address=POOL,
        topics=(topic0_of(EventKind.INITIALIZATION),),
        data=bytes.fromhex(sqrt_word + tick_word),
        transaction_hash=tx_hash(1),
        log_index=0,
    )
    ev = decode_log(lg, SENDER)
    assert isinstance(ev, InitializationEvent)
    assert ev.tick == -887272
    assert ev.sqrt_price_x96 == 1


def test_decode_initialization_creator_is_tx_sender():
    lg = make_log(EventKind.INITIALIZATION, {"sqrt_price_x96": 79228162514264337593543950336, "tick": 887272})
    ev = decode_log(lg, SENDER)
    assert ev.creator == SENDER
    assert ev.tick == 887272
    assert ev.sqrt_price_x96 == 2 ** 96


def test_decode_mint():
    values = {
        "owner": addr(0xB1),
        "tick_lower": -887220,
        "tick_upper": 887220,
        "sender": addr(0xB2),
        "amount": 2 ** 128 - 1,
        "amount0": 2 ** 256 - 1,
        "amount1": 0,
    }
    ev = decode_log(make_log(EventKind.MINT, values, log_index=9), SENDER)
    assert ev == MintEvent(
        transaction_hash=tx_hash(1),
        log_index=9,
        contract_address=POOL,
        **values,
    )


def test_decode_burn():
    values = {
        "owner": addr(0xC1),
        "tick_lower": -60,
        "tick_upper": 60,
        "amount": 12345,
        "amount0": 10 ** 30,
        "amount1": 2 ** 256 - 1,
    }
    ev = decode_log(make_log(EventKind.BURN, values), SENDER)
    assert isinstance(ev, BurnEvent)
    assert ev.tick_lower == -60
    assert ev.amount1 == 2 ** 256 - 1
    assert ev.owner == addr(0xC1)


def test_decode_collect():
    values = {
        "owner": addr(0xD1),
        "recipient": addr(0xD2),
        "tick_lower": -887272,
        "tick_upper": -1,
        "amount0": 2 ** 128 - 1,
        "amount1": 0,
    }
    ev = decode_log(make_log(EventKind.COLLECT, values), SENDER)
    assert isinstance(ev, CollectEvent)
    assert ev.recipient == addr(0xD2)
    assert ev.tick_lower == -887272
    assert ev.tick_upper == -1
    assert ev.amount0 == 2 ** 128 - 1


def test_unknown_signature_is_skipped():
    assert decode_log(unrelated_log(), SENDER) is None


def test_log_without_topics_is_skipped():
    lg = RawLog(address=POOL, topics=(), data=b"", transaction_hash=tx_hash(1), log_index=0)
    assert decode_log(lg, SENDER) is None


def test_short_data_is_decode_error():
    lg = swap_log()
    bad = RawLog(lg.address, lg.topics, lg.data[:-32], lg.transaction_hash, lg.log_index)
    with pytest.raises(DecodeError):
        decode_log(bad, SENDER)


def test_extra_data_is_decode_error():
    lg = swap_log()
    bad = RawLog(lg.address, lg.topics, lg.data + bytes(32), lg.transaction_hash, lg.log_index)
    with pytest.raises(DecodeError):
        decode_log(bad, SENDER)


def test_missing_topic_is_decode_error():
    lg = swap_log()
    bad = RawLog(lg.address, lg.topics[:2], lg.data, lg.transaction_hash, lg.log_index)
    with pytest.raises(DecodeError):
        decode_log(bad, SENDER)


def test_tick_out_of_int24_range_is_decode_error():
    # 2**23 fits in 32 bytes but not in int24: padding does not sign extend
    data = encode(["uint160", "uint256"], [1, 2 ** 23])
    lg = RawLog(POOL, (topic0_of(EventKind.INITIALIZATION),), data, tx_hash(1), 0)
    with pytest.raises(DecodeError):
        decode_log(lg, SENDER)


def test_dirty_address_topic_is_decode_error():
    lg = swap_log()
    dirty = b"\x01" + bytes(11) + addr(5)
    bad = RawLog(lg.address, (lg.topics[0], dirty, lg.topics[2]), lg.data, lg.transaction_hash, 0)
    with pytest.raises(DecodeError):
        decode_log(bad, SENDER)


def test_decode_block_keeps_only_transactions_with_events():
    h1, h2 = tx_hash(1), tx_hash(2)
    block = make_block(50, [
        FetchedTransaction(h1, 0, SENDER, [swap_log(tx=h1, log_index=0)]),
        FetchedTransaction(h2, 1, SENDER, [unrelated_log(tx=h2, log_index=1)]),
    ])
    decoded = decode_block(block)
    assert decoded.block_number == 50
    assert [t.transaction_hash for t in decoded.transactions] == [h1]
    assert decoded.transactions[0].block_number == 50
    assert len(decoded.events) == 1
    assert decoded.counts()[EventKind.SWAP] == 1


def test_decode_empty_block_keeps_header():
    decoded = decode_block(make_block(7))
    assert decoded.header.block_number == 7
    assert decoded.transactions == []
    assert decoded.events == []
