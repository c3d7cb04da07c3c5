# ingestion/parser.py
"""
ingestion.parser
Module to parse raw JSON-RPC block, receipt and log objects into the typed models.

All functions raise ValueError on malformed input; the fetcher turns that into an RPC failure.
"""
from typing import Any, Dict, Iterable, List, Optional, Set

from common.utils import hex_to_bytes, hex_to_int
from ingestion.models import BlockHeader, FetchedTransaction, RawLog


def _tracked(address: str, tracked: Optional[Set[str]]) -> bool:
    return not tracked or str(address).lower() in tracked


def parse_block_header(block_json: Dict[str, Any]) -> BlockHeader:
    if not block_json or "number" not in block_json or "timestamp" not in block_json:
        raise ValueError("Invalid block JSON")
    return BlockHeader(
        block_number=hex_to_int(block_json["number"]),
        block_timestamp=hex_to_int(block_json["timestamp"]),
    )


def parse_log(log_json: Dict[str, Any]) -> RawLog:
    if not isinstance(log_json, dict) or "topics" not in log_json:
        raise ValueError("Invalid log JSON")
    try:
        return RawLog(
            address=hex_to_bytes(log_json["address"], 20),
            topics=tuple(hex_to_bytes(t, 32) for t in log_json["topics"]),
            data=hex_to_bytes(log_json.get("data") or "0x"),
            transaction_hash=hex_to_bytes(log_json["transactionHash"], 32),
            log_index=hex_to_int(log_json["logIndex"]),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid log JSON: missing {e}") from e


def parse_logs(raw_logs: Iterable[Dict[str, Any]], tracked: Optional[Set[str]] = None) -> List[RawLog]:
    out = []
    for lg in raw_logs or []:
        if not isinstance(lg, dict):
            raise ValueError(f"Invalid log JSON: {lg!r}")
        if _tracked(lg.get("address", ""), tracked):
            out.append(parse_log(lg))
    return out


def parse_receipt(receipt_json: Dict[str, Any], tracked: Optional[Set[str]] = None) -> FetchedTransaction:
    """One receipt from eth_getBlockReceipts, keeping only logs from tracked contracts."""
    if not isinstance(receipt_json, dict) or "transactionHash" not in receipt_json:
        raise ValueError("Invalid receipt JSON")
    try:
        return FetchedTransaction(
            transaction_hash=hex_to_bytes(receipt_json["transactionHash"], 32),
            transaction_index=hex_to_int(receipt_json["transactionIndex"]),
            sender=hex_to_bytes(receipt_json["from"], 20),
            logs=parse_logs(receipt_json.get("logs"), tracked),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid receipt JSON: missing {e}") from e


def parse_receipts(receipts: Iterable[Dict[str, Any]], tracked: Optional[Set[str]] = None) -> List[FetchedTransaction]:
    txs = [parse_receipt(r, tracked) for r in receipts]
    return sorted(txs, key=lambda t: t.transaction_index)


def parse_transactions_with_logs(
    block_json: Dict[str, Any],
    raw_logs: Iterable[Dict[str, Any]],
) -> List[FetchedTransaction]:
    """
    Join eth_getLogs output with the full transaction objects of eth_getBlockByNumber(n, true)
    to recover each transaction's sender and index. Logs are assumed already scoped.
    """
    senders = {}
    for tx in block_json.get("transactions") or []:
        if not isinstance(tx, dict) or "hash" not in tx:
            raise ValueError("block was fetched without full transaction objects")
        senders[str(tx["hash"]).lower()] = tx

    grouped: Dict[str, List[RawLog]] = {}
    for lg in raw_logs or []:
        parsed = parse_log(lg)
        grouped.setdefault(str(lg["transactionHash"]).lower(), []).append(parsed)

    txs = []
    for tx_hash, logs in grouped.items():
        tx = senders.get(tx_hash)
        if tx is None:
            raise ValueError(f"log references transaction {tx_hash} not in block")
        txs.append(
            FetchedTransaction(
                transaction_hash=hex_to_bytes(tx_hash, 32),
                transaction_index=hex_to_int(tx["transactionIndex"]),
                sender=hex_to_bytes(tx["from"], 20),
                logs=sorted(logs, key=lambda l: l.log_index),
            )
        )
    return sorted(txs, key=lambda t: t.transaction_index)
