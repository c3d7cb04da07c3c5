# ingestion/fetcher.py
from __future__ import annotations

import logging
from typing import Iterable, Optional

from common.utils import normalize_addresses
from ingestion.errors import BlockNotAvailable, RpcError
from ingestion.models import FetchedBlock
from ingestion.parser import (
    parse_block_header,
    parse_receipts,
    parse_transactions_with_logs,
)
from ingestion.rpc import RpcClient

logger = logging.getLogger(__name__)

LOG_SOURCES = ("receipts", "logs")


class BlockFetcher:
    """
    Retrieves one block header plus every transaction that emitted a log from a tracked contract.

    log_source "receipts" batches eth_getBlockByNumber with eth_getBlockReceipts and filters
    locally; "logs" batches the full block with an address scoped eth_getLogs.
    """

    def __init__(self, client: RpcClient, tracked: Iterable[str] = (), log_source: str = "receipts"):
        if log_source not in LOG_SOURCES:
            raise ValueError(f"log_source must be one of {LOG_SOURCES}")
        self.client = client
        self.tracked = normalize_addresses(tracked)
        self.log_source = log_source
        if not self.tracked:
            logger.warning(
                "No pool addresses tracked: logs from every contract will be decoded, "
                "and a foreign contract reusing a pool event signature stops ingestion"
            )

    def fetch(self, block_number: int) -> FetchedBlock:
        if not isinstance(block_number, int) or block_number < 0:
            raise ValueError("block_number must be a non negative integer")
        if self.log_source == "receipts":
            return self._fetch_via_receipts(block_number)
        return self._fetch_via_logs(block_number)

    def _fetch_via_receipts(self, block_number: int) -> FetchedBlock:
        tag = hex(block_number)
        block_json, receipts = self.client.batch([
            ("eth_getBlockByNumber", [tag, False]),
            ("eth_getBlockReceipts", [tag]),
        ])
        if block_json is None:
            raise BlockNotAvailable(block_number)
        if receipts is None:
            # header visible but receipts not indexed yet
            raise BlockNotAvailable(block_number)

        try:
            header = parse_block_header(block_json)
            txs = parse_receipts(receipts, set(self.tracked))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise RpcError(f"malformed block data for {block_number}: {e}") from e
        return self._finish(block_number, FetchedBlock(header, [tx for tx in txs if tx.logs]))

    def _fetch_via_logs(self, block_number: int) -> FetchedBlock:
        tag = hex(block_number)
        flt = {"fromBlock": tag, "toBlock": tag}
        if self.tracked:
            flt["address"] = list(self.tracked)
        block_json, logs = self.client.batch([
            ("eth_getBlockByNumber", [tag, True]),
            ("eth_getLogs", [flt]),
        ])
        if block_json is None:
            raise BlockNotAvailable(block_number)
        if not isinstance(logs, list):
            raise RpcError("RPC response for eth_getLogs did not return a list")

        try:
            header = parse_block_header(block_json)
            txs = parse_transactions_with_logs(block_json, logs)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise RpcError(f"malformed block data for {block_number}: {e}") from e
        return self._finish(block_number, FetchedBlock(header, txs))

    @staticmethod
    def _finish(block_number: int, block: FetchedBlock) -> FetchedBlock:
        if block.block_number != block_number:
            raise RpcError(f"asked for block {block_number}, got {block.block_number}")
        logger.debug(
            "fetched block %s: %d transactions, %d tracked logs",
            block_number, len(block.transactions), block.log_count(),
        )
        return block


def build_fetcher(settings, client: Optional[RpcClient] = None) -> BlockFetcher:
    client = client or RpcClient(settings.rpc.url, timeout=settings.rpc.timeout)
    return BlockFetcher(client, settings.tracking.pools, log_source=settings.rpc.log_source)


__all__ = ["BlockFetcher", "build_fetcher", "LOG_SOURCES"]
