from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from etl.load import PersistenceWriter, WriteResult
from etl.pool_events import DecodedBlock, decode_block
from ingestion.checkpoint import Checkpoint
from ingestion.errors import (
    BlockNotAvailable,
    DecodeError,
    FatalIngestionError,
    IngestionError,
    RangeAbortedError,
    RpcError,
    StorageError,
    WriteError,
)
from ingestion.fetcher import BlockFetcher
from ingestion.models import FetchedBlock

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], object]


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff for transient RPC failures. Delays are in seconds."""
    max_attempts: int = 3
    initial_backoff: float = 0.1
    max_backoff: float = 10.0
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, retry) -> "RetryConfig":
        return cls(
            max_attempts=retry.max_attempts,
            initial_backoff=retry.initial_backoff_ms / 1000.0,
            max_backoff=retry.max_backoff_ms / 1000.0,
            backoff_multiplier=retry.backoff_multiplier,
        )

    def backoff(self, failures: int) -> float:
        """Delay after the given number of consecutive failures (1 based)."""
        delay = self.initial_backoff * (self.backoff_multiplier ** max(failures - 1, 0))
        return min(delay, self.max_backoff)


# live-follow states

@dataclass(frozen=True)
class Polling:
    block: int
    failures: int = 0


@dataclass(frozen=True)
class Waiting:
    block: int


@dataclass(frozen=True)
class Retrying:
    block: int
    failures: int


@dataclass(frozen=True)
class Fatal:
    block: int
    error: Optional[Exception] = None


LiveState = Union[Polling, Waiting, Retrying, Fatal]


class Outcome(Enum):
    SUCCESS = "success"
    NOT_AVAILABLE = "not_available"
    TRANSIENT = "transient"
    FATAL = "fatal"
    TIMER = "timer"


def classify(exc: BaseException) -> Outcome:
    if isinstance(exc, BlockNotAvailable):
        return Outcome.NOT_AVAILABLE
    if isinstance(exc, RpcError):
        return Outcome.TRANSIENT
    return Outcome.FATAL


def transition(state: LiveState, outcome: Outcome, retry: RetryConfig,
               error: Optional[Exception] = None) -> LiveState:
    """Pure live-follow transition. Fatal is terminal."""
    if isinstance(state, Fatal):
        return state
    if isinstance(state, Polling):
        if outcome is Outcome.SUCCESS:
            return Polling(state.block + 1)
        if outcome is Outcome.NOT_AVAILABLE:
            return Waiting(state.block)
        if outcome is Outcome.TRANSIENT:
            failures = state.failures + 1
            if failures >= retry.max_attempts:
                return Fatal(state.block, error)
            return Retrying(state.block, failures)
        if outcome is Outcome.FATAL:
            return Fatal(state.block, error)
        raise ValueError(f"{outcome} is not valid while polling")
    if outcome is not Outcome.TIMER:
        raise ValueError(f"{outcome} is not valid in {type(state).__name__}")
    if isinstance(state, Waiting):
        return Polling(state.block)
    return Polling(state.block, state.failures)


class IngestionOrchestrator:
    """
    Drives fetch -> decode -> persist one block at a time in ascending order.
    Stop requests are honored between blocks only.
    """

    def __init__(
        self,
        fetcher: BlockFetcher,
        writer: PersistenceWriter,
        *,
        retry: RetryConfig = RetryConfig(),
        start_block: int = 0,
        poll_interval: float = 2.0,
        delay_between_blocks: float = 0.0,
        prefetch: bool = False,
        sleep: Optional[SleepFn] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.fetcher = fetcher
        self.writer = writer
        self.retry = retry
        self.checkpoint = Checkpoint(writer.storage, start_block)
        self.poll_interval = poll_interval
        self.delay_between_blocks = delay_between_blocks
        self.prefetch = prefetch
        self.stop_event = stop_event or threading.Event()
        # waits end early once stop is requested
        self._sleep = sleep or self.stop_event.wait

    def stop(self) -> None:
        self.stop_event.set()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    # unit operation

    def process_block(self, block_number: int) -> WriteResult:
        return self._persist(self.fetcher.fetch(block_number))

    def _persist(self, fetched: FetchedBlock) -> WriteResult:
        decoded = decode_block(fetched)
        result = self.writer.write(decoded)
        self._log_summary(decoded)
        return result

    @staticmethod
    def _log_summary(decoded: DecodedBlock) -> None:
        if not decoded.events:
            logger.info("No events found in block %s", decoded.block_number)
            return
        counts = decoded.counts()
        logger.info(
            "Found in block %s: %s",
            decoded.block_number,
            " ".join(f"{kind.name.lower()}={n}" for kind, n in counts.items()),
        )

    def _fetch_with_retry(self, block_number: int) -> FetchedBlock:
        failures = 0
        while True:
            try:
                return self.fetcher.fetch(block_number)
            except RpcError as e:
                failures += 1
                if failures >= self.retry.max_attempts:
                    raise
                delay = self.retry.backoff(failures)
                logger.warning(
                    "Request for block %s failed (attempt %d/%d), retrying in %.2fs: %s",
                    block_number, failures, self.retry.max_attempts, delay, e,
                )
                self._sleep(delay)

    def _delayed_fetch(self, block_number: int, delay: float) -> FetchedBlock:
        if delay > 0:
            self._sleep(delay)
        return self._fetch_with_retry(block_number)

    # modes

    def run_single(self, block_number: int) -> WriteResult:
        logger.info("Processing single block %s", block_number)
        return self._persist(self._fetch_with_retry(block_number))

    def run_range(self, start_block: int, end_block: int) -> int:
        """
        Process [start_block, end_block] inclusive. Returns the number of blocks persisted,
        which is lower than the range size only when a stop was requested.
        """
        if start_block > end_block:
            raise ValueError("start_block must be less than or equal to end_block")

        logger.info(
            "Processing blocks from %s to %s (%d blocks)",
            start_block, end_block, end_block - start_block + 1,
        )
        if self.prefetch:
            done = self._run_range_prefetch(start_block, end_block)
        else:
            done = self._run_range_serial(start_block, end_block)
        logger.info("Processed %d blocks from %s to %s", done, start_block, start_block + done - 1)
        return done

    def _run_range_serial(self, start_block: int, end_block: int) -> int:
        done = 0
        for n in range(start_block, end_block + 1):
            if self.stopped:
                logger.info("Stop requested, halting before block %s", n)
                break
            if n > start_block and self.delay_between_blocks > 0:
                self._sleep(self.delay_between_blocks)
            try:
                self._persist(self._fetch_with_retry(n))
            except IngestionError as e:
                raise RangeAbortedError(n, done, e) from e
            done += 1
        return done

    def _run_range_prefetch(self, start_block: int, end_block: int) -> int:
        # fetch of n+1 overlaps decode/persist of n; commits stay in order
        done = 0
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="prefetch") as pool:
            pending = pool.submit(self._fetch_with_retry, start_block)
            for n in range(start_block, end_block + 1):
                if self.stopped:
                    pending.cancel()
                    logger.info("Stop requested, halting before block %s", n)
                    break
                try:
                    fetched = pending.result()
                    if n < end_block:
                        pending = pool.submit(self._delayed_fetch, n + 1, self.delay_between_blocks)
                    self._persist(fetched)
                except IngestionError as e:
                    pending.cancel()
                    raise RangeAbortedError(n, done, e) from e
                done += 1
        return done

    def run_live(self, start_block: Optional[int] = None, max_blocks: Optional[int] = None) -> int:
        """
        Follow the chain head from the watermark. Returns the number of blocks persisted
        when stopped; raises FatalIngestionError on a fatal outcome.
        """
        next_block = start_block if start_block is not None else self.checkpoint.next_block()
        logger.info("Live follow starting at block %s", next_block)

        state: LiveState = Polling(next_block)
        done = 0
        while True:
            # a fatal outcome is raised even when stop was requested in the same block
            if isinstance(state, Fatal):
                logger.error("Live follow stopped at block %s: %s", state.block, state.error)
                raise FatalIngestionError(state.block, state.error)
            if self.stopped:
                break

            if isinstance(state, Polling):
                if max_blocks is not None and done >= max_blocks:
                    break
                try:
                    self.process_block(state.block)
                except (RpcError, DecodeError, WriteError) as e:
                    outcome = classify(e)
                    if outcome is Outcome.TRANSIENT:
                        logger.warning("Transient failure on block %s: %s", state.block, e)
                    state = transition(state, outcome, self.retry, e)
                    continue
                done += 1
                state = transition(state, Outcome.SUCCESS, self.retry)
            elif isinstance(state, Waiting):
                logger.debug("Block %s not available yet, waiting %.2fs", state.block, self.poll_interval)
                self._sleep(self.poll_interval)
                state = transition(state, Outcome.TIMER, self.retry)
            else:
                self._sleep(self.retry.backoff(state.failures))
                state = transition(state, Outcome.TIMER, self.retry)

        logger.info("Live follow stopped after %d blocks, next block %s", done, state.block)
        return done


def build_orchestrator(settings, storage=None, client=None, stop_event: Optional[threading.Event] = None,
                       sleep: Optional[SleepFn] = None) -> IngestionOrchestrator:
    from ingestion.fetcher import build_fetcher
    from storage.manager import storage_from_settings

    fetcher = build_fetcher(settings, client)
    storage = storage or storage_from_settings(settings.db)
    try:
        storage.setup()
    except storage.db_errors + (OSError,) as e:
        fetcher.client.close()
        raise StorageError(f"Failed to open store: {e}") from e
    ing = settings.ingestion
    return IngestionOrchestrator(
        fetcher,
        PersistenceWriter(storage),
        retry=RetryConfig.from_settings(ing.retry),
        start_block=ing.start_block,
        poll_interval=ing.poll_interval_seconds,
        delay_between_blocks=ing.delay_between_blocks_ms / 1000.0,
        prefetch=ing.prefetch,
        sleep=sleep,
        stop_event=stop_event,
    )


__all__ = [
    "RetryConfig",
    "Polling",
    "Waiting",
    "Retrying",
    "Fatal",
    "Outcome",
    "classify",
    "transition",
    "IngestionOrchestrator",
    "build_orchestrator",
]
