"""
Ingestion Orchestrator.

Wires Slot Watcher -> Block Fetcher -> Transfer Extractor -> Transfer Store.

The subscription loop only enqueues slots. A fixed pool of worker tasks
fetches, extracts and stores each slot independently, so a failing slot
never stalls the stream. Every slot produces exactly one SlotOutcome on a
result channel, which a collector task folds into IngestionStats.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

from .errors import AggregatorError
from .extractor import extract_transfer, get_timestamp
from .models import Block, SlotOutcome, Transfer

logger = logging.getLogger(__name__)

_STOP = object()


class OrchestratorState(str, Enum):
    """Lifecycle of one ingestion run."""

    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    DRAINING = "draining"
    TERMINATED = "terminated"


class SlotSource(Protocol):
    def subscribe(self): ...


class BlockSource(Protocol):
    async def fetch(self, slot: int) -> Block: ...


class TransferSink(Protocol):
    async def insert(self, transfer: Transfer) -> bool: ...


@dataclass
class IngestionStats:
    """Aggregated outcome of an ingestion run."""

    slots_received: int = 0
    slots_processed: int = 0
    slots_failed: int = 0
    transfers_inserted: int = 0
    errors: Counter = field(default_factory=Counter)

    def record(self, outcome: SlotOutcome) -> None:
        self.slots_processed += 1
        self.transfers_inserted += outcome.inserted
        if not outcome.ok:
            self.slots_failed += 1
            self.errors[outcome.error_name] += 1

    @property
    def success_rate(self) -> float:
        if self.slots_processed == 0:
            return 0.0
        return (self.slots_processed - self.slots_failed) / self.slots_processed


class IngestionOrchestrator:
    """Runs one capped ingestion pass over the live slot stream."""

    def __init__(
        self,
        watcher: SlotSource,
        fetcher: BlockSource,
        store: TransferSink,
        max_slots: int = 100,
        worker_count: int = 8,
        queue_size: int = 64,
        on_outcome: Optional[Callable[[SlotOutcome], None]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            watcher: Slot source with a ``subscribe()`` stream
            fetcher: Block source for a single slot
            store: Transfer sink
            max_slots: Slot notifications to consume before unsubscribing
            worker_count: Size of the per-slot worker pool
            queue_size: Bound of the pending-slot queue
            on_outcome: Called with every SlotOutcome as it is collected
        """
        if max_slots <= 0:
            raise ValueError("max_slots must be positive")
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")

        self.watcher = watcher
        self.fetcher = fetcher
        self.store = store
        self.max_slots = max_slots
        self.worker_count = worker_count
        self.queue_size = queue_size
        self.on_outcome = on_outcome

        self.state = OrchestratorState.IDLE
        self.stats = IngestionStats()

    async def process_slot(self, slot: int) -> SlotOutcome:
        """
        Fetch one block and store a Transfer per transaction, in block order.

        The first error stops the remaining transactions of this block and
        is returned in the outcome, never raised.
        """
        outcome = SlotOutcome(slot=slot)
        try:
            block = await self.fetcher.fetch(slot)
            outcome.transactions = len(block.transactions)
            timestamp = get_timestamp(block.block_time)

            for raw in block.transactions:
                transfer = extract_transfer(raw, timestamp)
                if await self.store.insert(transfer):
                    outcome.inserted += 1
        except AggregatorError as e:
            outcome.error = e
        except Exception as e:
            logger.exception(f"Unexpected error processing slot {slot}")
            outcome.error = e
        return outcome

    async def _worker(self, queue: asyncio.Queue, results: asyncio.Queue) -> None:
        while True:
            slot = await queue.get()
            try:
                await results.put(await self.process_slot(slot))
            finally:
                queue.task_done()

    async def _collect(self, results: asyncio.Queue) -> None:
        while True:
            outcome = await results.get()
            if outcome is _STOP:
                return

            self.stats.record(outcome)
            if outcome.ok:
                logger.debug(f"Slot {outcome.slot}: stored {outcome.inserted} transfers")
            else:
                logger.warning(
                    f"Slot {outcome.slot} failed after {outcome.inserted} transfers: {outcome.error}"
                )

            if self.on_outcome is not None:
                try:
                    self.on_outcome(outcome)
                except Exception:
                    logger.exception("on_outcome callback failed")

    async def _drain(self, queue, results, workers, collector) -> None:
        self.state = OrchestratorState.DRAINING
        try:
            await queue.join()
        except asyncio.CancelledError:
            await self._abort(workers + [collector])
            raise

        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        await results.put(_STOP)
        await collector
        self.state = OrchestratorState.TERMINATED

    async def _abort(self, tasks) -> None:
        """Cancel workers mid-slot; outcomes not yet collected are lost."""
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.state = OrchestratorState.TERMINATED

    async def run(self) -> IngestionStats:
        """
        Subscribe, process up to ``max_slots`` slots, then drain and stop.

        Returns:
            Stats for this run

        Raises:
            SubscriptionError: the stream could not be opened or was lost.
                Slots already queued are still processed first.
            asyncio.CancelledError: workers are cancelled at once and queued
                slots are dropped.
        """
        if self.state is not OrchestratorState.IDLE:
            raise RuntimeError(f"orchestrator already {self.state.value}")

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        results: asyncio.Queue = asyncio.Queue()
        workers = [
            asyncio.create_task(self._worker(queue, results), name=f"slot-worker-{i}")
            for i in range(self.worker_count)
        ]
        collector = asyncio.create_task(self._collect(results), name="slot-outcomes")

        logger.info(
            f"Starting ingestion: {self.max_slots} slots, {self.worker_count} workers"
        )
        try:
            async with self.watcher.subscribe() as slots:
                self.state = OrchestratorState.SUBSCRIBED
                async for slot in slots:
                    logger.debug(f"Slot root received: {slot}")
                    self.stats.slots_received += 1
                    await queue.put(slot)
                    if self.stats.slots_received >= self.max_slots:
                        break
        except asyncio.CancelledError:
            logger.warning(f"Ingestion cancelled with {queue.qsize()} slots still queued")
            await self._abort(workers + [collector])
            raise
        finally:
            if self.state is not OrchestratorState.TERMINATED:
                await self._drain(queue, results, workers, collector)

        logger.info(
            f"Ingestion finished: {self.stats.slots_processed} slots, "
            f"{self.stats.slots_failed} failed, "
            f"{self.stats.transfers_inserted} transfers stored"
        )
        return self.stats


async def run_ingestion(config) -> IngestionStats:
    """
    Main entry point for running one ingestion pass from configuration.

    Args:
        config: IngestionConfig
    """
    from storage import TransferStore

    from .block_fetcher import BlockFetcher
    from .slot_watcher import SlotWatcher

    watcher = SlotWatcher(config.ws_url, connect_attempts=config.subscribe_attempts)
    store = TransferStore(
        config.database_path,
        pool_size=config.db_pool_size,
        unique_signatures=config.unique_signatures,
    )

    async with store, BlockFetcher(
        config.rpc_url,
        pacing_seconds=config.fetch_pacing_seconds,
        timeout_seconds=config.rpc_timeout_seconds,
    ) as fetcher:
        orchestrator = IngestionOrchestrator(
            watcher,
            fetcher,
            store,
            max_slots=config.max_slots,
            worker_count=config.worker_count,
            queue_size=config.queue_size,
        )
        return await orchestrator.run()
