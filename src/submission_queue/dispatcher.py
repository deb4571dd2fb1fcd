"""Periodic claim-and-process loop for the submission queue."""

import asyncio
import logging
import threading
from dataclasses import dataclass, field

from .config import Config
from .processor import ProcessOutcome, SubmissionProcessor
from .queue_store import QueueStore

logger = logging.getLogger(__name__)


def _empty_stats(claimed: int = 0) -> dict[str, int]:
    stats = {"claimed": claimed, "errors": 0}
    stats.update({outcome.value: 0 for outcome in ProcessOutcome})
    return stats


@dataclass
class SchedulerHandle:
    """Running state of one dispatcher: its event loop, interval and timer task."""

    loop: asyncio.AbstractEventLoop
    interval_ms: int
    task: asyncio.Task[None] | None = field(default=None)


class Dispatcher:
    """Claims eligible entries on a timer and processes them concurrently.

    start() and stop() are idempotent and safe to call from several threads.
    stop() only cancels the timer: attempts already running from the last
    tick are neither awaited nor cancelled.
    """

    def __init__(
        self,
        store: QueueStore,
        processor: SubmissionProcessor,
        *,
        batch_size: int | None = None,
        interval_ms: int | None = None,
    ):
        self.store = store
        self.processor = processor
        self.batch_size: int = Config.QUEUE_BATCH_SIZE if batch_size is None else batch_size
        self.interval_ms: int = (
            Config.QUEUE_POLL_INTERVAL_MS if interval_ms is None else interval_ms
        )

        self._lock = threading.Lock()
        self._handle: SchedulerHandle | None = None
        self._inflight: set[asyncio.Task[dict[str, int] | None]] = set()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._handle is not None

    async def start(self, interval_ms: int | None = None) -> bool:
        """Start processing: one immediate pass, then one pass per interval.

        Args:
            interval_ms: Time between passes, defaults to the dispatcher's interval

        Returns:
            True if started, False if it was already running
        """
        interval = self.interval_ms if interval_ms is None else interval_ms
        if interval <= 0:
            raise ValueError(f"interval_ms must be > 0, got {interval}")

        with self._lock:
            if self._handle is not None:
                return False
            handle = SchedulerHandle(loop=asyncio.get_running_loop(), interval_ms=interval)
            self._handle = handle

        logger.info(f"Starting submission queue processing every {interval} ms")
        _ = await self._run_tick()

        with self._lock:
            # stop() may have been called during the first pass
            if self._handle is handle:
                handle.task = asyncio.create_task(self._timer(handle))
        return True

    def stop(self) -> bool:
        """Stop scheduling new passes.

        Returns:
            True if stopped, False if it was not running
        """
        with self._lock:
            handle, self._handle = self._handle, None

        if handle is None:
            return False

        if handle.task is not None:
            _ = handle.loop.call_soon_threadsafe(handle.task.cancel)
        logger.info("Stopped submission queue processing")
        return True

    async def tick(self) -> dict[str, int]:
        """Claim one batch and process every entry in it concurrently.

        Returns:
            Counts of claimed entries and of each outcome
        """
        batch = self.store.claim_batch(self.batch_size)
        if not batch:
            return _empty_stats()

        logger.info(f"Processing {len(batch)} queued submissions...")
        stats = _empty_stats(len(batch))

        results = await asyncio.gather(
            *(self.processor.process(entry) for entry in batch),
            return_exceptions=True,
        )
        for entry, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.error(f"Error processing submission {entry.submission_id}: {result!r}")
                stats["errors"] += 1
            else:
                stats[result.value] += 1

        return stats

    async def _run_tick(self) -> dict[str, int] | None:
        try:
            return await self.tick()
        except Exception:
            logger.exception("Error processing submission queue")
            return None

    async def _timer(self, handle: SchedulerHandle) -> None:
        while True:
            await asyncio.sleep(handle.interval_ms / 1000)
            task = asyncio.create_task(self._run_tick())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            # Cancelling the timer must not cancel the attempts of this pass
            _ = await asyncio.shield(task)
