"""Concurrent fetch workers feeding a single batching writer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from time import monotonic
from typing import Awaitable, Callable, Iterable, Iterator, Sequence

from tilecp.config import DEFAULT_BATCH_SECONDS, DEFAULT_BATCH_SIZE, DEFAULT_QUEUE_SIZE
from tilecp.errors import ChannelError
from tilecp.mbtiles import TileRow
from tilecp.perf import PerfTracker
from tilecp.progress import CopyProgress, ProgressReporter
from tilecp.tiles import TileCoord

LOGGER = logging.getLogger(__name__)

Fetcher = Callable[[TileCoord], Awaitable[bytes]]
BatchWriter = Callable[[Sequence[TileRow]], None]


@dataclass(frozen=True)
class TileRecord:
    """One fetched tile; empty data means the source has no tile there."""

    coord: TileCoord
    data: bytes


_END_OF_STREAM = None


async def run_fail_fast(tasks: Sequence[asyncio.Task]) -> None:
    """Wait for all tasks; on the first failure cancel the rest and re-raise it."""
    if not tasks:
        return
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    failed = [
        task for task in tasks if task in done and not task.cancelled() and task.exception()
    ]
    if not failed:
        return
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    error = failed[0].exception()
    if error is not None:
        raise error


class CopyPipeline:
    """Move tiles from a fetch function to a batch writer.

    Up to ``concurrency`` fetches run at once and push results into a queue
    holding at most ``queue_size`` records; a full queue blocks the fetchers.
    One consumer drains the queue, counts empty tiles, and writes non-empty
    tiles in batches of ``batch_size`` or after ``batch_seconds``, whichever
    comes first. The writer runs in a worker thread and is never called
    concurrently.
    """

    def __init__(
        self,
        fetch: Fetcher,
        writer: BatchWriter,
        progress: CopyProgress,
        *,
        concurrency: int = 1,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_seconds: float = DEFAULT_BATCH_SECONDS,
        reporter: ProgressReporter | None = None,
        perf: PerfTracker | None = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self.fetch = fetch
        self.writer = writer
        self.progress = progress
        self.concurrency = max(1, concurrency)
        self.queue_size = max(1, queue_size)
        self.batch_size = max(1, batch_size)
        self.batch_seconds = batch_seconds
        self.reporter = reporter or ProgressReporter(progress)
        self.perf = perf or PerfTracker(enabled=False)
        self.clock = clock
        self.batches_written = 0
        self._writer_closed = False

    async def run(self, coords: Iterable[TileCoord]) -> None:
        """Copy every coordinate; raises the first fetch or write error."""
        queue: asyncio.Queue[TileRecord | None] = asyncio.Queue(maxsize=self.queue_size)
        self._writer_closed = False
        producer = asyncio.create_task(self._produce(iter(coords), queue), name="tilecp-fetch")
        consumer = asyncio.create_task(self._consume(queue), name="tilecp-write")
        await run_fail_fast([producer, consumer])

    async def _produce(
        self, coords: Iterator[TileCoord], queue: asyncio.Queue[TileRecord | None]
    ) -> None:
        workers = [
            asyncio.create_task(self._fetch_worker(coords, queue), name=f"tilecp-fetch-{index}")
            for index in range(self.concurrency)
        ]
        await run_fail_fast(workers)
        await queue.put(_END_OF_STREAM)

    async def _fetch_worker(
        self, coords: Iterator[TileCoord], queue: asyncio.Queue[TileRecord | None]
    ) -> None:
        # Workers share one iterator; next() never yields to the event loop.
        for coord in coords:
            data = await self.fetch(coord)
            if self._writer_closed:
                raise ChannelError(f"Tile writer stopped before tile {coord} was delivered")
            await queue.put(TileRecord(coord, data))

    async def _consume(self, queue: asyncio.Queue[TileRecord | None]) -> None:
        batch: list[TileRow] = []
        last_saved = self.clock()
        try:
            while True:
                record = await queue.get()
                if record is _END_OF_STREAM:
                    break
                LOGGER.debug(
                    "Generated tile - %s bytes", len(record.data), extra={"tile": str(record.coord)}
                )
                if not record.data:
                    done = self.progress.add_empty()
                else:
                    coord = record.coord
                    batch.append((coord.z, coord.x, coord.y, record.data))
                    done = self.progress.add_non_empty()
                    if (
                        len(batch) >= self.batch_size
                        or self.clock() - last_saved > self.batch_seconds
                    ):
                        await self._flush(batch)
                        batch = []
                        last_saved = self.clock()
                self.reporter.maybe_report(done)
            if batch:
                await self._flush(batch)
        finally:
            self._writer_closed = True

    async def _flush(self, batch: list[TileRow]) -> None:
        write = asyncio.ensure_future(asyncio.to_thread(self.writer, batch))
        with self.perf.span("insert"):
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                # An insert already running in the thread must finish before the sink closes.
                await asyncio.wait([write])
                raise
        self.batches_written += 1
        LOGGER.debug("Saved batch of %s tiles", len(batch))
