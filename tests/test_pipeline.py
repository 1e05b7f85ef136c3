from __future__ import annotations

import asyncio
import itertools
from typing import Sequence

import pytest

from tilecp.errors import SinkError
from tilecp.mbtiles import TileRow
from tilecp.perf import PerfTracker
from tilecp.pipeline import CopyPipeline, run_fail_fast
from tilecp.progress import CopyProgress
from tilecp.tiles import TileCoord, TileRect


def _coords(zoom: int = 3) -> list[TileCoord]:
    return list(TileRect(zoom, 0, 0, (1 << zoom) - 1, (1 << zoom) - 1).coords())


class RecordingWriter:
    def __init__(self, fail_after: int | None = None) -> None:
        self.batches: list[list[TileRow]] = []
        self.fail_after = fail_after

    def __call__(self, batch: Sequence[TileRow]) -> None:
        if self.fail_after is not None and len(self.batches) >= self.fail_after:
            raise SinkError("disk full")
        self.batches.append(list(batch))


def test_pipeline_counts_and_writes_every_tile() -> None:
    coords = _coords()
    writer = RecordingWriter()
    progress = CopyProgress(total=len(coords))

    async def fetch(coord: TileCoord) -> bytes:
        return b"" if coord.x == 0 else f"{coord}".encode()

    pipeline = CopyPipeline(fetch, writer, progress, concurrency=3, batch_size=10)
    asyncio.run(pipeline.run(coords))

    rows = [row for batch in writer.batches for row in batch]
    assert progress.empty == 8
    assert progress.non_empty == 56
    assert progress.empty + progress.non_empty == progress.total
    assert sorted(rows) == sorted(
        (c.z, c.x, c.y, f"{c}".encode()) for c in coords if c.x != 0
    )
    assert all(len(batch) <= 10 for batch in writer.batches)
    assert pipeline.batches_written == len(writer.batches) == 6


def test_pipeline_flushes_on_batch_size() -> None:
    coords = _coords(1)
    writer = RecordingWriter()

    async def fetch(coord: TileCoord) -> bytes:
        return b"x"

    pipeline = CopyPipeline(fetch, writer, CopyProgress(total=4), batch_size=3)
    asyncio.run(pipeline.run(coords))
    assert [len(batch) for batch in writer.batches] == [3, 1]


def test_pipeline_flushes_on_elapsed_time() -> None:
    ticks = itertools.count()
    writer = RecordingWriter()

    async def fetch(coord: TileCoord) -> bytes:
        return b"x"

    pipeline = CopyPipeline(
        fetch,
        writer,
        CopyProgress(total=5),
        batch_size=100,
        batch_seconds=1.5,
        clock=lambda: float(next(ticks)),
    )
    asyncio.run(pipeline.run([TileCoord(3, x, 0) for x in range(5)]))
    assert [len(batch) for batch in writer.batches] == [2, 2, 1]


def test_pipeline_without_tiles_writes_nothing() -> None:
    writer = RecordingWriter()

    async def fetch(coord: TileCoord) -> bytes:
        return b"x"

    pipeline = CopyPipeline(fetch, writer, CopyProgress(total=0))
    asyncio.run(pipeline.run([]))
    assert writer.batches == []


def test_pipeline_all_empty_tiles_writes_nothing() -> None:
    writer = RecordingWriter()
    progress = CopyProgress(total=4)

    async def fetch(coord: TileCoord) -> bytes:
        return b""

    asyncio.run(CopyPipeline(fetch, writer, progress).run(_coords(1)))
    assert writer.batches == []
    assert progress.empty == 4


def test_pipeline_bounds_concurrent_fetches() -> None:
    in_flight = 0
    peak = 0

    async def fetch(coord: TileCoord) -> bytes:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return b"x"

    coords = _coords(2)
    pipeline = CopyPipeline(fetch, RecordingWriter(), CopyProgress(total=16), concurrency=4)
    asyncio.run(pipeline.run(coords))
    assert peak == 4


def test_pipeline_fetch_error_aborts_run() -> None:
    writer = RecordingWriter()
    fetched: list[TileCoord] = []

    async def fetch(coord: TileCoord) -> bytes:
        fetched.append(coord)
        if len(fetched) == 5:
            raise RuntimeError("source failed")
        await asyncio.sleep(0)
        return b"x"

    coords = _coords(6)
    pipeline = CopyPipeline(fetch, writer, CopyProgress(total=len(coords)), concurrency=2)
    with pytest.raises(RuntimeError, match="source failed"):
        asyncio.run(pipeline.run(coords))
    assert len(fetched) < len(coords)


def test_pipeline_write_error_aborts_run() -> None:
    writer = RecordingWriter(fail_after=0)
    fetched: list[TileCoord] = []

    async def fetch(coord: TileCoord) -> bytes:
        fetched.append(coord)
        return b"x"

    coords = _coords(6)
    pipeline = CopyPipeline(
        fetch,
        writer,
        CopyProgress(total=len(coords)),
        queue_size=1,
        batch_size=1,
    )
    with pytest.raises(SinkError, match="disk full"):
        asyncio.run(pipeline.run(coords))
    assert writer.batches == []
    # A full queue holds back the fetchers, so the run stops long before the end.
    assert len(fetched) < 20


def test_pipeline_records_insert_spans() -> None:
    perf = PerfTracker(enabled=True)

    async def fetch(coord: TileCoord) -> bytes:
        return b"x"

    pipeline = CopyPipeline(
        fetch, RecordingWriter(), CopyProgress(total=4), batch_size=2, perf=perf
    )
    asyncio.run(pipeline.run(_coords(1)))
    assert perf.summary()["spans"]["insert"]["count"] == 2


def test_run_fail_fast_cancels_siblings() -> None:
    async def scenario() -> bool:
        stopped = asyncio.Event()

        async def slow() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                stopped.set()
                raise

        async def failing() -> None:
            await asyncio.sleep(0)
            raise ValueError("bad")

        tasks = [asyncio.create_task(slow()), asyncio.create_task(failing())]
        with pytest.raises(ValueError, match="bad"):
            await run_fail_fast(tasks)
        return stopped.is_set()

    assert asyncio.run(scenario())
