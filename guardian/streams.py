"""
Live Stream Combinators.

============================================================
PURPOSE
============================================================
Small set of asyncio combinators over async iterators used to
compose chain subscriptions into derived values.

A "stream" is any AsyncIterator. Fan-in combinators run one
reader task per source and funnel notifications through a
single asyncio.Queue, so notifications are processed in the
order the sources deliver them. Closing or cancelling the
consumer cancels every reader.

============================================================
USAGE
============================================================
```python
async for position, ratio, price in combine_latest(
    api.synthetic_position(pool_id, currency_id),
    api.synthetic_ratio(currency_id),
    prices(currency_id),
):
    ...
```

============================================================
"""

import asyncio
import logging
from contextlib import aclosing
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Hashable,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
    TypeVar,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# Queue message kinds
_VALUE = "value"
_STARTED = "started"
_DONE = "done"
_FAILED = "failed"
_SOURCE_FAILED = "source_failed"


# ============================================================
# SIMPLE OPERATORS
# ============================================================

async def from_iterable(items: Iterable[T]) -> AsyncIterator[T]:
    """Emit each item once, in order, then complete."""
    for item in items:
        yield item


async def filter_none(source: AsyncIterator[Optional[T]]) -> AsyncIterator[T]:
    """Drop None values."""
    async for item in source:
        if item is not None:
            yield item


async def concat_all(source: AsyncIterator[Iterable[T]]) -> AsyncIterator[T]:
    """Flatten a stream of iterables."""
    async for items in source:
        for item in items:
            yield item


async def distinct(
    source: AsyncIterator[T],
    key: Callable[[T], Hashable] = lambda item: item,
) -> AsyncIterator[T]:
    """Emit items whose key was never emitted before."""
    seen: Set[Hashable] = set()
    async for item in source:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        yield item


async def distinct_until_changed(source: AsyncIterator[T]) -> AsyncIterator[T]:
    """Emit items that differ from the previous one."""
    sentinel = object()
    last: Any = sentinel
    async for item in source:
        if last is not sentinel and item == last:
            continue
        last = item
        yield item


async def first(source: AsyncIterator[T]) -> Optional[T]:
    """Await the first item of a stream and close it."""
    async with aclosing(source) as stream:
        async for item in stream:
            return item
    return None


async def _close(tasks: Iterable["asyncio.Task[Any]"]) -> None:
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


# ============================================================
# MERGE MAP
# ============================================================

async def merge_map(
    source: AsyncIterator[T],
    project: Callable[[T], AsyncIterator[R]],
    on_error: Optional[Callable[[Exception], None]] = None,
) -> AsyncIterator[R]:
    """
    Map each item to an inner stream and merge all inner streams.

    Inner streams run concurrently; the merged stream completes when
    the source and every inner stream have completed.

    Args:
        source: Outer stream
        project: Builds the inner stream for an outer item
        on_error: Receives inner stream failures. When set, a failing
            inner stream ends on its own and siblings keep running.
            When None, the first inner failure terminates the merge.

    Raises:
        Exception: Source failure, or inner failure when on_error is None
    """
    queue: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()
    inner_tasks: List["asyncio.Task[None]"] = []

    async def pump_inner(inner: AsyncIterator[R]) -> None:
        try:
            async for value in inner:
                queue.put_nowait((_VALUE, value))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            queue.put_nowait((_FAILED, e))
        finally:
            queue.put_nowait((_DONE, None))

    async def pump_outer() -> None:
        try:
            async for item in source:
                queue.put_nowait((_STARTED, None))
                inner_tasks.append(asyncio.create_task(pump_inner(project(item))))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            queue.put_nowait((_SOURCE_FAILED, e))
        finally:
            queue.put_nowait((_DONE, None))

    outer_task = asyncio.create_task(pump_outer())
    active = 1

    try:
        while active:
            kind, payload = await queue.get()

            if kind == _VALUE:
                yield payload
            elif kind == _STARTED:
                active += 1
            elif kind == _DONE:
                active -= 1
            elif kind == _FAILED:
                if on_error is None:
                    raise payload
                on_error(payload)
            else:
                raise payload
    finally:
        await _close([outer_task, *inner_tasks])


# ============================================================
# COMBINE LATEST
# ============================================================

async def combine_latest(*sources: AsyncIterator[Any]) -> AsyncIterator[Tuple[Any, ...]]:
    """
    Combine the latest values of several streams.

    Nothing is emitted until every source has emitted once. After
    that, every notification from any source emits a tuple holding
    the most recent value of each source, in source order.

    Completes when every source has completed, or as soon as a
    source completes without ever emitting.

    Raises:
        Exception: The first source failure
    """
    count = len(sources)
    if count == 0:
        return

    queue: "asyncio.Queue[Tuple[int, str, Any]]" = asyncio.Queue()

    async def read(index: int, source: AsyncIterator[Any]) -> None:
        try:
            async for value in source:
                queue.put_nowait((index, _VALUE, value))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            queue.put_nowait((index, _FAILED, e))
            return
        queue.put_nowait((index, _DONE, None))

    readers = [
        asyncio.create_task(read(index, source))
        for index, source in enumerate(sources)
    ]

    latest: List[Any] = [None] * count
    received = [False] * count
    remaining = count

    try:
        while remaining:
            index, kind, payload = await queue.get()

            if kind == _VALUE:
                latest[index] = payload
                received[index] = True
                if all(received):
                    yield tuple(latest)
            elif kind == _DONE:
                remaining -= 1
                if not received[index]:
                    return
            else:
                raise payload
    finally:
        await _close(readers)


# ============================================================
# POLLING
# ============================================================

async def poll(
    fetch: Callable[[], Awaitable[Optional[T]]],
    period_ms: int,
) -> AsyncIterator[T]:
    """
    Call fetch every period_ms and emit changed, non-null results.

    Runs until cancelled. Fetch errors terminate the stream.
    """
    sentinel = object()
    last: Any = sentinel
    interval = period_ms / 1000

    while True:
        value = await fetch()
        if value is not None and (last is sentinel or value != last):
            last = value
            yield value
        await asyncio.sleep(interval)
